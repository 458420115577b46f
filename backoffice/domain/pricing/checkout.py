from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Literal, Mapping

from backoffice.core.errors import FieldError, InsufficientTender, raise_if_errors
from backoffice.core.money import ZERO, has_sub_cent, quantize, to_decimal
DiscountType = Literal["percentage", "amount"]
PosPaymentMethod = Literal["cash", "card", "gcash"]

DISCOUNT_TYPES: tuple[str, ...] = ("percentage", "amount")
POS_PAYMENT_METHODS: tuple[str, ...] = ("cash", "card", "gcash")

# what each non-cash method should carry for later reconciliation
REFERENCE_LABELS: dict[str, str] = {
    "card": "card approval code",
    "gcash": "GCash reference number",
}

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class CartLine:
    product_id: str
    price: Decimal
    quantity: int
    product_name: str | None = None

    @property
    def line_total(self) -> Decimal:
        return quantize(self.price * self.quantity)


@dataclass(frozen=True)
class CheckoutQuote:
    lines: tuple[CartLine, ...]
    subtotal: Decimal
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    total: Decimal
    vat_percentage: Decimal
    net_of_vat: Decimal
    tax: Decimal


@dataclass(frozen=True)
class Settlement:
    quote: CheckoutQuote
    payment_method: str
    amount_tendered: Decimal
    change: Decimal
    reference_number: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass
class TransactionRecord:
    """A settled checkout as stored, with its invoice number."""

    transaction_id: str
    invoice_number: str
    customer_id: str | None
    payment_method: str
    items: list[dict]
    subtotal: Decimal
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    vat_percentage: Decimal
    net_of_vat: Decimal
    tax: Decimal
    total: Decimal
    amount_tendered: Decimal
    change: Decimal
    reference_number: str | None
    warnings: list[str]
    created_at: datetime


def _collect_cart(rows: list[Any], errors: list[FieldError]) -> list[CartLine]:
    if not rows:
        errors.append(FieldError("items", "cart is empty"))

    lines: list[CartLine] = []
    for idx, row in enumerate(rows):
        if isinstance(row, CartLine):
            lines.append(row)
            continue
        prefix = f"items[{idx}]"
        product_id = str(row.get("product_id") or "").strip()
        if not product_id:
            errors.append(FieldError(f"{prefix}.product_id", "is required"))
        price = to_decimal(row.get("price", row.get("unit_price")))
        if price is None or price < 0:
            errors.append(FieldError(f"{prefix}.price", "must be a non-negative number"))
            price = ZERO
        qty = to_decimal(row.get("quantity"))
        if qty is None or qty <= 0 or qty != qty.to_integral_value():
            errors.append(FieldError(f"{prefix}.quantity", "must be a whole number greater than 0"))
            qty = Decimal(0)
        lines.append(
            CartLine(
                product_id=product_id,
                price=price,
                quantity=int(qty),
                product_name=row.get("product_name"),
            )
        )
    return lines


def compute_discount(subtotal: Decimal, discount_type: str, discount_value: Decimal) -> Decimal:
    if discount_type == "percentage":
        return quantize(subtotal * min(discount_value, HUNDRED) / HUNDRED)
    return quantize(min(discount_value, subtotal))


def split_vat(total: Decimal, vat_percentage: Decimal) -> tuple[Decimal, Decimal]:
    """Split a VAT-inclusive total into (net_of_vat, tax); the parts always add back up to ``total``."""
    net = quantize(total / (1 + vat_percentage / HUNDRED))
    return net, total - net


def compute_quote(
    items: Iterable[Mapping[str, Any]] | Iterable[CartLine],
    discount_type: str = "percentage",
    discount_value: Any = 0,
    vat_percentage: Any = 12,
) -> CheckoutQuote:
    errors: list[FieldError] = []
    lines = _collect_cart(list(items or []), errors)

    if discount_type not in DISCOUNT_TYPES:
        errors.append(FieldError("discount_type", "must be percentage or amount"))
    value = to_decimal(discount_value if discount_value not in (None, "") else 0)
    if value is None or value < 0:
        errors.append(FieldError("discount_value", "must be a non-negative number"))
        value = ZERO
    elif discount_type == "amount" and has_sub_cent(value):
        errors.append(FieldError("discount_value", "must not have fractions of a cent"))
    vat = to_decimal(vat_percentage)
    if vat is None or vat < 0 or vat > 100:
        errors.append(FieldError("vat_percentage", "must be between 0 and 100"))
        vat = ZERO
    raise_if_errors(errors)

    subtotal = quantize(sum((line.line_total for line in lines), ZERO))
    discount = compute_discount(subtotal, discount_type, value)
    total = max(ZERO, subtotal - discount)
    net_of_vat, tax = split_vat(total, vat)

    return CheckoutQuote(
        lines=tuple(lines),
        subtotal=subtotal,
        discount_type=discount_type,
        discount_value=value,
        discount_amount=discount,
        total=total,
        vat_percentage=vat,
        net_of_vat=net_of_vat,
        tax=tax,
    )


def settle(
    quote: CheckoutQuote,
    payment_method: str,
    amount_tendered: Any = None,
    reference_number: str | None = None,
) -> Settlement:
    if payment_method not in POS_PAYMENT_METHODS:
        raise_if_errors([FieldError("payment_method", f"must be one of {', '.join(POS_PAYMENT_METHODS)}")])

    if payment_method == "cash":
        tendered = to_decimal(amount_tendered)
        if tendered is None or tendered < 0:
            raise_if_errors([FieldError("amount_tendered", "cash checkout requires the amount tendered")])
        if has_sub_cent(tendered):
            raise_if_errors([FieldError("amount_tendered", "must not have fractions of a cent")])
        if tendered < quote.total:
            raise InsufficientTender(f"tendered {tendered} is less than the total due {quote.total}")
        return Settlement(
            quote=quote,
            payment_method=payment_method,
            amount_tendered=tendered,
            change=max(ZERO, tendered - quote.total),
            reference_number=reference_number,
        )

    reference = (reference_number or "").strip() or None
    warnings: tuple[str, ...] = ()
    if reference is None:
        warnings = (f"{REFERENCE_LABELS[payment_method]} was not recorded",)
    return Settlement(
        quote=quote,
        payment_method=payment_method,
        amount_tendered=quote.total,
        change=ZERO,
        reference_number=reference,
        warnings=warnings,
    )
