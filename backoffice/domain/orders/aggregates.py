from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Literal, Mapping
from uuid import uuid4

from backoffice.core.errors import (
    FieldError,
    InvalidTransition,
    LineNotFound,
    OrderLocked,
    raise_if_errors,
)
from backoffice.core.money import ZERO, quantize, to_decimal

OrderKind = Literal["purchase", "customer"]

ORDER_TYPES: dict[str, str] = {"purchase": "purchase_order", "customer": "customer_order"}
KIND_BY_ORDER_TYPE: dict[str, str] = {v: k for k, v in ORDER_TYPES.items()}

# fulfilled for customer orders, received for purchase orders
COMPLETION_STATUS: dict[str, str] = {"purchase": "received", "customer": "fulfilled"}

ORDER_STATUSES: dict[str, tuple[str, ...]] = {
    kind: ("draft", "submitted", completed, "cancelled")
    for kind, completed in COMPLETION_STATUS.items()
}

CASH_CONVERSION = "cash_conversion"

# marks an edit argument the caller did not send
UNSET: Any = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OrderLineItem:
    product_id: str
    quantity_ordered: int
    unit_cost: Decimal
    line_total: Decimal
    quantity_fulfilled: int = 0
    product_name: str | None = None
    description: str | None = None
    is_voided: bool = False
    void_reason: str | None = None


@dataclass
class OrderAdjustment:
    order_id: str
    type: str
    amount: Decimal
    description: str | None = None
    related_product_id: str | None = None
    adjustment_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_now)


@dataclass
class PaymentReference:
    payment_id: str
    payment_number: str | None
    method: str
    status: str
    amount: Decimal
    is_consolidated: bool = False


@dataclass
class Order:
    order_id: str
    kind: str
    counterparty_id: str
    tax_rate: Decimal
    ordered_at: date
    number: str | None = None
    expected_at: date | None = None
    status: str = "draft"
    notes: str | None = None
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO
    items: list[OrderLineItem] = field(default_factory=list)
    adjustments: list[OrderAdjustment] = field(default_factory=list)
    version: int = 0

    @property
    def order_type(self) -> str:
        return ORDER_TYPES[self.kind]

    @property
    def completion_status(self) -> str:
        return COMPLETION_STATUS[self.kind]

    @property
    def is_locked(self) -> bool:
        return self.status in {self.completion_status, "cancelled"}

    @property
    def active_items(self) -> list[OrderLineItem]:
        return [item for item in self.items if not item.is_voided]


def allowed_transitions(kind: str, status: str) -> set[str]:
    if status == "draft":
        return {"submitted", "cancelled"}
    if status == "submitted":
        return {COMPLETION_STATUS[kind], "cancelled"}
    return set()


def _build_items(items: Iterable[Mapping[str, Any]], errors: list[FieldError]) -> list[OrderLineItem]:
    rows = list(items or [])
    if not rows:
        errors.append(FieldError("items", "at least one line item is required"))

    built: list[OrderLineItem] = []
    seen: set[str] = set()
    for idx, row in enumerate(rows):
        prefix = f"items[{idx}]"
        product_id = str(row.get("product_id") or "").strip()
        if not product_id:
            errors.append(FieldError(f"{prefix}.product_id", "product_id is required"))
        elif product_id in seen:
            # fulfillment and cash conversion address lines by product
            errors.append(FieldError(f"{prefix}.product_id", "product appears more than once"))
        seen.add(product_id)

        raw_qty = row.get("quantity_ordered")
        qty_number = to_decimal(raw_qty)
        if qty_number is None or qty_number != qty_number.to_integral_value():
            errors.append(FieldError(f"{prefix}.quantity_ordered", "must be a whole number"))
            qty = 0
        else:
            qty = int(qty_number)
            if qty <= 0:
                errors.append(FieldError(f"{prefix}.quantity_ordered", "must be greater than 0"))

        cost_number = to_decimal(row.get("unit_cost"))
        if cost_number is None:
            errors.append(FieldError(f"{prefix}.unit_cost", "must be a number"))
            unit_cost = ZERO
        else:
            unit_cost = cost_number
            if unit_cost < 0:
                errors.append(FieldError(f"{prefix}.unit_cost", "must not be negative"))

        built.append(
            OrderLineItem(
                product_id=product_id,
                quantity_ordered=qty,
                unit_cost=unit_cost,
                line_total=quantize(unit_cost * qty),
                product_name=row.get("product_name"),
                description=row.get("description"),
            )
        )
    return built


def _validate_tax_rate(tax_rate: Any, errors: list[FieldError]) -> Decimal:
    rate = to_decimal(tax_rate)
    if rate is None or rate < 0 or rate > 100:
        errors.append(FieldError("tax_rate", "must be between 0 and 100"))
        return Decimal("0")
    return rate


def compute_tax(subtotal: Decimal, tax_rate: Decimal) -> Decimal:
    return quantize(subtotal * tax_rate / Decimal(100))


def recompute_totals(order: Order) -> Order:
    """Return a copy of ``order`` with subtotal, tax and total derived from its lines.

    Voided lines stay in ``items`` but never count toward the subtotal; tax is
    charged on the subtotal and adjustments are added last.
    """
    updated = deepcopy(order)
    subtotal = sum((item.line_total for item in updated.active_items), ZERO)
    updated.subtotal = quantize(subtotal)
    updated.tax = compute_tax(updated.subtotal, updated.tax_rate)
    adjustments = sum((adj.amount for adj in updated.adjustments), ZERO)
    updated.total = quantize(updated.subtotal + updated.tax + adjustments)
    return updated


def create_order(
    kind: str,
    counterparty_id: str,
    items: Iterable[Mapping[str, Any]],
    tax_rate: Any,
    notes: str | None = None,
    expected_at: date | None = None,
    ordered_at: date | None = None,
    order_id: str | None = None,
    number: str | None = None,
) -> Order:
    if kind not in ORDER_TYPES:
        raise ValueError(f"unsupported order kind: {kind}")

    errors: list[FieldError] = []
    if not str(counterparty_id or "").strip():
        field_name = "supplier_id" if kind == "purchase" else "customer_id"
        errors.append(FieldError(field_name, "is required"))
    built_items = _build_items(items, errors)
    rate = _validate_tax_rate(tax_rate, errors)
    raise_if_errors(errors)

    order = Order(
        order_id=order_id or str(uuid4()),
        kind=kind,
        counterparty_id=str(counterparty_id),
        tax_rate=rate,
        ordered_at=ordered_at or _now().date(),
        number=number,
        expected_at=expected_at,
        notes=notes,
        items=built_items,
    )
    return recompute_totals(order)


def transition_status(order: Order, target: str) -> Order:
    if target not in ORDER_STATUSES[order.kind]:
        raise InvalidTransition(f"unknown status for {order.order_type}: {target}")
    if target not in allowed_transitions(order.kind, order.status):
        raise InvalidTransition(f"cannot move {order.order_type} from {order.status} to {target}")
    updated = deepcopy(order)
    updated.status = target
    return updated


def cancel_order(order: Order) -> Order:
    return transition_status(order, "cancelled")


def record_fulfillment(order: Order, quantities: Mapping[str, Any]) -> Order:
    """Set fulfilled/received quantities per product and complete the order."""
    completed = transition_status(order, order.completion_status)

    errors: list[FieldError] = []
    for product_id, raw_qty in quantities.items():
        lines = [item for item in completed.items if item.product_id == str(product_id)]
        if not lines:
            raise LineNotFound(f"no line for product_id={product_id}")

        field_name = f"items.{product_id}"
        qty_number = to_decimal(raw_qty)
        if qty_number is None or qty_number != qty_number.to_integral_value():
            errors.append(FieldError(field_name, "quantity must be a whole number"))
            continue
        qty = int(qty_number)

        active = [item for item in lines if not item.is_voided]
        if not active:
            if qty:
                errors.append(FieldError(field_name, "voided line cannot be fulfilled"))
            continue
        line = active[0]
        if qty < 0 or qty > line.quantity_ordered:
            errors.append(
                FieldError(field_name, f"quantity must be between 0 and {line.quantity_ordered}")
            )
            continue
        line.quantity_fulfilled = qty

    raise_if_errors(errors)
    return completed


def revise_order(
    order: Order,
    items: Any = UNSET,
    expected_at: Any = UNSET,
    notes: Any = UNSET,
    tax_rate: Any = UNSET,
) -> Order:
    """Apply an edit; arguments left as ``UNSET`` keep their current value.

    ``None`` clears ``expected_at`` and ``notes``.
    """
    if order.is_locked:
        raise OrderLocked(f"{order.order_type} is {order.status} and can no longer be edited")

    updated = deepcopy(order)
    errors: list[FieldError] = []
    if items is not UNSET:
        if updated.adjustments:
            raise OrderLocked("revert cash conversions before replacing line items")
        updated.items = _build_items(items, errors)
    if tax_rate is not UNSET:
        updated.tax_rate = _validate_tax_rate(tax_rate, errors)
    raise_if_errors(errors)
    if expected_at is not UNSET:
        updated.expected_at = expected_at
    if notes is not UNSET:
        updated.notes = notes
    return recompute_totals(updated)
