"""
Payment ledger rules.

A payment settles either one order (its payable) or, when consolidated,
several orders of the same type, each with its own recorded share. The
status a payment may carry depends on its method and direction; the table
below is the single source of truth for both the allowed vocabulary and the
forward-only order in which statuses progress.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Literal, Mapping
from uuid import uuid4

from backoffice.core.errors import (
    ConsolidationMismatch,
    DirectionMismatch,
    FieldError,
    InvalidPaymentStatus,
    InvalidStatusTransition,
    raise_if_errors,
)
from backoffice.core.money import ZERO, has_sub_cent, to_decimal

PaymentDirection = Literal["inbound", "outbound"]

PAYMENT_METHODS: tuple[str, ...] = ("cash", "cheque", "bank_transfer", "credit_card", "online_wallet")

STATUS_TABLE: dict[str, dict[str, tuple[str, ...]]] = {
    "outbound": {
        "cash": ("paid",),
        "cheque": ("pending_clearance", "cleared"),
        "bank_transfer": ("pending_verification", "verified", "transferred"),
        "credit_card": ("charged",),
        "online_wallet": ("sent", "confirmed"),
    },
    "inbound": {
        "cash": ("received",),
        "cheque": ("deposited", "cleared"),
        "bank_transfer": ("pending_confirmation", "confirmed", "settled"),
        "credit_card": ("charged",),
        "online_wallet": ("received", "settled"),
    },
}

# purchase orders are payables, customer orders are receivables
DIRECTION_BY_ORDER_TYPE: dict[str, str] = {
    "purchase_order": "outbound",
    "customer_order": "inbound",
}

COMPLETED_STATUSES = frozenset(
    {
        "deposited",
        "cleared",
        "verified",
        "confirmed",
        "settled",
        "transferred",
        "sent",
        "charged",
        "received",
        "paid",
    }
)


@dataclass(frozen=True)
class PayableRef:
    order_id: str
    order_type: str


@dataclass
class RelatedOrder:
    order_id: str
    order_type: str
    amount: Decimal


@dataclass
class Payment:
    payment_id: str
    payable: PayableRef
    direction: str
    method: str
    amount: Decimal
    date_received: date
    status: str
    number: str | None = None
    bank_name: str | None = None
    account_number: str | None = None
    reference_number: str | None = None
    is_deposited: bool = False
    date_deposited: date | None = None
    notes: str | None = None
    is_consolidated: bool = False
    related_orders: list[RelatedOrder] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = 0


def status_row(method: str, direction: str) -> tuple[str, ...]:
    try:
        return STATUS_TABLE[direction][method]
    except KeyError as exc:
        raise InvalidPaymentStatus(f"no statuses defined for method={method} direction={direction}") from exc


def default_status(method: str, direction: str) -> str:
    return status_row(method, direction)[0]


def is_settled(payment: Payment) -> bool:
    return payment.status == status_row(payment.method, payment.direction)[-1]


def is_completed(status: str | None) -> bool:
    return status in COMPLETED_STATUSES


def _check_status(method: str, direction: str, status: str) -> str:
    row = status_row(method, direction)
    if status not in row:
        raise InvalidPaymentStatus(
            f"status {status} is not valid for {direction} {method} payments; expected one of {', '.join(row)}"
        )
    return status


def _build_related_orders(
    payable: PayableRef,
    related_orders: Iterable[Mapping[str, Any] | RelatedOrder],
    errors: list[FieldError],
) -> list[RelatedOrder]:
    built: list[RelatedOrder] = []
    seen: set[tuple[str, str]] = set()
    for idx, raw in enumerate(related_orders):
        if isinstance(raw, RelatedOrder):
            raw = {"order_id": raw.order_id, "order_type": raw.order_type, "amount": raw.amount}
        prefix = f"related_orders[{idx}]"
        order_id = str(raw.get("order_id") or "").strip()
        order_type = str(raw.get("order_type") or payable.order_type)
        if not order_id:
            errors.append(FieldError(f"{prefix}.order_id", "is required"))
        amount = to_decimal(raw.get("amount"))
        if amount is None or amount <= 0:
            errors.append(FieldError(f"{prefix}.amount", "must be greater than 0"))
            amount = ZERO
        elif has_sub_cent(amount):
            errors.append(FieldError(f"{prefix}.amount", "must not have fractions of a cent"))
        key = (order_id, order_type)
        if key in seen:
            errors.append(FieldError(f"{prefix}.order_id", "order appears more than once"))
        seen.add(key)
        built.append(RelatedOrder(order_id=order_id, order_type=order_type, amount=amount))

    if not built:
        errors.append(FieldError("related_orders", "a consolidated payment needs at least one order"))
    elif (payable.order_id, payable.order_type) not in seen:
        errors.append(FieldError("related_orders", "must include the payable order"))
    return built


def create_payment(
    payable: PayableRef,
    direction: str,
    method: str,
    amount: Any,
    date_received: date,
    *,
    status: str | None = None,
    related_orders: Iterable[Mapping[str, Any] | RelatedOrder] | None = None,
    bank_name: str | None = None,
    account_number: str | None = None,
    reference_number: str | None = None,
    is_deposited: bool = False,
    date_deposited: date | None = None,
    notes: str | None = None,
    payment_id: str | None = None,
    number: str | None = None,
) -> Payment:
    errors: list[FieldError] = []
    if not str(payable.order_id or "").strip():
        errors.append(FieldError("payable_id", "is required"))
    if payable.order_type not in DIRECTION_BY_ORDER_TYPE:
        errors.append(FieldError("payable_type", f"must be one of {', '.join(DIRECTION_BY_ORDER_TYPE)}"))
    if direction not in STATUS_TABLE:
        errors.append(FieldError("direction", "must be inbound or outbound"))
    if method not in PAYMENT_METHODS:
        errors.append(FieldError("payment_method", f"must be one of {', '.join(PAYMENT_METHODS)}"))
    parsed_amount = to_decimal(amount)
    if parsed_amount is None or parsed_amount <= 0:
        errors.append(FieldError("amount", "must be greater than 0"))
        parsed_amount = ZERO
    elif has_sub_cent(parsed_amount):
        errors.append(FieldError("amount", "must not have fractions of a cent"))
    if date_received is None:
        errors.append(FieldError("date_received", "is required"))

    related: list[RelatedOrder] = []
    if related_orders is not None:
        related = _build_related_orders(payable, related_orders, errors)
    raise_if_errors(errors)

    expected_direction = DIRECTION_BY_ORDER_TYPE[payable.order_type]
    if direction != expected_direction:
        raise DirectionMismatch(f"{payable.order_type} payments must be {expected_direction}, got {direction}")
    mixed = sorted({r.order_type for r in related if r.order_type != payable.order_type})
    if mixed:
        raise DirectionMismatch(
            f"consolidated {payable.order_type} payment cannot include {', '.join(mixed)} entries"
        )

    if related_orders is not None:
        allocated = sum((r.amount for r in related), ZERO)
        if allocated != parsed_amount:
            raise ConsolidationMismatch(
                f"related order amounts sum to {allocated} but payment amount is {parsed_amount}"
            )

    resolved_status = _check_status(method, direction, status) if status else default_status(method, direction)

    return Payment(
        payment_id=payment_id or str(uuid4()),
        payable=payable,
        direction=direction,
        method=method,
        amount=parsed_amount,
        date_received=date_received,
        status=resolved_status,
        number=number,
        bank_name=bank_name,
        account_number=account_number,
        reference_number=reference_number,
        is_deposited=is_deposited,
        date_deposited=(date_deposited or date_received) if is_deposited else None,
        notes=notes,
        is_consolidated=related_orders is not None,
        related_orders=related,
    )


def update_payment_status(payment: Payment, new_status: str) -> Payment:
    row = status_row(payment.method, payment.direction)
    _check_status(payment.method, payment.direction, new_status)
    current = row.index(payment.status) if payment.status in row else -1
    if row.index(new_status) <= current:
        raise InvalidStatusTransition(
            f"payment status can only move forward: {payment.status} -> {new_status} is not allowed"
        )
    updated = deepcopy(payment)
    updated.status = new_status
    return updated


def record_deposit(payment: Payment, is_deposited: bool, date_deposited: date | None = None) -> Payment:
    if payment.is_deposited:
        if not is_deposited:
            raise InvalidStatusTransition("a deposited payment cannot be marked as not deposited")
        if date_deposited is not None and date_deposited != payment.date_deposited:
            raise InvalidStatusTransition("deposit date is already recorded")
        return deepcopy(payment)

    updated = deepcopy(payment)
    if is_deposited:
        updated.is_deposited = True
        updated.date_deposited = date_deposited or payment.date_received
    return updated


def payment_allocations(payment: Payment) -> list[RelatedOrder]:
    """Per-order shares of a payment: the related entries, or the whole amount for its payable."""
    if payment.is_consolidated:
        return list(payment.related_orders)
    return [RelatedOrder(order_id=payment.payable.order_id, order_type=payment.payable.order_type, amount=payment.amount)]


def summarize_payments(payments: Iterable[Payment]) -> dict[str, Any]:
    summary = {
        "count": 0,
        "completed_count": 0,
        "pending_count": 0,
        "completed_amount": ZERO,
        "pending_amount": ZERO,
        "inbound_amount": ZERO,
        "outbound_amount": ZERO,
        "outbound_count": 0,
        "deposited_amount": ZERO,
    }
    for payment in payments:
        summary["count"] += 1
        if is_completed(payment.status):
            summary["completed_count"] += 1
            summary["completed_amount"] += payment.amount
        else:
            summary["pending_count"] += 1
            summary["pending_amount"] += payment.amount
        if payment.direction == "outbound":
            summary["outbound_count"] += 1
            summary["outbound_amount"] += payment.amount
        else:
            summary["inbound_amount"] += payment.amount
        if payment.is_deposited:
            summary["deposited_amount"] += payment.amount
    return summary
