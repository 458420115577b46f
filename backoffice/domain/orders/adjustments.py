from __future__ import annotations

from copy import deepcopy

from backoffice.core.errors import LineAlreadyVoided, LineNotFound, LineNotVoided, OrderLocked
from backoffice.domain.orders.aggregates import (
    CASH_CONVERSION,
    Order,
    OrderAdjustment,
    OrderLineItem,
    recompute_totals,
)


def _ensure_mutable(order: Order) -> None:
    if order.is_locked:
        raise OrderLocked(f"{order.order_type} is {order.status}; line items can no longer change")


def _lines_for(order: Order, product_id: str) -> list[OrderLineItem]:
    lines = [item for item in order.items if item.product_id == str(product_id)]
    if not lines:
        raise LineNotFound(f"no line for product_id={product_id}")
    return lines


def convert_line_to_cash(order: Order, product_id: str, reason: str | None = None) -> Order:
    _ensure_mutable(order)
    updated = deepcopy(order)
    candidates = [item for item in _lines_for(updated, product_id) if not item.is_voided]
    if not candidates:
        raise LineAlreadyVoided(f"line for product_id={product_id} is already converted to cash")

    line = candidates[0]
    line.is_voided = True
    line.void_reason = reason
    updated.adjustments.append(
        OrderAdjustment(
            order_id=updated.order_id,
            type=CASH_CONVERSION,
            amount=-line.line_total,
            description=f"Converted {line.product_name or line.product_id} to cash",
            related_product_id=line.product_id,
        )
    )
    return recompute_totals(updated)


def revert_line_to_cash(order: Order, product_id: str) -> Order:
    _ensure_mutable(order)
    updated = deepcopy(order)
    candidates = [item for item in _lines_for(updated, product_id) if item.is_voided]
    if not candidates:
        raise LineNotVoided(f"line for product_id={product_id} is not converted to cash")

    line = candidates[0]
    line.is_voided = False
    line.void_reason = None

    # Remove the adjustment this line produced; any later duplicate stays for its own line.
    for idx, adjustment in enumerate(updated.adjustments):
        if (
            adjustment.type == CASH_CONVERSION
            and adjustment.related_product_id == line.product_id
            and adjustment.amount == -line.line_total
        ):
            del updated.adjustments[idx]
            break
    return recompute_totals(updated)
