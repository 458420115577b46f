from __future__ import annotations

from decimal import Decimal

import pytest

from backoffice.core.errors import LineAlreadyVoided, LineNotFound, LineNotVoided, OrderLocked
from backoffice.domain.orders import (
    CASH_CONVERSION,
    cancel_order,
    convert_line_to_cash,
    create_order,
    record_fulfillment,
    revert_line_to_cash,
    transition_status,
)


@pytest.fixture()
def order():
    return create_order(
        "customer",
        "CUS-1",
        [
            {"product_id": "P-1", "product_name": "Rice", "quantity_ordered": 2, "unit_cost": "500"},
            {"product_id": "P-2", "quantity_ordered": 5, "unit_cost": "100"},
        ],
        tax_rate=0,
    )


def test_convert_voids_line_and_adds_negative_adjustment(order):
    converted = convert_line_to_cash(order, "P-2", reason="customer paid cash")
    line = converted.items[1]
    assert line.is_voided is True
    assert line.void_reason == "customer paid cash"
    assert converted.subtotal == Decimal("1000.00")
    assert len(converted.adjustments) == 1
    adjustment = converted.adjustments[0]
    assert adjustment.type == CASH_CONVERSION
    assert adjustment.amount == Decimal("-500.00")
    assert adjustment.related_product_id == "P-2"
    assert converted.total == converted.subtotal + converted.tax + adjustment.amount

    # input untouched
    assert order.items[1].is_voided is False
    assert order.adjustments == []


def test_revert_restores_pre_convert_state(order):
    converted = convert_line_to_cash(order, "P-2")
    reverted = revert_line_to_cash(converted, "P-2")
    assert reverted.items == order.items
    assert reverted.adjustments == order.adjustments
    assert reverted.subtotal == Decimal("1500.00")
    assert reverted.total == order.total


def test_revert_only_removes_matching_adjustment(order):
    both = convert_line_to_cash(convert_line_to_cash(order, "P-1"), "P-2")
    reverted = revert_line_to_cash(both, "P-1")
    assert [adj.related_product_id for adj in reverted.adjustments] == ["P-2"]
    assert reverted.subtotal == Decimal("1000.00")


def test_convert_errors(order):
    with pytest.raises(LineNotFound):
        convert_line_to_cash(order, "P-404")
    converted = convert_line_to_cash(order, "P-1")
    with pytest.raises(LineAlreadyVoided):
        convert_line_to_cash(converted, "P-1")
    with pytest.raises(LineNotVoided):
        revert_line_to_cash(order, "P-1")


def test_locked_orders_refuse_line_changes(order):
    with pytest.raises(OrderLocked):
        convert_line_to_cash(cancel_order(order), "P-1")

    converted = convert_line_to_cash(order, "P-1")
    fulfilled = record_fulfillment(transition_status(converted, "submitted"), {"P-2": 5})
    with pytest.raises(OrderLocked):
        revert_line_to_cash(fulfilled, "P-1")


def test_submitted_orders_can_still_convert(order):
    submitted = transition_status(order, "submitted")
    assert convert_line_to_cash(submitted, "P-1").items[0].is_voided is True
