from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backoffice.core.errors import InvalidTransition, LineNotFound, OrderLocked, ValidationFailed
from backoffice.domain.orders import (
    cancel_order,
    convert_line_to_cash,
    create_order,
    record_fulfillment,
    recompute_totals,
    revise_order,
    transition_status,
)


def _items():
    return [
        {"product_id": "P-1", "quantity_ordered": 2, "unit_cost": "500"},
        {"product_id": "P-2", "quantity_ordered": 10, "unit_cost": "50.00"},
    ]


def test_create_order_computes_totals_with_tax():
    order = create_order("purchase", "SUP-1", _items(), tax_rate="12", expected_at=date(2026, 1, 31))
    assert order.status == "draft"
    assert order.order_type == "purchase_order"
    assert [item.line_total for item in order.items] == [Decimal("1000.00"), Decimal("500.00")]
    assert order.subtotal == Decimal("1500.00")
    assert order.tax == Decimal("180.00")
    assert order.total == Decimal("1680.00")


def test_create_order_reports_every_invalid_field():
    with pytest.raises(ValidationFailed) as exc:
        create_order(
            "customer",
            "",
            [
                {"product_id": "P-1", "quantity_ordered": 0, "unit_cost": "10"},
                {"product_id": "", "quantity_ordered": 1, "unit_cost": "-1"},
            ],
            tax_rate=150,
        )
    fields = {e.field for e in exc.value.errors}
    assert fields == {
        "customer_id",
        "items[0].quantity_ordered",
        "items[1].product_id",
        "items[1].unit_cost",
        "tax_rate",
    }


def test_create_order_rejects_empty_items():
    with pytest.raises(ValidationFailed) as exc:
        create_order("purchase", "SUP-1", [], tax_rate=0)
    assert [e.field for e in exc.value.errors] == ["items"]


def test_transitions_are_forward_only_and_kind_specific():
    order = create_order("customer", "CUS-1", _items(), tax_rate=0)
    submitted = transition_status(order, "submitted")
    assert order.status == "draft"
    assert submitted.status == "submitted"

    with pytest.raises(InvalidTransition):
        transition_status(submitted, "received")
    with pytest.raises(InvalidTransition):
        transition_status(submitted, "draft")
    with pytest.raises(InvalidTransition):
        transition_status(order, "fulfilled")

    fulfilled = transition_status(submitted, "fulfilled")
    with pytest.raises(InvalidTransition):
        cancel_order(fulfilled)


def test_cancel_from_draft_or_submitted():
    order = create_order("purchase", "SUP-1", _items(), tax_rate=0)
    assert cancel_order(order).status == "cancelled"
    assert cancel_order(transition_status(order, "submitted")).status == "cancelled"


def test_record_fulfillment_sets_quantities_and_completes():
    order = transition_status(create_order("purchase", "SUP-1", _items(), tax_rate=0), "submitted")
    received = record_fulfillment(order, {"P-1": 2, "P-2": "7"})
    assert received.status == "received"
    assert [item.quantity_fulfilled for item in received.items] == [2, 7]
    assert [item.quantity_fulfilled for item in order.items] == [0, 0]


def test_record_fulfillment_validates_quantities():
    order = transition_status(create_order("customer", "CUS-1", _items(), tax_rate=0), "submitted")
    with pytest.raises(ValidationFailed) as exc:
        record_fulfillment(order, {"P-1": 3, "P-2": -1})
    assert {e.field for e in exc.value.errors} == {"items.P-1", "items.P-2"}
    with pytest.raises(LineNotFound):
        record_fulfillment(order, {"P-9": 1})


def test_record_fulfillment_requires_submitted_order():
    order = create_order("customer", "CUS-1", _items(), tax_rate=0)
    with pytest.raises(InvalidTransition):
        record_fulfillment(order, {"P-1": 1})


def test_voided_line_cannot_be_fulfilled():
    order = convert_line_to_cash(create_order("customer", "CUS-1", _items(), tax_rate=0), "P-2")
    order = transition_status(order, "submitted")
    with pytest.raises(ValidationFailed):
        record_fulfillment(order, {"P-2": 1})
    fulfilled = record_fulfillment(order, {"P-1": 2, "P-2": 0})
    assert fulfilled.items[1].quantity_fulfilled == 0


def test_revise_order_recomputes_and_respects_locks():
    order = create_order("purchase", "SUP-1", _items(), tax_rate=0)
    revised = revise_order(order, items=[{"product_id": "P-3", "quantity_ordered": 3, "unit_cost": "10"}], tax_rate="10")
    assert revised.subtotal == Decimal("30.00")
    assert revised.tax == Decimal("3.00")
    assert revised.total == Decimal("33.00")

    converted = convert_line_to_cash(order, "P-1")
    with pytest.raises(OrderLocked):
        revise_order(converted, items=_items())
    assert revise_order(converted, notes="call before delivery").notes == "call before delivery"

    cancelled = cancel_order(order)
    with pytest.raises(OrderLocked):
        revise_order(cancelled, notes="too late")


def test_revise_order_clears_notes_and_expected_at_only_when_asked():
    order = create_order(
        "purchase", "SUP-1", _items(), tax_rate=0, notes="leave at gate", expected_at=date(2026, 2, 1)
    )
    untouched = revise_order(order, tax_rate="5")
    assert untouched.notes == "leave at gate"
    assert untouched.expected_at == date(2026, 2, 1)

    cleared = revise_order(order, notes=None, expected_at=None)
    assert cleared.notes is None
    assert cleared.expected_at is None
    assert cleared.total == order.total


def test_create_order_rejects_repeated_product():
    items = _items() + [{"product_id": "P-1", "quantity_ordered": 3, "unit_cost": "500"}]
    with pytest.raises(ValidationFailed) as exc:
        create_order("purchase", "SUP-1", items, tax_rate=0)
    assert [e.field for e in exc.value.errors] == ["items[2].product_id"]


def test_line_total_rounds_only_the_product_of_cost_and_quantity():
    order = create_order(
        "purchase", "SUP-1", [{"product_id": "P-9", "quantity_ordered": 8, "unit_cost": "0.125"}], tax_rate=0
    )
    assert order.items[0].unit_cost == Decimal("0.125")
    assert order.items[0].line_total == Decimal("1.00")
    assert order.subtotal == Decimal("1.00")


def test_recompute_totals_excludes_voided_lines():
    order = create_order("purchase", "SUP-1", _items(), tax_rate=0)
    order.items[0].is_voided = True
    recomputed = recompute_totals(order)
    assert recomputed.subtotal == Decimal("500.00")
    assert order.subtotal == Decimal("1500.00")


def test_unknown_kind_is_a_programming_error():
    with pytest.raises(ValueError):
        create_order("wholesale", "X", _items(), tax_rate=0)
