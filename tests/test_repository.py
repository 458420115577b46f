from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backoffice.core.errors import ConflictError, NotFound
from backoffice.domain.orders import convert_line_to_cash, create_order
from backoffice.domain.payments import PayableRef, create_payment
from backoffice.persistence.repository import OrderRepository, PaymentRepository


def _order(counterparty_id: str):
    return create_order(
        "customer",
        counterparty_id,
        [{"product_id": "P-1", "product_name": "Bread", "quantity_ordered": 3, "unit_cost": "33.33"}],
        tax_rate="12",
        ordered_at=date(2026, 2, 14),
    )


def test_orders_round_trip_through_storage(session):
    repo = OrderRepository(session)
    saved = repo.add(convert_line_to_cash(_order("CUS-REPO"), "P-1", reason="paid at counter"))
    assert saved.number.startswith("CO-")

    loaded = repo.get("customer", saved.order_id)
    assert loaded.items[0].is_voided is True
    assert loaded.items[0].void_reason == "paid at counter"
    assert loaded.adjustments[0].amount == Decimal("-99.99")
    assert (loaded.subtotal, loaded.tax, loaded.total) == (saved.subtotal, saved.tax, saved.total)

    with pytest.raises(NotFound):
        repo.get("purchase", saved.order_id)


def test_save_rejects_stale_snapshot(session):
    repo = OrderRepository(session)
    saved = repo.add(_order("CUS-STALE"))
    stale = repo.get("customer", saved.order_id)
    repo.save(convert_line_to_cash(saved, "P-1"))
    with pytest.raises(ConflictError):
        repo.save(stale)


def test_list_filters_by_date_range(session):
    repo = OrderRepository(session)
    repo.add(_order("CUS-DATES"))
    inside = repo.list("customer", counterparty_ids=["CUS-DATES"], date_from=date(2026, 2, 1), date_to=date(2026, 2, 28))
    outside = repo.list("customer", counterparty_ids=["CUS-DATES"], date_from=date(2026, 3, 1))
    assert inside.total == 1
    assert outside.total == 0


def test_payments_for_order_include_consolidated_shares(session):
    orders = OrderRepository(session)
    first = orders.add(_order("CUS-SHARE"))
    second = orders.add(_order("CUS-SHARE"))
    payment = create_payment(
        PayableRef(order_id=first.order_id, order_type="customer_order"),
        "inbound",
        "cash",
        "150",
        date(2026, 2, 15),
        related_orders=[
            {"order_id": first.order_id, "order_type": "customer_order", "amount": "100"},
            {"order_id": second.order_id, "order_type": "customer_order", "amount": "50"},
        ],
    )
    payments = PaymentRepository(session)
    stored = payments.add(payment)
    assert stored.number.startswith("PAY-")
    assert [p.payment_id for p in payments.for_order(second)] == [stored.payment_id]
    assert payments.for_order(second)[0].related_orders[1].amount == Decimal("50.00")
