from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backoffice.core.errors import (
    ConsolidationMismatch,
    DirectionMismatch,
    InvalidPaymentStatus,
    InvalidStatusTransition,
    ValidationFailed,
)
from backoffice.domain.payments import (
    PayableRef,
    create_payment,
    is_settled,
    payment_allocations,
    record_deposit,
    summarize_payments,
    update_payment_status,
)

PO = PayableRef(order_id="po-1", order_type="purchase_order")
CO = PayableRef(order_id="co-1", order_type="customer_order")
TODAY = date(2026, 3, 2)


def test_outbound_cheque_defaults_to_pending_clearance():
    payment = create_payment(PO, "outbound", "cheque", "1500", TODAY)
    assert payment.status == "pending_clearance"
    assert payment.is_consolidated is False
    assert payment.amount == Decimal("1500.00")
    with pytest.raises(InvalidPaymentStatus):
        update_payment_status(payment, "verified")
    with pytest.raises(InvalidPaymentStatus):
        create_payment(PO, "outbound", "cheque", "1500", TODAY, status="verified")


def test_status_moves_forward_only():
    payment = create_payment(CO, "inbound", "bank_transfer", 100, TODAY)
    confirmed = update_payment_status(payment, "confirmed")
    settled = update_payment_status(confirmed, "settled")
    assert is_settled(settled) is True
    assert is_settled(confirmed) is False
    assert payment.status == "pending_confirmation"
    with pytest.raises(InvalidStatusTransition):
        update_payment_status(settled, "confirmed")
    with pytest.raises(InvalidStatusTransition):
        update_payment_status(confirmed, "confirmed")


def test_consolidated_payment_must_balance():
    related = [
        {"order_id": "po-1", "order_type": "purchase_order", "amount": "2000"},
        {"order_id": "po-2", "order_type": "purchase_order", "amount": "1500"},
        {"order_id": "po-3", "order_type": "purchase_order", "amount": 1500},
    ]
    payment = create_payment(PO, "outbound", "bank_transfer", "5000", TODAY, related_orders=related)
    assert payment.is_consolidated is True
    assert sum(r.amount for r in payment.related_orders) == payment.amount
    assert [a.order_id for a in payment_allocations(payment)] == ["po-1", "po-2", "po-3"]

    short = related[:2] + [{"order_id": "po-3", "order_type": "purchase_order", "amount": "1400"}]
    with pytest.raises(ConsolidationMismatch):
        create_payment(PO, "outbound", "bank_transfer", "5000", TODAY, related_orders=short)


def test_consolidated_payment_validates_entries():
    with pytest.raises(ValidationFailed) as exc:
        create_payment(
            PO,
            "outbound",
            "cash",
            "100",
            TODAY,
            related_orders=[
                {"order_id": "po-2", "amount": "50"},
                {"order_id": "po-2", "amount": "0"},
            ],
        )
    fields = {e.field for e in exc.value.errors}
    assert "related_orders[1].order_id" in fields
    assert "related_orders[1].amount" in fields
    assert "related_orders" in fields


def test_direction_must_match_order_type():
    with pytest.raises(DirectionMismatch):
        create_payment(PO, "inbound", "cash", "10", TODAY)
    with pytest.raises(DirectionMismatch):
        create_payment(
            CO,
            "inbound",
            "cash",
            "20",
            TODAY,
            related_orders=[
                {"order_id": "co-1", "order_type": "customer_order", "amount": "10"},
                {"order_id": "po-1", "order_type": "purchase_order", "amount": "10"},
            ],
        )


def test_invalid_fields_are_collected():
    with pytest.raises(ValidationFailed) as exc:
        create_payment(PayableRef(order_id="", order_type="invoice"), "sideways", "barter", "-1", None)
    assert {e.field for e in exc.value.errors} == {
        "payable_id",
        "payable_type",
        "direction",
        "payment_method",
        "amount",
        "date_received",
    }


def test_deposit_flag_only_moves_forward():
    payment = create_payment(CO, "inbound", "cheque", "300", TODAY)
    deposited = record_deposit(payment, True)
    assert deposited.is_deposited is True
    assert deposited.date_deposited == TODAY
    assert record_deposit(deposited, True).date_deposited == TODAY
    with pytest.raises(InvalidStatusTransition):
        record_deposit(deposited, False)

    created_deposited = create_payment(CO, "inbound", "cash", "1", TODAY, is_deposited=True)
    assert created_deposited.date_deposited == TODAY


def test_summarize_payments_splits_completed_and_pending():
    payments = [
        create_payment(PO, "outbound", "cash", "100", TODAY),
        create_payment(PO, "outbound", "cheque", "40", TODAY),
        record_deposit(create_payment(CO, "inbound", "cheque", "60", TODAY), True),
    ]
    summary = summarize_payments(payments)
    assert summary["count"] == 3
    assert summary["completed_count"] == 2
    assert summary["completed_amount"] == Decimal("160.00")
    assert summary["pending_amount"] == Decimal("40.00")
    assert summary["outbound_amount"] == Decimal("140.00")
    assert summary["inbound_amount"] == Decimal("60.00")
    assert summary["deposited_amount"] == Decimal("60.00")


def test_amounts_with_fractions_of_a_cent_are_rejected():
    with pytest.raises(ValidationFailed) as exc:
        create_payment(
            PO,
            "outbound",
            "bank_transfer",
            "100.004",
            TODAY,
            related_orders=[{"order_id": "po-1", "order_type": "purchase_order", "amount": "100.00"}],
        )
    assert [e.field for e in exc.value.errors] == ["amount"]

    with pytest.raises(ValidationFailed) as exc:
        create_payment(
            PO,
            "outbound",
            "bank_transfer",
            "100.00",
            TODAY,
            related_orders=[{"order_id": "po-1", "order_type": "purchase_order", "amount": "100.004"}],
        )
    assert [e.field for e in exc.value.errors] == ["related_orders[0].amount"]
