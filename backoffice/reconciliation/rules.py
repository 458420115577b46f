from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from backoffice.core.money import ZERO, quantize
from backoffice.domain.orders.aggregates import Order, PaymentReference, compute_tax
from backoffice.domain.payments.ledger import STATUS_TABLE, Payment, payment_allocations


@dataclass(frozen=True)
class OutstandingBalance:
    total_paid: Decimal
    outstanding_balance: Decimal


@dataclass
class ReconciliationResult:
    rule: str
    passed: bool
    detail: str


def _share_for(order: Order, payment: Payment) -> Decimal | None:
    for allocation in payment_allocations(payment):
        if allocation.order_id == order.order_id and allocation.order_type == order.order_type:
            return allocation.amount
    return None


def compute_outstanding(order: Order, payments: Iterable[Payment]) -> OutstandingBalance:
    # Consolidated payments count only the share recorded for this order.
    total_paid = ZERO
    for payment in payments:
        share = _share_for(order, payment)
        if share is not None:
            total_paid += share
    total_paid = quantize(total_paid)
    return OutstandingBalance(
        total_paid=total_paid,
        outstanding_balance=max(ZERO, quantize(order.total - total_paid)),
    )


def derive_payment_status(order: Order, payments: Iterable[Payment]) -> str:
    balance = compute_outstanding(order, payments)
    if balance.total_paid <= 0:
        return "pending"
    if balance.outstanding_balance > 0:
        return "partial"
    return "paid"


def payment_references(order: Order, payments: Iterable[Payment]) -> list[PaymentReference]:
    refs: list[PaymentReference] = []
    for payment in payments:
        share = _share_for(order, payment)
        if share is None:
            continue
        refs.append(
            PaymentReference(
                payment_id=payment.payment_id,
                payment_number=payment.number,
                method=payment.method,
                status=payment.status,
                amount=share,
                is_consolidated=payment.is_consolidated,
            )
        )
    return refs


def check_order_totals(orders: Iterable[Order]) -> ReconciliationResult:
    for order in orders:
        subtotal = quantize(sum((item.line_total for item in order.active_items), ZERO))
        tax = compute_tax(subtotal, order.tax_rate)
        adjustments = sum((adj.amount for adj in order.adjustments), ZERO)
        expected_total = quantize(subtotal + tax + adjustments)
        if (order.subtotal, order.tax, order.total) != (subtotal, tax, expected_total):
            return ReconciliationResult(
                rule="order_totals_reconcile",
                passed=False,
                detail=(
                    f"order={order.order_id} recorded subtotal={order.subtotal} tax={order.tax} "
                    f"total={order.total}, expected subtotal={subtotal} tax={tax} total={expected_total}"
                ),
            )
    return ReconciliationResult(rule="order_totals_reconcile", passed=True, detail="ok")


def check_consolidated_payments_balance(payments: Iterable[Payment]) -> ReconciliationResult:
    for payment in payments:
        if not payment.is_consolidated:
            continue
        allocated = sum((r.amount for r in payment.related_orders), ZERO)
        if allocated != payment.amount:
            return ReconciliationResult(
                rule="consolidated_payments_balance",
                passed=False,
                detail=f"payment={payment.payment_id} amount={payment.amount}, allocated={allocated}",
            )
    return ReconciliationResult(rule="consolidated_payments_balance", passed=True, detail="ok")


def check_payment_statuses(payments: Iterable[Payment]) -> ReconciliationResult:
    for payment in payments:
        row = STATUS_TABLE.get(payment.direction, {}).get(payment.method, ())
        if payment.status not in row:
            return ReconciliationResult(
                rule="payment_status_in_table",
                passed=False,
                detail=f"payment={payment.payment_id} {payment.direction}/{payment.method} has status={payment.status}",
            )
    return ReconciliationResult(rule="payment_status_in_table", passed=True, detail="ok")


def check_no_overpayment(orders: Iterable[Order], payments: Iterable[Payment]) -> ReconciliationResult:
    payment_list = list(payments)
    for order in orders:
        if order.status == "cancelled":
            continue
        paid = compute_outstanding(order, payment_list).total_paid
        # a cash conversion can drive the total below zero; nothing is owed then
        if paid > 0 and paid > max(order.total, ZERO):
            return ReconciliationResult(
                rule="no_overpayment",
                passed=False,
                detail=f"order={order.order_id} total={order.total}, paid={paid}",
            )
    return ReconciliationResult(rule="no_overpayment", passed=True, detail="ok")


def run_reconciliation(orders: Iterable[Order], payments: Iterable[Payment]) -> list[ReconciliationResult]:
    order_list = list(orders)
    payment_list = list(payments)
    return [
        check_order_totals(order_list),
        check_consolidated_payments_balance(payment_list),
        check_payment_statuses(payment_list),
        check_no_overpayment(order_list, payment_list),
    ]
