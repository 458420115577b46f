from __future__ import annotations

from datetime import date, datetime
from typing import Any

from backoffice.core.money import money_str, price_str
from backoffice.domain.orders.aggregates import Order, OrderAdjustment, OrderLineItem
from backoffice.domain.payments.ledger import Payment, is_completed, is_settled
from backoffice.domain.pricing.checkout import CheckoutQuote, TransactionRecord
from backoffice.reconciliation.rules import (
    OutstandingBalance,
    ReconciliationResult,
    derive_payment_status,
    payment_references,
)

COUNTERPARTY_FIELDS = {"purchase": "supplier_id", "customer": "customer_id"}
FULFILLED_FIELDS = {"purchase": "quantity_received", "customer": "quantity_fulfilled"}
NUMBER_FIELDS = {"purchase": "po_number", "customer": "co_number"}


def _iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def line_item_to_dict(kind: str, item: OrderLineItem) -> dict[str, Any]:
    return {
        "product_id": item.product_id,
        "product_name": item.product_name,
        "description": item.description,
        "quantity_ordered": item.quantity_ordered,
        FULFILLED_FIELDS[kind]: item.quantity_fulfilled,
        "unit_cost": price_str(item.unit_cost),
        "line_total": money_str(item.line_total),
        "is_voided": item.is_voided,
        "void_reason": item.void_reason,
    }


def adjustment_to_dict(adj: OrderAdjustment) -> dict[str, Any]:
    return {
        "id": adj.adjustment_id,
        "order_id": adj.order_id,
        "type": adj.type,
        "amount": money_str(adj.amount),
        "description": adj.description,
        "related_product_id": adj.related_product_id,
        "created_at": _iso(adj.created_at),
    }


def order_to_dict(order: Order, payments: list[Payment] | None = None, balance: OutstandingBalance | None = None) -> dict:
    body: dict[str, Any] = {
        "id": order.order_id,
        NUMBER_FIELDS[order.kind]: order.number,
        "order_type": order.order_type,
        COUNTERPARTY_FIELDS[order.kind]: order.counterparty_id,
        "status": order.status,
        "ordered_at": _iso(order.ordered_at),
        "expected_at": _iso(order.expected_at),
        "tax_rate": format(order.tax_rate, "f"),
        "subtotal": money_str(order.subtotal),
        "tax": money_str(order.tax),
        "total": money_str(order.total),
        "notes": order.notes,
        "version": order.version,
        "items": [line_item_to_dict(order.kind, item) for item in order.items],
        "adjustments": [adjustment_to_dict(adj) for adj in order.adjustments],
    }
    if payments is not None:
        body["payments"] = [
            {
                "id": ref.payment_id,
                "payment_number": ref.payment_number,
                "amount": money_str(ref.amount),
                "payment_method": ref.method,
                "status": ref.status,
                "is_consolidated": ref.is_consolidated,
            }
            for ref in payment_references(order, payments)
        ]
        body["payment_status"] = derive_payment_status(order, payments)
    if balance is not None:
        body["total_paid"] = money_str(balance.total_paid)
        body["outstanding_balance"] = money_str(balance.outstanding_balance)
    return body


def payment_to_dict(payment: Payment) -> dict[str, Any]:
    return {
        "id": payment.payment_id,
        "payment_number": payment.number,
        "payable_id": payment.payable.order_id,
        "payable_type": payment.payable.order_type,
        "direction": payment.direction,
        "payment_method": payment.method,
        "amount": money_str(payment.amount),
        "status": payment.status,
        "is_completed": is_completed(payment.status),
        "is_settled": is_settled(payment),
        "bank_name": payment.bank_name,
        "account_number": payment.account_number,
        "reference_number": payment.reference_number,
        "date_received": _iso(payment.date_received),
        "is_deposited": payment.is_deposited,
        "date_deposited": _iso(payment.date_deposited),
        "notes": payment.notes,
        "is_consolidated": payment.is_consolidated,
        "related_orders": [
            {"order_id": r.order_id, "order_type": r.order_type, "amount": money_str(r.amount)}
            for r in payment.related_orders
        ],
        "created_at": _iso(payment.created_at),
        "version": payment.version,
    }


def quote_to_dict(quote: CheckoutQuote) -> dict[str, Any]:
    return {
        "items": [
            {
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "unit_price": price_str(line.price),
                "line_total": money_str(line.line_total),
            }
            for line in quote.lines
        ],
        "subtotal": money_str(quote.subtotal),
        "discount_type": quote.discount_type,
        "discount_value": format(quote.discount_value, "f"),
        "discount_amount": money_str(quote.discount_amount),
        "total": money_str(quote.total),
        "vat_percentage": format(quote.vat_percentage, "f"),
        "net_of_vat": money_str(quote.net_of_vat),
        "tax": money_str(quote.tax),
    }


def transaction_to_dict(record: TransactionRecord) -> dict[str, Any]:
    return {
        "id": record.transaction_id,
        "invoice_number": record.invoice_number,
        "customer_id": record.customer_id,
        "payment_method": record.payment_method,
        "items": record.items,
        "subtotal": money_str(record.subtotal),
        "discount_type": record.discount_type,
        "discount_value": format(record.discount_value, "f"),
        "discount_amount": money_str(record.discount_amount),
        "vat_percentage": format(record.vat_percentage, "f"),
        "net_of_vat": money_str(record.net_of_vat),
        "tax": money_str(record.tax),
        "total": money_str(record.total),
        "meta": {
            "amount_tendered": money_str(record.amount_tendered),
            "change": money_str(record.change),
            "reference_number": record.reference_number,
        },
        "warnings": record.warnings,
        "created_at": _iso(record.created_at),
    }


def reconciliation_to_dict(result: ReconciliationResult) -> dict[str, Any]:
    return {"rule": result.rule, "passed": result.passed, "detail": result.detail}
