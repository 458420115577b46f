from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from backoffice.api.serializers import payment_to_dict
from backoffice.api.utils import check_date_range, pagination_meta
from backoffice.core.errors import NotFound
from backoffice.core.money import money_str
from backoffice.domain.payments import (
    DIRECTION_BY_ORDER_TYPE,
    STATUS_TABLE,
    PayableRef,
    create_payment,
    record_deposit,
    summarize_payments,
    update_payment_status,
)
from backoffice.persistence.db import get_session
from backoffice.persistence.repository import OrderRepository, PaymentRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


class RelatedOrderIn(BaseModel):
    order_id: str = Field(default="", validation_alias=AliasChoices("order_id", "id"))
    order_type: str | None = Field(default=None, validation_alias=AliasChoices("order_type", "type"))
    amount: Decimal | None = None


class PaymentCreateRequest(BaseModel):
    payable_id: str
    payable_type: str
    direction: str | None = None
    payment_method: str
    amount: Decimal | None = None
    date_received: date | None = None
    status: str | None = None
    bank_name: str | None = None
    account_number: str | None = None
    reference_number: str | None = None
    is_deposited: bool = False
    date_deposited: date | None = None
    notes: str | None = None
    related_orders: list[RelatedOrderIn] | None = None


class PaymentUpdateRequest(BaseModel):
    # amount, method and allocations are fixed once recorded
    model_config = ConfigDict(extra="forbid")

    status: str | None = None
    is_deposited: bool | None = None
    date_deposited: date | None = None
    expected_version: int | None = None


def _filters(
    payable_id: str | None = Query(default=None),
    payable_type: str | None = Query(default=None),
    direction: str | None = Query(default=None),
    is_deposited: bool | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
) -> dict:
    check_date_range(date_from, date_to)
    return {
        "payable_id": payable_id,
        "payable_type": payable_type,
        "direction": direction,
        "is_deposited": is_deposited,
        "date_from": date_from,
        "date_to": date_to,
    }


@router.get("/payments")
def list_payments(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    filters: dict = Depends(_filters),
    session: Session = Depends(get_session),
):
    result = PaymentRepository(session).list(page=page, per_page=per_page, **filters)
    return {
        "data": [payment_to_dict(p) for p in result.items],
        "meta": pagination_meta(result.page, result.per_page, result.total),
    }


@router.get("/payments/summary")
def payments_summary(filters: dict = Depends(_filters), session: Session = Depends(get_session)):
    summary = summarize_payments(PaymentRepository(session).matching(**filters))
    return {
        "data": {key: money_str(value) if isinstance(value, Decimal) else value for key, value in summary.items()}
    }


@router.get("/payments/statuses")
def payment_statuses():
    return {
        "data": {
            direction: {method: list(statuses) for method, statuses in methods.items()}
            for direction, methods in STATUS_TABLE.items()
        }
    }


@router.get("/payments/{payment_id}")
def get_payment(payment_id: str, session: Session = Depends(get_session)):
    return {"data": payment_to_dict(PaymentRepository(session).get(payment_id))}


@router.post("/payments", status_code=201)
def create(request: PaymentCreateRequest, session: Session = Depends(get_session)):
    related = None
    if request.related_orders is not None:
        related = [
            {"order_id": r.order_id, "order_type": r.order_type or request.payable_type, "amount": r.amount}
            for r in request.related_orders
        ]
    payment = create_payment(
        PayableRef(order_id=request.payable_id, order_type=request.payable_type),
        request.direction or DIRECTION_BY_ORDER_TYPE.get(request.payable_type, ""),
        request.payment_method,
        request.amount,
        request.date_received,
        status=request.status,
        related_orders=related,
        bank_name=request.bank_name,
        account_number=request.account_number,
        reference_number=request.reference_number,
        is_deposited=request.is_deposited,
        date_deposited=request.date_deposited,
        notes=request.notes,
    )

    orders = OrderRepository(session)
    targets = {(payment.payable.order_id, payment.payable.order_type)}
    targets.update((r.order_id, r.order_type) for r in payment.related_orders)
    for order_id, order_type in sorted(targets):
        if not orders.exists(order_type, order_id):
            raise NotFound(f"{order_type} {order_id} not found")

    saved = PaymentRepository(session).add(payment)
    return {"data": payment_to_dict(saved)}


@router.put("/payments/{payment_id}")
def update(payment_id: str, request: PaymentUpdateRequest, session: Session = Depends(get_session)):
    repo = PaymentRepository(session)
    payment = repo.get(payment_id)
    if request.status is not None and request.status != payment.status:
        payment = update_payment_status(payment, request.status)
    if request.is_deposited is not None:
        payment = record_deposit(payment, request.is_deposited, request.date_deposited)
    saved = repo.save(payment, expected_version=request.expected_version)
    logger.info(
        "payment updated: payment_id=%s status=%s deposited=%s",
        saved.payment_id,
        saved.status,
        saved.is_deposited,
    )
    return {"data": payment_to_dict(saved)}


@router.delete("/payments/{payment_id}")
def delete(
    payment_id: str,
    expected_version: int | None = Query(default=None),
    session: Session = Depends(get_session),
):
    PaymentRepository(session).delete(payment_id, expected_version=expected_version)
    return {"deleted": True, "id": payment_id}
