from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from backoffice.api.serializers import COUNTERPARTY_FIELDS, order_to_dict
from backoffice.api.utils import check_date_range, pagination_meta, split_ids
from backoffice.core.config import get_settings
from backoffice.core.errors import FieldError, raise_if_errors
from backoffice.domain.orders import (
    ORDER_TYPES,
    Order,
    cancel_order,
    convert_line_to_cash,
    create_order,
    record_fulfillment,
    revert_line_to_cash,
    revise_order,
    transition_status,
)
from backoffice.persistence.db import get_session
from backoffice.persistence.repository import OrderRepository, PaymentRepository
from backoffice.reconciliation import compute_outstanding

logger = logging.getLogger(__name__)

COMPLETE_ACTIONS = {"purchase": "receive", "customer": "fulfill"}


class OrderItemIn(BaseModel):
    product_id: str = ""
    product_name: str | None = None
    description: str | None = None
    quantity_ordered: Decimal | None = None
    unit_cost: Decimal | None = None


class OrderCreateRequest(BaseModel):
    supplier_id: str | None = None
    customer_id: str | None = None
    items: list[OrderItemIn] = Field(default_factory=list)
    tax_rate: Decimal | None = None
    ordered_at: date | None = None
    expected_at: date | None = Field(default=None, validation_alias=AliasChoices("expected_at", "delivery_date"))
    notes: str | None = None
    status: Literal["draft", "submitted"] = "draft"


class OrderUpdateRequest(BaseModel):
    items: list[OrderItemIn] | None = None
    tax_rate: Decimal | None = None
    expected_at: date | None = Field(default=None, validation_alias=AliasChoices("expected_at", "delivery_date"))
    notes: str | None = None
    status: Literal["draft", "submitted", "cancelled"] | None = None
    expected_version: int | None = None


class FulfilledLineIn(BaseModel):
    product_id: str
    quantity: Decimal | None = Field(
        default=None,
        validation_alias=AliasChoices("quantity", "quantity_fulfilled", "quantity_received"),
    )


class FulfillRequest(BaseModel):
    items: list[FulfilledLineIn] = Field(default_factory=list)
    expected_version: int | None = None


class VersionedRequest(BaseModel):
    expected_version: int | None = None


class LineActionRequest(BaseModel):
    product_id: str
    reason: str | None = None
    expected_version: int | None = None


def _detail(session: Session, order: Order) -> dict:
    payments = PaymentRepository(session).for_order(order)
    return order_to_dict(order, payments=payments, balance=compute_outstanding(order, payments))


def build_order_router(kind: str) -> APIRouter:
    order_type = ORDER_TYPES[kind]
    counterparty_field = COUNTERPARTY_FIELDS[kind]
    prefix = f"/{kind}-orders"
    router = APIRouter(tags=[order_type])

    @router.get(prefix)
    def list_orders(
        search: str | None = Query(default=None),
        status: str | None = Query(default=None),
        counterparty_id: str | None = Query(default=None, alias=counterparty_field),
        counterparty_ids: list[str] | None = Query(default=None, alias=f"{counterparty_field}s"),
        date_from: date | None = Query(default=None),
        date_to: date | None = Query(default=None),
        page: int = Query(default=1, ge=1),
        per_page: int | None = Query(default=None, ge=1),
        session: Session = Depends(get_session),
    ):
        check_date_range(date_from, date_to)
        ids = split_ids(counterparty_ids)
        if counterparty_id:
            ids.append(counterparty_id)
        result = OrderRepository(session).list(
            kind,
            search=search,
            status=status,
            counterparty_ids=ids,
            date_from=date_from,
            date_to=date_to,
            page=page,
            per_page=per_page,
        )
        return {
            "data": [order_to_dict(order) for order in result.items],
            "meta": pagination_meta(result.page, result.per_page, result.total),
        }

    @router.get(prefix + "/{order_id}")
    def get_order(order_id: str, session: Session = Depends(get_session)):
        order = OrderRepository(session).get(kind, order_id)
        return {"data": _detail(session, order)}

    @router.post(prefix, status_code=201)
    def create(request: OrderCreateRequest, session: Session = Depends(get_session)):
        settings = get_settings()
        counterparty = request.supplier_id if kind == "purchase" else request.customer_id
        order = create_order(
            kind,
            counterparty or "",
            [item.model_dump() for item in request.items],
            request.tax_rate if request.tax_rate is not None else settings.default_order_tax_rate,
            notes=request.notes,
            expected_at=request.expected_at,
            ordered_at=request.ordered_at,
        )
        if request.status == "submitted":
            order = transition_status(order, "submitted")
        saved = OrderRepository(session).add(order)
        return {"data": _detail(session, saved)}

    @router.put(prefix + "/{order_id}")
    def update(order_id: str, request: OrderUpdateRequest, session: Session = Depends(get_session)):
        repo = OrderRepository(session)
        order = repo.get(kind, order_id)
        # only fields present in the body are edited; an explicit null clears notes/expected_at
        edits = {
            name: getattr(request, name)
            for name in request.model_fields_set & {"items", "tax_rate", "expected_at", "notes"}
        }
        if edits.get("items") is not None:
            edits["items"] = [item.model_dump() for item in edits["items"]]
        if edits:
            order = revise_order(order, **edits)
        if request.status is not None and request.status != order.status:
            order = transition_status(order, request.status)
        saved = repo.save(order, expected_version=request.expected_version)
        logger.info("order updated: order_id=%s status=%s version=%s", saved.order_id, saved.status, saved.version)
        return {"data": _detail(session, saved)}

    @router.delete(prefix + "/{order_id}")
    def delete(
        order_id: str,
        expected_version: int | None = Query(default=None),
        session: Session = Depends(get_session),
    ):
        OrderRepository(session).delete(kind, order_id, expected_version=expected_version)
        return {"deleted": True, "id": order_id}

    @router.post(prefix + "/{order_id}/" + COMPLETE_ACTIONS[kind])
    def complete(order_id: str, request: FulfillRequest, session: Session = Depends(get_session)):
        errors = [
            FieldError(f"items[{idx}].product_id", "is required")
            for idx, line in enumerate(request.items)
            if not line.product_id.strip()
        ]
        raise_if_errors(errors)
        repo = OrderRepository(session)
        order = repo.get(kind, order_id)
        # lines left out of the request are treated as fully delivered
        quantities = {item.product_id: item.quantity_ordered for item in order.active_items}
        quantities.update({line.product_id: line.quantity for line in request.items})
        saved = repo.save(record_fulfillment(order, quantities), expected_version=request.expected_version)
        logger.info("order %s: order_id=%s number=%s", saved.completion_status, saved.order_id, saved.number)
        return {"data": _detail(session, saved)}

    @router.post(prefix + "/{order_id}/cancel")
    def cancel(order_id: str, request: VersionedRequest | None = None, session: Session = Depends(get_session)):
        repo = OrderRepository(session)
        order = repo.get(kind, order_id)
        expected_version = request.expected_version if request else None
        saved = repo.save(cancel_order(order), expected_version=expected_version)
        logger.info("order cancelled: order_id=%s number=%s", saved.order_id, saved.number)
        return {"data": _detail(session, saved)}

    @router.post(prefix + "/{order_id}/convert-to-cash")
    def convert_to_cash(order_id: str, request: LineActionRequest, session: Session = Depends(get_session)):
        repo = OrderRepository(session)
        order = repo.get(kind, order_id)
        saved = repo.save(
            convert_line_to_cash(order, request.product_id, reason=request.reason),
            expected_version=request.expected_version,
        )
        logger.info(
            "line converted to cash: order_id=%s product_id=%s total=%s",
            saved.order_id,
            request.product_id,
            saved.total,
        )
        return {"data": _detail(session, saved)}

    @router.post(prefix + "/{order_id}/revert-to-cash")
    def revert_to_cash(order_id: str, request: LineActionRequest, session: Session = Depends(get_session)):
        repo = OrderRepository(session)
        order = repo.get(kind, order_id)
        saved = repo.save(revert_line_to_cash(order, request.product_id), expected_version=request.expected_version)
        logger.info(
            "cash conversion reverted: order_id=%s product_id=%s total=%s",
            saved.order_id,
            request.product_id,
            saved.total,
        )
        return {"data": _detail(session, saved)}

    return router


purchase_orders_router = build_order_router("purchase")
customer_orders_router = build_order_router("customer")
