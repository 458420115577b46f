from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from backoffice.api.serializers import quote_to_dict, transaction_to_dict
from backoffice.api.utils import day_bounds, pagination_meta, split_ids
from backoffice.core.config import get_settings
from backoffice.domain.pricing import CheckoutQuote, compute_quote, settle
from backoffice.persistence.db import get_session
from backoffice.persistence.repository import TransactionRepository

router = APIRouter(tags=["checkout"])


class CartItemIn(BaseModel):
    product_id: str = Field(default="", validation_alias=AliasChoices("product_id", "id"))
    product_name: str | None = Field(default=None, validation_alias=AliasChoices("product_name", "name"))
    price: Decimal | None = Field(default=None, validation_alias=AliasChoices("price", "unit_price"))
    quantity: Decimal | None = None


class QuoteRequest(BaseModel):
    items: list[CartItemIn] = Field(default_factory=list)
    discount_type: str = "percentage"
    discount_value: Decimal | None = None
    vat_percentage: Decimal | None = None


class CheckoutRequest(QuoteRequest):
    payment_method: str
    amount_tendered: Decimal | None = None
    reference_number: str | None = None
    customer_id: str | None = None


def _quote(request: QuoteRequest) -> CheckoutQuote:
    vat = request.vat_percentage
    if vat is None:
        vat = get_settings().default_vat_percentage
    return compute_quote(
        [item.model_dump() for item in request.items],
        discount_type=request.discount_type,
        discount_value=request.discount_value,
        vat_percentage=vat,
    )


@router.post("/checkout/quote")
def checkout_quote(request: QuoteRequest):
    return {"data": quote_to_dict(_quote(request))}


@router.post("/checkout", status_code=201)
def checkout(request: CheckoutRequest, session: Session = Depends(get_session)):
    settlement = settle(
        _quote(request),
        request.payment_method,
        amount_tendered=request.amount_tendered,
        reference_number=request.reference_number,
    )
    record = TransactionRepository(session).add(settlement, customer_id=request.customer_id)
    return {"data": transaction_to_dict(record)}


@router.get("/transactions")
def list_transactions(
    search: str | None = Query(default=None),
    customer_ids: list[str] | None = Query(default=None),
    payment_method: str | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    session: Session = Depends(get_session),
):
    start, end = day_bounds(date_from, date_to)
    result = TransactionRepository(session).list(
        search=search,
        customer_ids=split_ids(customer_ids),
        payment_method=payment_method,
        start=start,
        end=end,
        page=page,
        per_page=per_page,
    )
    return {
        "data": [transaction_to_dict(record) for record in result.items],
        "meta": pagination_meta(result.page, result.per_page, result.total),
    }


@router.get("/transactions/{transaction_id}")
def get_transaction(transaction_id: str, session: Session = Depends(get_session)):
    return {"data": transaction_to_dict(TransactionRepository(session).get(transaction_id))}
