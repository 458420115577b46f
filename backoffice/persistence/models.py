from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


def _json_type():
    return JSON().with_variant(JSONB(astext_type=Text()), "postgresql")


class Base(DeclarativeBase):
    pass


class OrderModel(Base):
    __tablename__ = "orders"

    seq_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    counterparty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="draft", nullable=False)
    tax_rate: Mapped[str] = mapped_column(String(16), default="0", nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    tax_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ordered_at: Mapped[date] = mapped_column(Date, nullable=False)
    expected_at: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    line_items: Mapped[list] = mapped_column(_json_type(), default=list, nullable=False)
    adjustments: Mapped[list] = mapped_column(_json_type(), default=list, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Every UPDATE is guarded by "WHERE version = <loaded version>"; a lost race raises StaleDataError.
    __mapper_args__ = {"version_id_col": version}


class PaymentModel(Base):
    __tablename__ = "payments"

    seq_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    payable_id: Mapped[str] = mapped_column(String(36), nullable=False)
    payable_type: Mapped[str] = mapped_column(String(32), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    bank_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    account_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    date_received: Mapped[date] = mapped_column(Date, nullable=False)
    is_deposited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    date_deposited: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_consolidated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __mapper_args__ = {"version_id_col": version}


class PaymentAllocationModel(Base):
    __tablename__ = "payment_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("payments.payment_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order_id: Mapped[str] = mapped_column(String(36), nullable=False)
    order_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)


class TransactionModel(Base):
    __tablename__ = "transactions"

    seq_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    invoice_number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    line_items: Mapped[list] = mapped_column(_json_type(), default=list, nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_type: Mapped[str] = mapped_column(String(16), nullable=False)
    discount_value: Mapped[str] = mapped_column(String(32), nullable=False)
    discount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    vat_percentage: Mapped[str] = mapped_column(String(16), nullable=False)
    net_of_vat_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tax_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tendered_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    change_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reference_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    warnings: Mapped[list] = mapped_column(_json_type(), default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


Index("ix_orders_kind_status", OrderModel.kind, OrderModel.status)
Index("ix_orders_counterparty", OrderModel.counterparty_id)
Index("ix_orders_ordered_at", OrderModel.ordered_at)
Index("ix_payments_date_received", PaymentModel.date_received)
Index("ix_payment_allocations_order", PaymentAllocationModel.order_id, PaymentAllocationModel.order_type)
Index("ix_transactions_created_at", TransactionModel.created_at)
