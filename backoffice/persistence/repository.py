from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backoffice.core.config import get_settings
from backoffice.core.errors import ConflictError, NotFound, OrderLocked, PaymentsExist, UnavailableError
from backoffice.core.money import money_str, parse_money, parse_price, parse_rate, parse_signed_money, price_str
from backoffice.domain.orders.aggregates import KIND_BY_ORDER_TYPE, ORDER_TYPES, Order, OrderAdjustment, OrderLineItem
from backoffice.domain.payments.ledger import PayableRef, Payment, RelatedOrder
from backoffice.domain.pricing.checkout import Settlement, TransactionRecord
from backoffice.persistence.models import OrderModel, PaymentAllocationModel, PaymentModel, TransactionModel

logger = logging.getLogger(__name__)


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def cents_to_amount(cents: int | None) -> Decimal:
    return parse_signed_money(Decimal(cents or 0) / Decimal(100))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _flush(session: Session) -> None:
    try:
        session.flush()
    except StaleDataError as exc:
        logger.warning("concurrent update detected: %s", exc)
        raise ConflictError("the record was changed by another request; reload and try again") from exc
    except OperationalError as exc:
        logger.warning("database unavailable: %s", exc)
        raise UnavailableError("the data store is temporarily unavailable") from exc


def _check_version(kind: str, key: str, current: int, expected: int | None) -> None:
    if expected is not None and expected != current:
        logger.warning("stale %s write rejected: id=%s expected_version=%s current=%s", kind, key, expected, current)
        raise ConflictError(f"{kind} {key} was changed by another request (version {current}); reload and try again")


@dataclass
class Page:
    items: list[Any]
    total: int
    page: int
    per_page: int


def _paginate(session: Session, stmt: Select, page: int, per_page: int) -> tuple[list[Any], int]:
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = list(session.scalars(stmt.offset((page - 1) * per_page).limit(per_page)).all())
    return rows, int(total)


def _item_to_json(item: OrderLineItem) -> dict:
    return {
        "product_id": item.product_id,
        "product_name": item.product_name,
        "description": item.description,
        "quantity_ordered": item.quantity_ordered,
        "quantity_fulfilled": item.quantity_fulfilled,
        "unit_cost": price_str(item.unit_cost),
        "line_total": money_str(item.line_total),
        "is_voided": item.is_voided,
        "void_reason": item.void_reason,
    }


def _item_from_json(raw: dict) -> OrderLineItem:
    return OrderLineItem(
        product_id=str(raw["product_id"]),
        product_name=raw.get("product_name"),
        description=raw.get("description"),
        quantity_ordered=int(raw.get("quantity_ordered") or 0),
        quantity_fulfilled=int(raw.get("quantity_fulfilled") or 0),
        unit_cost=parse_price(raw.get("unit_cost")),
        line_total=parse_money(raw.get("line_total")),
        is_voided=bool(raw.get("is_voided", False)),
        void_reason=raw.get("void_reason"),
    )


def _adjustment_to_json(adj: OrderAdjustment) -> dict:
    return {
        "id": adj.adjustment_id,
        "order_id": adj.order_id,
        "type": adj.type,
        "amount": money_str(adj.amount),
        "description": adj.description,
        "related_product_id": adj.related_product_id,
        "created_at": adj.created_at.isoformat(),
    }


def _adjustment_from_json(raw: dict) -> OrderAdjustment:
    created_at = datetime.fromisoformat(raw["created_at"]) if raw.get("created_at") else _now()
    return OrderAdjustment(
        adjustment_id=str(raw["id"]),
        order_id=str(raw["order_id"]),
        type=raw["type"],
        amount=parse_signed_money(raw.get("amount")),
        description=raw.get("description"),
        related_product_id=raw.get("related_product_id"),
        created_at=created_at,
    )


def order_from_row(row: OrderModel) -> Order:
    return Order(
        order_id=row.order_id,
        kind=row.kind,
        counterparty_id=row.counterparty_id,
        tax_rate=parse_rate(row.tax_rate),
        ordered_at=row.ordered_at,
        number=row.number,
        expected_at=row.expected_at,
        status=row.status,
        notes=row.notes,
        subtotal=cents_to_amount(row.subtotal_cents),
        tax=cents_to_amount(row.tax_cents),
        total=cents_to_amount(row.total_cents),
        items=[_item_from_json(raw) for raw in row.line_items or []],
        adjustments=[_adjustment_from_json(raw) for raw in row.adjustments or []],
        version=row.version,
    )


def _write_order(row: OrderModel, order: Order) -> None:
    row.counterparty_id = order.counterparty_id
    row.status = order.status
    row.tax_rate = format(order.tax_rate, "f")
    row.subtotal_cents = to_cents(order.subtotal)
    row.tax_cents = to_cents(order.tax)
    row.total_cents = to_cents(order.total)
    row.notes = order.notes
    row.ordered_at = order.ordered_at
    row.expected_at = order.expected_at
    row.line_items = [_item_to_json(item) for item in order.items]
    row.adjustments = [_adjustment_to_json(adj) for adj in order.adjustments]
    row.updated_at = _now()


class OrderRepository:
    def __init__(self, session: Session):
        self.session = session
        self.settings = get_settings()

    def _prefix(self, kind: str) -> str:
        if kind == "purchase":
            return self.settings.purchase_order_prefix
        return self.settings.customer_order_prefix

    def _row(self, kind: str, order_id: str) -> OrderModel:
        stmt = select(OrderModel).where(OrderModel.order_id == str(order_id)).where(OrderModel.kind == kind)
        row = self.session.scalar(stmt)
        if row is None:
            raise NotFound(f"{ORDER_TYPES[kind]} {order_id} not found")
        return row

    def get(self, kind: str, order_id: str) -> Order:
        return order_from_row(self._row(kind, order_id))

    def exists(self, order_type: str, order_id: str) -> bool:
        kind = KIND_BY_ORDER_TYPE.get(order_type)
        if kind is None:
            return False
        stmt = select(OrderModel.seq_id).where(OrderModel.order_id == str(order_id)).where(OrderModel.kind == kind)
        return self.session.scalar(stmt) is not None

    def add(self, order: Order) -> Order:
        now = _now()
        row = OrderModel(order_id=order.order_id, kind=order.kind, created_at=now)
        _write_order(row, order)
        self.session.add(row)
        _flush(self.session)
        row.number = order.number or f"{self._prefix(order.kind)}-{row.seq_id:06d}"
        _flush(self.session)
        logger.info("order created: order_id=%s number=%s kind=%s", row.order_id, row.number, row.kind)
        return order_from_row(row)

    def save(self, order: Order, expected_version: int | None = None) -> Order:
        row = self._row(order.kind, order.order_id)
        _check_version(order.order_type, order.order_id, row.version, expected_version)
        _check_version(order.order_type, order.order_id, row.version, order.version)
        _write_order(row, order)
        _flush(self.session)
        return order_from_row(row)

    def delete(self, kind: str, order_id: str, expected_version: int | None = None) -> None:
        row = self._row(kind, order_id)
        _check_version(ORDER_TYPES[kind], row.order_id, row.version, expected_version)
        linked = self.session.scalar(
            select(func.count())
            .select_from(PaymentAllocationModel)
            .where(PaymentAllocationModel.order_id == row.order_id)
            .where(PaymentAllocationModel.order_type == ORDER_TYPES[kind])
        )
        if linked:
            raise PaymentsExist(f"{ORDER_TYPES[kind]} {row.number} has payments and cannot be deleted")
        if row.status not in {"draft", "cancelled"}:
            raise OrderLocked(f"only draft or cancelled orders can be deleted; {row.number} is {row.status}")
        self.session.delete(row)
        _flush(self.session)
        logger.info("order deleted: order_id=%s number=%s", row.order_id, row.number)

    def list(
        self,
        kind: str,
        search: str | None = None,
        status: str | None = None,
        counterparty_ids: Iterable[str] | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> Page:
        per_page = min(per_page or self.settings.default_per_page, self.settings.max_per_page)
        stmt = select(OrderModel).where(OrderModel.kind == kind).order_by(OrderModel.seq_id.desc())
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    OrderModel.number.ilike(pattern),
                    OrderModel.notes.ilike(pattern),
                    OrderModel.counterparty_id.ilike(pattern),
                )
            )
        if status:
            stmt = stmt.where(OrderModel.status == status)
        ids = [str(x) for x in (counterparty_ids or []) if str(x).strip()]
        if ids:
            stmt = stmt.where(OrderModel.counterparty_id.in_(ids))
        if date_from is not None:
            stmt = stmt.where(OrderModel.ordered_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(OrderModel.ordered_at <= date_to)
        rows, total = _paginate(self.session, stmt, page, per_page)
        return Page(items=[order_from_row(row) for row in rows], total=total, page=page, per_page=per_page)

    def all(self) -> list[Order]:
        rows = self.session.scalars(select(OrderModel).order_by(OrderModel.seq_id.asc())).all()
        return [order_from_row(row) for row in rows]


class PaymentRepository:
    def __init__(self, session: Session):
        self.session = session
        self.settings = get_settings()

    def _allocations(self, payment_ids: list[str]) -> dict[str, list[PaymentAllocationModel]]:
        grouped: dict[str, list[PaymentAllocationModel]] = {pid: [] for pid in payment_ids}
        if not payment_ids:
            return grouped
        stmt = (
            select(PaymentAllocationModel)
            .where(PaymentAllocationModel.payment_id.in_(payment_ids))
            .order_by(PaymentAllocationModel.position.asc())
        )
        for alloc in self.session.scalars(stmt).all():
            grouped[alloc.payment_id].append(alloc)
        return grouped

    def _to_domain(self, row: PaymentModel, allocations: list[PaymentAllocationModel]) -> Payment:
        related: list[RelatedOrder] = []
        if row.is_consolidated:
            related = [
                RelatedOrder(order_id=a.order_id, order_type=a.order_type, amount=cents_to_amount(a.amount_cents))
                for a in allocations
            ]
        return Payment(
            payment_id=row.payment_id,
            payable=PayableRef(order_id=row.payable_id, order_type=row.payable_type),
            direction=row.direction,
            method=row.method,
            amount=parse_money(cents_to_amount(row.amount_cents)),
            date_received=row.date_received,
            status=row.status,
            number=row.number,
            bank_name=row.bank_name,
            account_number=row.account_number,
            reference_number=row.reference_number,
            is_deposited=row.is_deposited,
            date_deposited=row.date_deposited,
            notes=row.notes,
            is_consolidated=row.is_consolidated,
            related_orders=related,
            created_at=row.created_at,
            version=row.version,
        )

    def _hydrate(self, rows: list[PaymentModel]) -> list[Payment]:
        grouped = self._allocations([row.payment_id for row in rows])
        return [self._to_domain(row, grouped[row.payment_id]) for row in rows]

    def _row(self, payment_id: str) -> PaymentModel:
        row = self.session.scalar(select(PaymentModel).where(PaymentModel.payment_id == str(payment_id)))
        if row is None:
            raise NotFound(f"payment {payment_id} not found")
        return row

    def get(self, payment_id: str) -> Payment:
        return self._hydrate([self._row(payment_id)])[0]

    def add(self, payment: Payment) -> Payment:
        now = _now()
        row = PaymentModel(
            payment_id=payment.payment_id,
            payable_id=payment.payable.order_id,
            payable_type=payment.payable.order_type,
            direction=payment.direction,
            method=payment.method,
            amount_cents=to_cents(payment.amount),
            status=payment.status,
            bank_name=payment.bank_name,
            account_number=payment.account_number,
            reference_number=payment.reference_number,
            date_received=payment.date_received,
            is_deposited=payment.is_deposited,
            date_deposited=payment.date_deposited,
            notes=payment.notes,
            is_consolidated=payment.is_consolidated,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        if payment.is_consolidated:
            shares = payment.related_orders
        else:
            shares = [
                RelatedOrder(
                    order_id=payment.payable.order_id,
                    order_type=payment.payable.order_type,
                    amount=payment.amount,
                )
            ]
        for position, share in enumerate(shares):
            self.session.add(
                PaymentAllocationModel(
                    payment_id=payment.payment_id,
                    position=position,
                    order_id=share.order_id,
                    order_type=share.order_type,
                    amount_cents=to_cents(share.amount),
                )
            )
        _flush(self.session)
        row.number = payment.number or f"{self.settings.payment_prefix}-{row.seq_id:06d}"
        _flush(self.session)
        logger.info(
            "payment recorded: payment_id=%s number=%s amount=%s consolidated=%s",
            row.payment_id,
            row.number,
            money_str(payment.amount),
            payment.is_consolidated,
        )
        return self.get(row.payment_id)

    def save(self, payment: Payment, expected_version: int | None = None) -> Payment:
        row = self._row(payment.payment_id)
        _check_version("payment", payment.payment_id, row.version, expected_version)
        _check_version("payment", payment.payment_id, row.version, payment.version)
        # only status and deposit fields are mutable after creation
        row.status = payment.status
        row.is_deposited = payment.is_deposited
        row.date_deposited = payment.date_deposited
        row.updated_at = _now()
        _flush(self.session)
        return self.get(row.payment_id)

    def delete(self, payment_id: str, expected_version: int | None = None) -> None:
        row = self._row(payment_id)
        _check_version("payment", row.payment_id, row.version, expected_version)
        self.session.execute(delete(PaymentAllocationModel).where(PaymentAllocationModel.payment_id == row.payment_id))
        self.session.delete(row)
        _flush(self.session)
        logger.info("payment deleted: payment_id=%s number=%s", row.payment_id, row.number)

    def for_order(self, order: Order) -> list[Payment]:
        linked = (
            select(PaymentAllocationModel.payment_id)
            .where(PaymentAllocationModel.order_id == order.order_id)
            .where(PaymentAllocationModel.order_type == order.order_type)
        )
        stmt = select(PaymentModel).where(PaymentModel.payment_id.in_(linked)).order_by(PaymentModel.seq_id.asc())
        return self._hydrate(list(self.session.scalars(stmt).all()))

    def _filtered(
        self,
        payable_id: str | None = None,
        payable_type: str | None = None,
        direction: str | None = None,
        is_deposited: bool | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> Select:
        stmt = select(PaymentModel).order_by(PaymentModel.seq_id.desc())
        if payable_id or payable_type:
            linked = select(PaymentAllocationModel.payment_id)
            if payable_id:
                linked = linked.where(PaymentAllocationModel.order_id == str(payable_id))
            if payable_type:
                linked = linked.where(PaymentAllocationModel.order_type == payable_type)
            stmt = stmt.where(PaymentModel.payment_id.in_(linked))
        if direction:
            stmt = stmt.where(PaymentModel.direction == direction)
        if is_deposited is not None:
            stmt = stmt.where(PaymentModel.is_deposited == is_deposited)
        if date_from is not None:
            stmt = stmt.where(PaymentModel.date_received >= date_from)
        if date_to is not None:
            stmt = stmt.where(PaymentModel.date_received <= date_to)
        return stmt

    def list(self, page: int = 1, per_page: int | None = None, **filters: Any) -> Page:
        per_page = min(per_page or self.settings.default_per_page, self.settings.max_per_page)
        rows, total = _paginate(self.session, self._filtered(**filters), page, per_page)
        return Page(items=self._hydrate(rows), total=total, page=page, per_page=per_page)

    def matching(self, **filters: Any) -> list[Payment]:
        return self._hydrate(list(self.session.scalars(self._filtered(**filters)).all()))

    def all(self) -> list[Payment]:
        return self.matching()


def _transaction_from_row(row: TransactionModel) -> TransactionRecord:
    return TransactionRecord(
        transaction_id=row.transaction_id,
        invoice_number=row.invoice_number or "",
        customer_id=row.customer_id,
        payment_method=row.payment_method,
        items=list(row.line_items or []),
        subtotal=cents_to_amount(row.subtotal_cents),
        discount_type=row.discount_type,
        discount_value=parse_rate(row.discount_value),
        discount_amount=cents_to_amount(row.discount_cents),
        vat_percentage=parse_rate(row.vat_percentage),
        net_of_vat=cents_to_amount(row.net_of_vat_cents),
        tax=cents_to_amount(row.tax_cents),
        total=cents_to_amount(row.total_cents),
        amount_tendered=cents_to_amount(row.tendered_cents),
        change=cents_to_amount(row.change_cents),
        reference_number=row.reference_number,
        warnings=list(row.warnings or []),
        created_at=row.created_at,
    )


class TransactionRepository:
    def __init__(self, session: Session):
        self.session = session
        self.settings = get_settings()

    def add(self, settlement: Settlement, customer_id: str | None = None) -> TransactionRecord:
        quote = settlement.quote
        now = _now()
        row = TransactionModel(
            customer_id=customer_id,
            payment_method=settlement.payment_method,
            line_items=[
                {
                    "product_id": line.product_id,
                    "product_name": line.product_name,
                    "quantity": line.quantity,
                    "unit_price": price_str(line.price),
                    "line_total": money_str(line.line_total),
                }
                for line in quote.lines
            ],
            subtotal_cents=to_cents(quote.subtotal),
            discount_type=quote.discount_type,
            discount_value=format(quote.discount_value, "f"),
            discount_cents=to_cents(quote.discount_amount),
            vat_percentage=format(quote.vat_percentage, "f"),
            net_of_vat_cents=to_cents(quote.net_of_vat),
            tax_cents=to_cents(quote.tax),
            total_cents=to_cents(quote.total),
            tendered_cents=to_cents(settlement.amount_tendered),
            change_cents=to_cents(settlement.change),
            reference_number=settlement.reference_number,
            warnings=list(settlement.warnings),
            created_at=now,
        )
        self.session.add(row)
        _flush(self.session)
        row.invoice_number = f"{self.settings.invoice_prefix}-{now:%Y%m%d}-{row.seq_id:06d}"
        _flush(self.session)
        logger.info(
            "checkout recorded: invoice=%s method=%s total=%s change=%s",
            row.invoice_number,
            row.payment_method,
            money_str(quote.total),
            money_str(settlement.change),
        )
        return _transaction_from_row(row)

    def get(self, transaction_id: str) -> TransactionRecord:
        row = self.session.scalar(
            select(TransactionModel).where(TransactionModel.transaction_id == str(transaction_id))
        )
        if row is None:
            raise NotFound(f"transaction {transaction_id} not found")
        return _transaction_from_row(row)

    def list(
        self,
        search: str | None = None,
        customer_ids: Iterable[str] | None = None,
        payment_method: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> Page:
        per_page = min(per_page or self.settings.default_per_page, self.settings.max_per_page)
        stmt = select(TransactionModel).order_by(TransactionModel.seq_id.desc())
        if search:
            stmt = stmt.where(TransactionModel.invoice_number.ilike(f"%{search.strip()}%"))
        ids = [str(x) for x in (customer_ids or []) if str(x).strip()]
        if ids:
            stmt = stmt.where(TransactionModel.customer_id.in_(ids))
        if payment_method:
            stmt = stmt.where(TransactionModel.payment_method == payment_method)
        if start is not None:
            stmt = stmt.where(TransactionModel.created_at >= start)
        if end is not None:
            stmt = stmt.where(TransactionModel.created_at < end)
        rows, total = _paginate(self.session, stmt, page, per_page)
        return Page(items=[_transaction_from_row(row) for row in rows], total=total, page=page, per_page=per_page)