from __future__ import annotations

import argparse
import json
import sys

from backoffice.api.serializers import quote_to_dict, reconciliation_to_dict
from backoffice.core.config import get_settings
from backoffice.core.errors import BackofficeError, FieldError, raise_if_errors
from backoffice.core.logging import configure_logging
from backoffice.core.money import money_str
from backoffice.domain.pricing import DISCOUNT_TYPES, POS_PAYMENT_METHODS, compute_quote, settle
from backoffice.persistence.db import init_db, session_scope
from backoffice.persistence.repository import OrderRepository, PaymentRepository
from backoffice.reconciliation import run_reconciliation


def _parse_item(raw: str) -> dict:
    # product_id:price[:quantity]
    parts = raw.split(":")
    if len(parts) not in (2, 3):
        raise_if_errors([FieldError("item", f"expected product_id:price[:quantity], got {raw!r}")])
    return {
        "product_id": parts[0],
        "price": parts[1],
        "quantity": parts[2] if len(parts) == 3 else "1",
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Retail back-office CLI")
    top = parser.add_subparsers(dest="command", required=True)

    top.add_parser("init-db", help="Create database tables")

    quote = top.add_parser("quote", help="Price a cart and print the quote as JSON")
    quote.add_argument("--item", action="append", default=[], help="product_id:price[:quantity], repeatable")
    quote.add_argument("--discount-type", choices=list(DISCOUNT_TYPES), default="percentage")
    quote.add_argument("--discount-value", default="0")
    quote.add_argument("--vat", default=None, help="VAT percentage (default: settings.default_vat_percentage)")
    quote.add_argument("--method", choices=list(POS_PAYMENT_METHODS), default=None, help="Settle with this method")
    quote.add_argument("--tendered", default=None, help="Cash handed over")
    quote.add_argument("--reference", default=None)

    top.add_parser("reconcile", help="Run integrity checks over stored orders and payments")

    return parser


def _run_quote(args: argparse.Namespace) -> int:
    vat = args.vat if args.vat is not None else get_settings().default_vat_percentage
    quote = compute_quote(
        [_parse_item(raw) for raw in args.item],
        discount_type=args.discount_type,
        discount_value=args.discount_value,
        vat_percentage=vat,
    )
    body = quote_to_dict(quote)
    if args.method:
        settlement = settle(quote, args.method, amount_tendered=args.tendered, reference_number=args.reference)
        body["settlement"] = {
            "payment_method": settlement.payment_method,
            "amount_tendered": money_str(settlement.amount_tendered),
            "change": money_str(settlement.change),
            "reference_number": settlement.reference_number,
            "warnings": list(settlement.warnings),
        }
    print(json.dumps(body, ensure_ascii=False, indent=2))
    return 0


def _run_reconcile() -> int:
    init_db()
    with session_scope() as session:
        results = run_reconciliation(OrderRepository(session).all(), PaymentRepository(session).all())
    print(json.dumps([reconciliation_to_dict(r) for r in results], ensure_ascii=False, indent=2))
    return 0 if all(r.passed for r in results) else 1


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "init-db":
            init_db()
            print("database initialized")
            return 0
        if args.command == "quote":
            return _run_quote(args)
        if args.command == "reconcile":
            return _run_reconcile()
    except BackofficeError as exc:
        print(json.dumps(exc.to_dict(), ensure_ascii=False, indent=2), file=sys.stderr)
        return 2

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
