from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        # repr() keeps the shortest round-tripping literal, e.g. 0.1 not 0.1000000000000000055
        number = Decimal(repr(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not number.is_finite():
        return None
    return number


def parse_signed_money(value: Any) -> Decimal:
    number = to_decimal(value)
    if number is None:
        return ZERO
    return quantize(number)


def parse_money(value: Any) -> Decimal:
    """Parse a boundary money value; unusable or negative input becomes 0.00."""
    number = parse_signed_money(value)
    if number < 0:
        return ZERO
    return number


def parse_rate(value: Any) -> Decimal:
    number = to_decimal(value)
    if number is None or number < 0:
        return Decimal("0")
    return number


def has_sub_cent(value: Decimal) -> bool:
    return value != value.quantize(CENT)


def parse_price(value: Any) -> Decimal:
    """Parse a stored unit price; sub-cent precision is kept, anything else reads as cents."""
    number = to_decimal(value)
    if number is None or number < 0:
        return ZERO
    return number if has_sub_cent(number) else quantize(number)


def money_str(value: Decimal) -> str:
    return format(quantize(value), "f")


def price_str(value: Decimal) -> str:
    return format(value, "f") if has_sub_cent(value) else money_str(value)
