from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone

from backoffice.core.errors import FieldError, raise_if_errors


def check_date_range(date_from: date | None, date_to: date | None) -> None:
    if date_from is not None and date_to is not None and date_to < date_from:
        raise_if_errors([FieldError("date_to", "must not be earlier than date_from")])


def day_bounds(date_from: date | None, date_to: date | None) -> tuple[datetime | None, datetime | None]:
    """Turn an inclusive calendar-day range into [start, end) UTC datetimes."""
    check_date_range(date_from, date_to)
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc) if date_to else None
    return start, end


def split_ids(values: list[str] | None) -> list[str]:
    # accepts both repeated params (?ids=a&ids=b) and comma lists (?ids=a,b)
    ids: list[str] = []
    for value in values or []:
        ids.extend(part.strip() for part in value.split(",") if part.strip())
    return ids


def pagination_meta(page: int, per_page: int, total: int) -> dict:
    return {
        "current_page": page,
        "last_page": max(1, math.ceil(total / per_page)) if per_page else 1,
        "per_page": per_page,
        "total": total,
    }
