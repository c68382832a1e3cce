"""
Time helpers.

All domain timestamps are timezone-aware UTC. Some backends (SQLite) hand
datetimes back without tzinfo, so anything read from storage goes through
`as_utc` before it is compared with `utcnow()`.
"""

from collections.abc import Callable
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_calendar_months(value: datetime, months: int) -> datetime:
    """
    Add whole calendar months, clamping the day to the end of the target month.

    Jan 31 + 1 month is Feb 28 (or 29), never Mar 3.
    """
    return value + relativedelta(months=months)


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None
