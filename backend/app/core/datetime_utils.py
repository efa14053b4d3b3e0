"""
Datetime helpers.

All timestamps written by the application are naive UTC so that PostgreSQL
and SQLite round-trip them identically.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def end_of_day(value: Union[date, datetime]) -> datetime:
    """Inclusive upper bound for a date filter (23:59:59.999999)."""
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.max)


def minutes_between(start: datetime, end: Optional[datetime]) -> Optional[int]:
    """Whole minutes between two timestamps, rounding half-up."""
    if start is None or end is None:
        return None
    minutes = Decimal(str((end - start).total_seconds())) / Decimal(60)
    return int(minutes.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
