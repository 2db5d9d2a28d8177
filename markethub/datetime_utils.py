"""Datetime helpers — all timestamps are timezone-aware UTC."""

import calendar
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """
    Shift a datetime by whole calendar months, clamping the day.

    Jan 31 + 1 month -> Feb 28 (or 29), never Mar 3.

    Raises:
        OverflowError: If the result falls outside datetime's year range.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    if not datetime.min.year <= year <= datetime.max.year:
        raise OverflowError(f"year {year} is out of range")
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
