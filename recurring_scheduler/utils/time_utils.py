"""
Date and time helpers for recurrence arithmetic and persistence.

Key concepts:
  - Calendar month arithmetic with month-end clamping (Jan 31 + 1 month is
    the last day of February).
  - All timestamps are timezone-aware UTC; scheduling dates are plain
    ``date`` objects.
  - ISO-8601 text is the storage format for both in SQLite.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Optional


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp ``day`` to the valid range for the given year/month."""
    return min(day, calendar.monthrange(year, month)[1])


def add_months(d: date, n: int) -> date:
    """Add ``n`` calendar months to ``d``, clamping the day to month end.

    Args:
        d: Anchor date.
        n: Number of months to add (may be negative).

    Returns:
        The shifted date, e.g. ``add_months(date(2024, 1, 31), 1)`` →
        ``date(2024, 2, 29)``.
    """
    month_index = d.month - 1 + n
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, clamp_day_to_month(year, month, d.day))


def add_years(d: date, n: int) -> date:
    """Add ``n`` years to ``d``; Feb 29 clamps to Feb 28 in non-leap years."""
    year = d.year + n
    return date(year, d.month, clamp_day_to_month(year, d.month, d.day))


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def to_iso(value: Optional[date | datetime]) -> Optional[str]:
    """Serialize a date/datetime to ISO-8601 text, passing ``None`` through."""
    return value.isoformat() if value is not None else None


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` text, passing ``None`` through."""
    return date.fromisoformat(value) if value else None


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 datetime text; naive values are assumed to be UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
