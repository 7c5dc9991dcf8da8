"""
Recurrence calculation — the next occurrence date of a rule.

Pure date arithmetic, no I/O:

  DAILY    → + interval days
  WEEKLY   → + interval × 7 days
  MONTHLY  → + interval calendar months, day clamped to the target month end
  YEARLY   → + interval years, Feb 29 clamped to Feb 28 in non-leap years
  CUSTOM   → same as DAILY

Month-end clamping is applied per step from the previous occurrence, so a
rule anchored on the 31st drifts once it has passed through a short month
(Jan 31 → Feb 29 → Mar 29).
"""

from __future__ import annotations

from datetime import date, timedelta

from recurring_scheduler.errors import InvalidRuleError
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency
from recurring_scheduler.utils.time_utils import add_months, add_years


def next_date(from_date: date, frequency: Frequency, interval_value: int) -> date:
    """Return the occurrence that follows ``from_date``.

    Args:
        from_date: The occurrence just executed (or being scheduled from).
        frequency: Calendar unit of recurrence.
        interval_value: Number of units between occurrences (>= 1).

    Returns:
        The next occurrence date, strictly after ``from_date``.

    Raises:
        InvalidRuleError: If ``interval_value`` is not positive.
    """
    if interval_value <= 0:
        raise InvalidRuleError(f"interval_value must be positive, got {interval_value}.")

    if frequency == Frequency.DAILY or frequency == Frequency.CUSTOM:
        return from_date + timedelta(days=interval_value)
    if frequency == Frequency.WEEKLY:
        return from_date + timedelta(weeks=interval_value)
    if frequency == Frequency.MONTHLY:
        return add_months(from_date, interval_value)
    if frequency == Frequency.YEARLY:
        return add_years(from_date, interval_value)

    raise InvalidRuleError(f"Unsupported frequency '{frequency}'.")
