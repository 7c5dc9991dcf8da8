"""
Termination policy — when a rule stops producing occurrences.

A rule is complete once it has run ``max_executions`` times or once the
date under consideration is past its ``end_date``. ``should_complete`` is
asked both before an execution (with the current count and the effective
date) and after one (with the new count and the next scheduled date).
"""

from __future__ import annotations

from datetime import date

from recurring_scheduler.models.rule import RecurringRule


def max_executions_reached(rule: RecurringRule, execution_count: int) -> bool:
    """``True`` if ``rule`` has a cap and ``execution_count`` has met it."""
    return rule.max_executions is not None and execution_count >= rule.max_executions


def has_ended(rule: RecurringRule, as_of_date: date) -> bool:
    """``True`` if ``rule`` has an end date and ``as_of_date`` is past it.

    The end date itself is still a valid execution date.
    """
    return rule.end_date is not None and as_of_date > rule.end_date


def should_complete(rule: RecurringRule, execution_count: int, as_of_date: date) -> bool:
    """Return ``True`` if ``rule`` should be COMPLETED given the count and date."""
    return max_executions_reached(rule, execution_count) or has_ended(rule, as_of_date)
