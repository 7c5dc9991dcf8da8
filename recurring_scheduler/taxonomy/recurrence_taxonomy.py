"""
Recurrence taxonomy for recurring ledger obligations.

Three enums describe every rule and every attempt:
  - ``Frequency``       — the *how often*: calendar unit a rule advances by.
  - ``RuleStatus``      — the *whether*: lifecycle state of a rule.
  - ``ExecutionStatus`` — the *outcome*: lifecycle state of one attempt.

Usage example::

    from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency, RuleStatus

    frequency = Frequency.MONTHLY
    status    = RuleStatus.ACTIVE

This module has NO imports from any other ``recurring_scheduler`` package.
"""

from enum import StrEnum


class Frequency(StrEnum):
    """Calendar unit a recurring rule advances by, multiplied by ``interval_value``."""

    DAILY = "DAILY"
    """Every ``interval_value`` days."""

    WEEKLY = "WEEKLY"
    """Every ``interval_value`` × 7 days."""

    MONTHLY = "MONTHLY"
    """Every ``interval_value`` calendar months; day-of-month clamps to month end."""

    YEARLY = "YEARLY"
    """Every ``interval_value`` years; Feb 29 clamps to Feb 28."""

    CUSTOM = "CUSTOM"
    """Same arithmetic as DAILY. Pending product clarification; kept for callers that already store it."""


class RuleStatus(StrEnum):
    """Lifecycle state of a ``RecurringRule``.

    Transitions::

        ACTIVE ⇄ PAUSED           (explicit pause / resume)
        ACTIVE, PAUSED → CANCELLED (explicit, terminal)
        ACTIVE → COMPLETED         (automatic, terminal)
    """

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


TERMINAL_RULE_STATUSES = frozenset({RuleStatus.CANCELLED, RuleStatus.COMPLETED})


class ExecutionStatus(StrEnum):
    """Lifecycle state of an ``ExecutionRecord``."""

    PENDING = "PENDING"
    """Attempt started (or re-queued by a retry) and not yet resolved."""

    COMPLETED = "COMPLETED"
    """Ledger transaction materialized and linked."""

    FAILED = "FAILED"
    """Recoverable failure; eligible for a retry pass."""

    PERMANENTLY_FAILED = "PERMANENTLY_FAILED"
    """Retry ceiling exceeded; never retried again."""
