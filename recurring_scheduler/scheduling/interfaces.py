"""
Collaborator contracts for the scheduling core.

The engine, retry coordinator and batch processor depend only on these
protocols, never on SQLite or HTTP directly:

  - ``Store``  — durable rules and execution records (``db/store.py``).
  - ``Ledger`` — the system that materializes concrete transactions
                 (``ledger/local_ledger.py``, ``ledger/http_ledger.py``).
  - ``Clock``  — "now", injectable so due-ness is deterministic in tests.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Protocol

from recurring_scheduler.models.execution import ExecutionRecord
from recurring_scheduler.models.ledger import TransactionRef, TransactionSpec
from recurring_scheduler.models.rule import RecurringRule
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency, RuleStatus
from recurring_scheduler.utils.time_utils import utcnow


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current timezone-aware UTC datetime."""
        ...


class Ledger(Protocol):
    def create_transaction(self, spec: TransactionSpec) -> TransactionRef:
        """Materialize ``spec`` and return a reference to the new transaction.

        Any exception raised here is treated as a ledger failure.
        """
        ...


class Store(Protocol):
    """Durable storage of rules and execution records.

    ``save_rule`` and ``claim_rule`` are compare-and-swap writes on
    ``RecurringRule.version``; both raise ``ConcurrencyConflictError`` when
    the stored version has moved on, and both return the new snapshot.
    """

    def find_rule(self, rule_id: str) -> Optional[RecurringRule]: ...

    def find_due_rules(self, as_of: date) -> list[str]: ...

    def find_failed_executions(self, retry_limit: int) -> list[ExecutionRecord]: ...

    def save_rule(self, rule: RecurringRule) -> RecurringRule: ...

    def claim_rule(
        self, rule: RecurringRule, now: datetime, lease_until: datetime
    ) -> RecurringRule: ...

    def save_execution(self, record: ExecutionRecord) -> ExecutionRecord: ...

    def create_execution(self, rule_id: str, scheduled_date: date) -> ExecutionRecord: ...

    def insert_rule(self, rule: RecurringRule) -> RecurringRule: ...

    def delete_rule(self, rule_id: str) -> bool: ...

    def list_rules(
        self,
        household_id: str,
        status: Optional[RuleStatus] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        frequency: Optional[Frequency] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[RecurringRule], int]: ...

    def find_executions(self, rule_id: str, limit: int = 50) -> list[ExecutionRecord]: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """A clock frozen at a given instant; ``advance_to`` moves it.

    Accepts either a ``datetime`` or a bare ``date`` (taken as midnight UTC).
    """

    def __init__(self, instant: date | datetime) -> None:
        self._instant = _as_utc_datetime(instant)

    def now(self) -> datetime:
        return self._instant

    def advance_to(self, instant: date | datetime) -> None:
        self._instant = _as_utc_datetime(instant)


def _as_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
