"""
Scheduling core for the recurring-obligation scheduler.

This sub-package provides:

  scheduling/interfaces.py — Store / Ledger / Clock protocols, SystemClock, FixedClock.
  scheduling/recurrence.py — next occurrence date arithmetic.
  scheduling/termination.py — max-executions and end-date completion checks.
  scheduling/engine.py     — single execution of a rule against the ledger.
  scheduling/retry.py      — re-attempts of FAILED execution records.
  scheduling/batch.py      — execution of every rule due today.

Nothing here touches SQLite or HTTP directly; the concrete store lives in
``db/store.py`` and the ledger adapters in ``ledger/``.
"""

from recurring_scheduler.scheduling.interfaces import (
    Clock,
    FixedClock,
    Ledger,
    Store,
    SystemClock,
)
from recurring_scheduler.scheduling.recurrence import next_date
from recurring_scheduler.scheduling.termination import (
    has_ended,
    max_executions_reached,
    should_complete,
)
from recurring_scheduler.scheduling.engine import ExecutionEngine, ExecutionResult
from recurring_scheduler.scheduling.retry import (
    RetryCoordinator,
    RetryItemResult,
    RetrySummary,
)
from recurring_scheduler.scheduling.batch import (
    BatchItemResult,
    BatchProcessor,
    BatchSummary,
)

__all__ = [
    "Clock",
    "FixedClock",
    "Ledger",
    "Store",
    "SystemClock",
    "next_date",
    "has_ended",
    "max_executions_reached",
    "should_complete",
    "ExecutionEngine",
    "ExecutionResult",
    "RetryCoordinator",
    "RetryItemResult",
    "RetrySummary",
    "BatchItemResult",
    "BatchProcessor",
    "BatchSummary",
]
