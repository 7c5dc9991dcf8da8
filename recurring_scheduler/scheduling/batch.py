"""
Batch processor — executes every rule that is due today.

``process_due()`` is what the external trigger (cron, a systemd timer, the
``process-due`` CLI command) calls. One rule's failure never stops the
batch; it is recorded in the summary with its ``ErrorKind``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from recurring_scheduler.errors import ErrorKind, SchedulerError
from recurring_scheduler.scheduling.engine import ExecutionEngine
from recurring_scheduler.scheduling.interfaces import Clock, Store

logger = logging.getLogger(__name__)


@dataclass
class BatchItemResult:
    """Outcome of executing one due rule."""

    rule_id:        str
    success:        bool
    execution_id:   Optional[str]       = None
    transaction_id: Optional[str]       = None
    error_kind:     Optional[ErrorKind] = None
    error:          Optional[str]       = None


@dataclass
class BatchSummary:
    """Aggregate result of one ``process_due()`` run."""

    as_of:     date
    attempted: int = 0
    succeeded: int = 0
    failed:    int = 0
    items:     list[BatchItemResult] = field(default_factory=list)


class BatchProcessor:
    """Finds due rules and executes each one.

    Args:
        store:  Rule storage (for the due query).
        engine: Engine used to execute each rule.
        clock:  Defines "today".
    """

    def __init__(self, store: Store, engine: ExecutionEngine, clock: Clock) -> None:
        self.store = store
        self.engine = engine
        self.clock = clock

    def process_due(self) -> BatchSummary:
        as_of = self.clock.now().date()
        rule_ids = self.store.find_due_rules(as_of)
        summary = BatchSummary(as_of=as_of)
        logger.info("Processing %d due rule(s) as of %s", len(rule_ids), as_of.isoformat())

        for rule_id in rule_ids:
            summary.attempted += 1
            try:
                result = self.engine.execute(rule_id, force=False)
            except SchedulerError as exc:
                summary.failed += 1
                summary.items.append(
                    BatchItemResult(
                        rule_id=rule_id, success=False, error_kind=exc.kind, error=exc.message
                    )
                )
                logger.warning("Rule %s failed [%s]: %s", rule_id, exc.kind.value, exc.message)
                continue
            except Exception as exc:
                summary.failed += 1
                summary.items.append(BatchItemResult(rule_id=rule_id, success=False, error=str(exc)))
                logger.exception("Unexpected error executing rule %s", rule_id)
                continue

            summary.succeeded += 1
            summary.items.append(
                BatchItemResult(
                    rule_id=rule_id,
                    success=True,
                    execution_id=result.execution.execution_id,
                    transaction_id=result.transaction.transaction_id,
                )
            )

        logger.info(
            "Batch finished as of %s | attempted=%d | succeeded=%d | failed=%d",
            as_of.isoformat(), summary.attempted, summary.succeeded, summary.failed,
        )
        return summary
