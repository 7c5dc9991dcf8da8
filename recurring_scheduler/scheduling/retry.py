"""
Retry coordinator — re-attempts FAILED executions.

Each FAILED record below the scan limit is bumped (``retry_count + 1``),
set back to PENDING and handed to the engine with its original scheduled
date and ``force=True``. The record is reused, so a rule's history shows
one row per occurrence rather than one per attempt.

When the re-attempt fails, the record goes back to FAILED, or to
PERMANENTLY_FAILED once its pre-retry count had already reached the
configured ceiling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from recurring_scheduler.config import SchedulerConfig
from recurring_scheduler.models.execution import ExecutionRecord
from recurring_scheduler.scheduling.engine import ExecutionEngine
from recurring_scheduler.scheduling.interfaces import Store
from recurring_scheduler.taxonomy.recurrence_taxonomy import ExecutionStatus

logger = logging.getLogger(__name__)


@dataclass
class RetryItemResult:
    """Outcome of re-attempting a single execution record."""

    execution_id:   str
    rule_id:        str
    status:         ExecutionStatus
    retry_count:    int
    transaction_id: Optional[str] = None
    error:          Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED


@dataclass
class RetrySummary:
    """Aggregate result of one ``retry_failed()`` scan."""

    scanned:            int = 0
    succeeded:          int = 0
    failed:             int = 0
    permanently_failed: int = 0
    items:              list[RetryItemResult] = field(default_factory=list)


class RetryCoordinator:
    """Scans FAILED execution records and re-attempts them.

    Args:
        store:  Execution record storage.
        engine: Engine used to re-run each record.
        config: Scheduler settings (``retry_ceiling``, ``retry_scan_limit``).
    """

    def __init__(
        self,
        store: Store,
        engine: ExecutionEngine,
        config: Optional[SchedulerConfig] = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.config = config or SchedulerConfig()

    def retry_failed(self) -> RetrySummary:
        """Re-attempt every eligible FAILED record, isolating per-record failures."""
        records = self.store.find_failed_executions(self.config.retry_scan_limit)
        summary = RetrySummary(scanned=len(records))
        logger.info("Retry scan found %d failed execution(s).", len(records))

        for record in records:
            item = self._retry_one(record)
            summary.items.append(item)
            if item.status == ExecutionStatus.COMPLETED:
                summary.succeeded += 1
            elif item.status == ExecutionStatus.PERMANENTLY_FAILED:
                summary.permanently_failed += 1
            else:
                summary.failed += 1

        logger.info(
            "Retry scan finished | scanned=%d | succeeded=%d | failed=%d | permanently_failed=%d",
            summary.scanned, summary.succeeded, summary.failed, summary.permanently_failed,
        )
        return summary

    def _retry_one(self, record: ExecutionRecord) -> RetryItemResult:
        prior_retries = record.retry_count
        record.retry_count = prior_retries + 1
        record.status = ExecutionStatus.PENDING

        try:
            self.store.save_execution(record)
            result = self.engine.execute(
                record.rule_id,
                requested_date=record.scheduled_date,
                force=True,
                execution=record,
            )
        except Exception as exc:
            if prior_retries >= self.config.retry_ceiling:
                record.status = ExecutionStatus.PERMANENTLY_FAILED
                record.error_message = f"Max retries reached: {exc}"
            else:
                record.status = ExecutionStatus.FAILED
                record.error_message = str(exc)
            self.store.save_execution(record)
            logger.warning(
                "Retry of execution %s (rule %s) failed | retry_count=%d | status=%s: %s",
                record.execution_id, record.rule_id, record.retry_count,
                record.status.value, exc,
            )
            return RetryItemResult(
                execution_id=record.execution_id,
                rule_id=record.rule_id,
                status=record.status,
                retry_count=record.retry_count,
                error=record.error_message,
            )

        return RetryItemResult(
            execution_id=record.execution_id,
            rule_id=record.rule_id,
            status=result.execution.status,
            retry_count=result.execution.retry_count,
            transaction_id=result.transaction.transaction_id,
        )
