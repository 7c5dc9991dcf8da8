"""
Retry-failed job: re-attempts FAILED execution records below the scan limit.

Permanently failed records count towards ``items_failed`` in the run record.
"""

from __future__ import annotations

import logging

from recurring_scheduler.db.connection import get_connection
from recurring_scheduler.jobs.base import SchedulerJob
from recurring_scheduler.models.meta import JobRun
from recurring_scheduler.scheduling.retry import RetryCoordinator

logger = logging.getLogger(__name__)


class RetryFailedJob(SchedulerJob):
    """Runs ``RetryCoordinator.retry_failed()`` and records the outcome."""

    job_name = "retry_failed"

    def _execute(self, run: JobRun, **kwargs) -> int:
        with get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            with self._open_engine(conn) as (store, engine):
                summary = RetryCoordinator(store, engine, self.config.scheduler).retry_failed()

        self.last_summary = summary
        run.items_succeeded = summary.succeeded
        run.items_failed = summary.failed + summary.permanently_failed
        return summary.scanned
