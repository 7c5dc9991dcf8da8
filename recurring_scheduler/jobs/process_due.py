"""
Process-due job: executes every ACTIVE rule due as of the job's clock.
"""

from __future__ import annotations

import logging

from recurring_scheduler.db.connection import get_connection
from recurring_scheduler.jobs.base import SchedulerJob
from recurring_scheduler.models.meta import JobRun
from recurring_scheduler.scheduling.batch import BatchProcessor

logger = logging.getLogger(__name__)


class ProcessDueJob(SchedulerJob):
    """Runs ``BatchProcessor.process_due()`` and records the outcome."""

    job_name = "process_due"

    def _execute(self, run: JobRun, **kwargs) -> int:
        with get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            with self._open_engine(conn) as (store, engine):
                summary = BatchProcessor(store, engine, self.clock).process_due()

        self.last_summary = summary
        run.items_succeeded = summary.succeeded
        run.items_failed = summary.failed
        return summary.attempted
