"""
Abstract base class for scheduler batch jobs.

Every job follows the same contract:
  1. Receive ``AppConfig`` at construction.
  2. ``run(**kwargs)`` is the sole public API.
  3. ``run()`` creates a ``JobRun`` record, calls ``_execute()``,
     and persists the run record with final status and item counts.
  4. ``_execute()`` is the job-specific implementation (overridden by subclasses).

This design ensures:
  - Every invocation by the external trigger is auditable (``job_runs``).
  - Status transitions (started → success/failed) are consistent.
  - Per-item failures are counted, not raised; only infrastructure
    failures (database, configuration) fail the run.

Usage::

    job = ProcessDueJob(config=app_config)
    run = job.run()
    print(run.items_succeeded, job.last_summary)
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import closing, contextmanager
from typing import Any, Iterator, Optional
from uuid import uuid4

from recurring_scheduler.config import AppConfig
from recurring_scheduler.db.store import SqliteStore
from recurring_scheduler.ledger import build_ledger
from recurring_scheduler.models.meta import JobRun
from recurring_scheduler.scheduling.engine import ExecutionEngine
from recurring_scheduler.scheduling.interfaces import Clock, Ledger, SystemClock
from recurring_scheduler.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class SchedulerJob(ABC):
    """Abstract base for all scheduler batch jobs.

    Subclasses must:
      1. Set ``job_name`` class variable.
      2. Implement ``_execute(run, **kwargs) -> int``, filling in the
         run's item counters and returning the number of items attempted.

    Attributes:
        job_name: String identifier matching a valid ``JobRun.job_name``.
        config: The application configuration for this run.
        db_path: Path to the SQLite database (defaults to ``config.database.db_path``).
        clock: Source of "now" (``SystemClock`` unless overridden, e.g. ``--as-of``).
        ledger: Ledger override; built from ``config.ledger`` when ``None``.
        last_summary: The batch/retry summary of the most recent run.
    """

    job_name: str  # Override in subclass

    def __init__(
        self,
        config: AppConfig,
        db_path: Optional[str] = None,
        clock: Optional[Clock] = None,
        ledger: Optional[Ledger] = None,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self.clock: Clock = clock or SystemClock()
        self.ledger = ledger
        self.last_summary: Any = None

    def run(self, **kwargs) -> JobRun:
        """Execute this job.

        Returns:
            ``JobRun`` with final ``status``, item counters and ``finished_at``.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                recording ``status='failed'`` in the run record.
        """
        run = JobRun(
            run_slug=str(uuid4()),
            job_name=self.job_name,
            config_snapshot=self.config.model_dump(mode="json"),
            started_at=utcnow(),
        )
        logger.info("Job [%s] starting | run_slug=%s", self.job_name, run.run_slug)

        try:
            attempted = self._execute(run=run, **kwargs)
            run.status = "success"
            run.items_attempted = attempted
            run.finished_at = utcnow()
            logger.info(
                "Job [%s] completed | attempted=%d | succeeded=%d | failed=%d | run_slug=%s",
                self.job_name, run.items_attempted, run.items_succeeded,
                run.items_failed, run.run_slug,
            )

        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = utcnow()
            logger.error(
                "Job [%s] FAILED: %s | run_slug=%s", self.job_name, exc, run.run_slug
            )
            self._persist_run(run)
            raise

        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: JobRun, **kwargs) -> int:
        """Job-specific implementation.

        Args:
            run: The in-progress ``JobRun`` record (mutable).
            **kwargs: Job-specific parameters.

        Returns:
            Number of items attempted.
        """
        ...

    @contextmanager
    def _open_engine(
        self, conn: sqlite3.Connection
    ) -> Iterator[tuple[SqliteStore, ExecutionEngine]]:
        """Wire a store, ledger and engine over ``conn``.

        A ledger built here from ``config.ledger`` is closed on exit; an
        injected ``self.ledger`` belongs to the caller and is left open.
        """
        store = SqliteStore(conn, clock=self.clock)
        if self.ledger is not None:
            yield store, ExecutionEngine(store, self.ledger, self.clock, self.config.scheduler)
            return
        with closing(build_ledger(self.config.ledger, conn, clock=self.clock)) as ledger:
            yield store, ExecutionEngine(store, ledger, self.clock, self.config.scheduler)

    def _persist_run(self, run: JobRun) -> None:
        """Persist the ``JobRun`` record to the database.

        Logs errors rather than raising, so a persistence failure never
        masks the original job error.
        """
        try:
            from recurring_scheduler.db.connection import get_connection
            from recurring_scheduler.db.repositories.job_repo import JobRunRepository

            with get_connection(
                self.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
            ) as conn:
                repo = JobRunRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except Exception as exc:
            logger.error(
                "Failed to persist JobRun for run_slug=%s: %s", run.run_slug, exc
            )
