"""
Repository for ``job_runs`` — audit log of scheduler batch invocations.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Optional

from recurring_scheduler.db.repositories.base import BaseRepository
from recurring_scheduler.models.meta import JobRun
from recurring_scheduler.utils.time_utils import parse_iso_datetime, to_iso

logger = logging.getLogger(__name__)


class JobRunRepository(BaseRepository):
    """Read/write access to ``job_runs``."""

    def insert_run(self, run: JobRun) -> int:
        """Insert a new job run record and return its ``run_id``.

        Args:
            run: The ``JobRun`` to persist.

        Returns:
            The newly assigned ``run_id``.
        """
        self.execute(
            """
            INSERT INTO job_runs (
                run_slug, job_name, status, items_attempted, items_succeeded,
                items_failed, config_snapshot, error_message, started_at, finished_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                run.run_slug,
                run.job_name,
                run.status,
                run.items_attempted,
                run.items_succeeded,
                run.items_failed,
                json.dumps(run.config_snapshot),
                run.error_message,
                run.started_at.isoformat(),
                to_iso(run.finished_at),
            ),
        )
        return self.last_insert_rowid()

    def update_run(self, run: JobRun) -> None:
        """Update the mutable fields of an existing run record.

        Raises:
            ValueError: If ``run.run_id`` is ``None``.
        """
        if run.run_id is None:
            raise ValueError("Cannot update JobRun without a run_id.")
        self.execute(
            """
            UPDATE job_runs SET
                status          = ?,
                items_attempted = ?,
                items_succeeded = ?,
                items_failed    = ?,
                error_message   = ?,
                finished_at     = ?
            WHERE run_id = ?;
            """,
            (
                run.status,
                run.items_attempted,
                run.items_succeeded,
                run.items_failed,
                run.error_message,
                to_iso(run.finished_at),
                run.run_id,
            ),
        )

    def get_run_by_slug(self, run_slug: str) -> Optional[JobRun]:
        row = self.fetchone("SELECT * FROM job_runs WHERE run_slug = ?;", (run_slug,))
        return _row_to_run(row) if row else None

    def get_recent_runs(self, job_name: Optional[str] = None, limit: int = 20) -> list[JobRun]:
        """Fetch recent run records, optionally filtered by job, most recent first."""
        if job_name:
            rows = self.fetchall(
                """
                SELECT * FROM job_runs
                WHERE job_name = ?
                ORDER BY started_at DESC LIMIT ?;
                """,
                (job_name, limit),
            )
        else:
            rows = self.fetchall(
                "SELECT * FROM job_runs ORDER BY started_at DESC LIMIT ?;",
                (limit,),
            )
        return [_row_to_run(r) for r in rows]


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_run(row: sqlite3.Row) -> JobRun:
    return JobRun(
        run_id=row["run_id"],
        run_slug=row["run_slug"],
        job_name=row["job_name"],
        status=row["status"],
        items_attempted=row["items_attempted"],
        items_succeeded=row["items_succeeded"],
        items_failed=row["items_failed"],
        config_snapshot=json.loads(row["config_snapshot"]),
        error_message=row["error_message"],
        started_at=parse_iso_datetime(row["started_at"]),
        finished_at=parse_iso_datetime(row["finished_at"]),
    )
