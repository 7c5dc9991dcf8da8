"""
Repository for ``rule_executions`` — the per-rule execution audit trail.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from recurring_scheduler.db.repositories.base import BaseRepository
from recurring_scheduler.models.execution import ExecutionRecord
from recurring_scheduler.taxonomy.recurrence_taxonomy import ExecutionStatus
from recurring_scheduler.utils.time_utils import parse_iso_datetime, to_iso

logger = logging.getLogger(__name__)


class ExecutionRecordRepository(BaseRepository):
    """Read/write access to ``rule_executions``."""

    def insert(self, record: ExecutionRecord) -> None:
        self.execute(
            """
            INSERT INTO rule_executions (
                execution_id, rule_id, scheduled_date, executed_at, status,
                linked_transaction_id, error_message, retry_count,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                record.execution_id,
                record.rule_id,
                record.scheduled_date.isoformat(),
                to_iso(record.executed_at),
                record.status.value,
                record.linked_transaction_id,
                record.error_message,
                record.retry_count,
                to_iso(record.created_at),
                to_iso(record.updated_at),
            ),
        )

    def update(self, record: ExecutionRecord) -> bool:
        """Overwrite the mutable outcome fields of an existing record.

        Returns:
            ``True`` if the record exists and was updated.
        """
        affected = self.execute_update(
            """
            UPDATE rule_executions SET
                executed_at           = ?,
                status                = ?,
                linked_transaction_id = ?,
                error_message         = ?,
                retry_count           = ?,
                updated_at            = ?
            WHERE execution_id = ?;
            """,
            (
                to_iso(record.executed_at),
                record.status.value,
                record.linked_transaction_id,
                record.error_message,
                record.retry_count,
                to_iso(record.updated_at),
                record.execution_id,
            ),
        )
        return affected == 1

    def get_by_id(self, execution_id: str) -> Optional[ExecutionRecord]:
        row = self.fetchone(
            "SELECT * FROM rule_executions WHERE execution_id = ?;", (execution_id,)
        )
        return _row_to_record(row) if row else None

    def list_for_rule(self, rule_id: str, limit: int = 50) -> list[ExecutionRecord]:
        """Return the most recent executions for a rule, newest first.

        Ties on ``scheduled_date`` (e.g. a forced run plus a retry on the same
        day) are broken by creation time.
        """
        rows = self.fetchall(
            """
            SELECT * FROM rule_executions
            WHERE rule_id = ?
            ORDER BY scheduled_date DESC, created_at DESC
            LIMIT ?;
            """,
            (rule_id, limit),
        )
        return [_row_to_record(r) for r in rows]

    def list_failed(self, retry_limit: int) -> list[ExecutionRecord]:
        """Return FAILED records with ``retry_count < retry_limit``, oldest first."""
        rows = self.fetchall(
            """
            SELECT * FROM rule_executions
            WHERE status = ? AND retry_count < ?
            ORDER BY updated_at, execution_id;
            """,
            (ExecutionStatus.FAILED.value, retry_limit),
        )
        return [_row_to_record(r) for r in rows]


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_record(row: sqlite3.Row) -> ExecutionRecord:
    return ExecutionRecord(
        execution_id=row["execution_id"],
        rule_id=row["rule_id"],
        scheduled_date=date.fromisoformat(row["scheduled_date"]),
        executed_at=parse_iso_datetime(row["executed_at"]),
        status=ExecutionStatus(row["status"]),
        linked_transaction_id=row["linked_transaction_id"],
        error_message=row["error_message"],
        retry_count=row["retry_count"],
        created_at=parse_iso_datetime(row["created_at"]),
        updated_at=parse_iso_datetime(row["updated_at"]),
    )
