"""
Repository for ``recurring_rules``.

Every write that changes a rule's state is a compare-and-swap on the
``version`` column: the ``WHERE`` clause pins the version the caller read,
and the statement bumps it. A zero affected-row count means another writer
got there first.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Optional

from recurring_scheduler.db.repositories.base import BaseRepository
from recurring_scheduler.models.rule import RecurringRule
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency, RuleStatus
from recurring_scheduler.utils.time_utils import (
    parse_iso_date,
    parse_iso_datetime,
    to_iso,
)

logger = logging.getLogger(__name__)


class RecurringRuleRepository(BaseRepository):
    """Read/write access to ``recurring_rules``."""

    def insert(self, rule: RecurringRule) -> None:
        """Insert a new rule row.

        Args:
            rule: The rule to persist. ``created_at``/``updated_at`` must be set.
        """
        self.execute(
            """
            INSERT INTO recurring_rules (
                rule_id, household_id, name, description, amount, currency,
                source_account_id, transfer_account_id, category_id, merchant,
                frequency, interval_value, start_date, end_date,
                next_execution_date, last_execution_date, max_executions,
                execution_count, status, metadata, created_by, created_at,
                updated_at, version, claimed_until
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                rule.rule_id,
                rule.household_id,
                rule.name,
                rule.description,
                rule.amount,
                rule.currency,
                rule.source_account_id,
                rule.transfer_account_id,
                rule.category_id,
                rule.merchant,
                rule.frequency.value,
                rule.interval_value,
                rule.start_date.isoformat(),
                to_iso(rule.end_date),
                rule.next_execution_date.isoformat(),
                to_iso(rule.last_execution_date),
                rule.max_executions,
                rule.execution_count,
                rule.status.value,
                json.dumps(rule.metadata),
                rule.created_by,
                to_iso(rule.created_at),
                to_iso(rule.updated_at),
                rule.version,
                to_iso(rule.claimed_until),
            ),
        )

    def get_by_id(self, rule_id: str) -> Optional[RecurringRule]:
        """Fetch a rule by id, or ``None``."""
        row = self.fetchone("SELECT * FROM recurring_rules WHERE rule_id = ?;", (rule_id,))
        return _row_to_rule(row) if row else None

    def get_due_rule_ids(self, as_of: date) -> list[str]:
        """Return ids of ACTIVE rules whose ``next_execution_date <= as_of``.

        Ordered by ``next_execution_date`` so the most overdue rules run first.
        """
        rows = self.fetchall(
            """
            SELECT rule_id FROM recurring_rules
            WHERE status = ? AND next_execution_date <= ?
            ORDER BY next_execution_date, rule_id;
            """,
            (RuleStatus.ACTIVE.value, as_of.isoformat()),
        )
        return [r["rule_id"] for r in rows]

    def list_for_household(
        self,
        household_id: str,
        status: Optional[RuleStatus] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        frequency: Optional[Frequency] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[RecurringRule], int]:
        """Fetch one page of a household's rules plus the unpaged total.

        ``account_id`` matches either the source or the transfer account.

        Returns:
            ``(rules, total)`` — rules ordered by ``next_execution_date``.
        """
        clauses = ["household_id = ?"]
        params: list = [household_id]
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if account_id is not None:
            clauses.append("(source_account_id = ? OR transfer_account_id = ?)")
            params.extend([account_id, account_id])
        if category_id is not None:
            clauses.append("category_id = ?")
            params.append(category_id)
        if frequency is not None:
            clauses.append("frequency = ?")
            params.append(frequency.value)
        where = " AND ".join(clauses)

        total_row = self.fetchone(
            f"SELECT COUNT(*) AS n FROM recurring_rules WHERE {where};", tuple(params)
        )
        rows = self.fetchall(
            f"""
            SELECT * FROM recurring_rules
            WHERE {where}
            ORDER BY next_execution_date, name
            LIMIT ? OFFSET ?;
            """,
            (*params, limit, offset),
        )
        total = int(total_row["n"]) if total_row else 0
        return [_row_to_rule(r) for r in rows], total

    def update_if_version(
        self,
        rule: RecurringRule,
        expected_version: int,
        updated_at: datetime,
    ) -> bool:
        """Write every mutable field of ``rule`` if the row is still at ``expected_version``.

        The stored version becomes ``expected_version + 1``.

        Returns:
            ``True`` if the row was updated, ``False`` on a version mismatch
            (or if the rule no longer exists).
        """
        affected = self.execute_update(
            """
            UPDATE recurring_rules SET
                name                = ?,
                description         = ?,
                amount              = ?,
                currency            = ?,
                source_account_id   = ?,
                transfer_account_id = ?,
                category_id         = ?,
                merchant            = ?,
                frequency           = ?,
                interval_value      = ?,
                start_date          = ?,
                end_date            = ?,
                next_execution_date = ?,
                last_execution_date = ?,
                max_executions      = ?,
                execution_count     = ?,
                status              = ?,
                metadata            = ?,
                updated_at          = ?,
                claimed_until       = ?,
                version             = version + 1
            WHERE rule_id = ? AND version = ?;
            """,
            (
                rule.name,
                rule.description,
                rule.amount,
                rule.currency,
                rule.source_account_id,
                rule.transfer_account_id,
                rule.category_id,
                rule.merchant,
                rule.frequency.value,
                rule.interval_value,
                rule.start_date.isoformat(),
                to_iso(rule.end_date),
                rule.next_execution_date.isoformat(),
                to_iso(rule.last_execution_date),
                rule.max_executions,
                rule.execution_count,
                rule.status.value,
                json.dumps(rule.metadata),
                updated_at.isoformat(),
                to_iso(rule.claimed_until),
                rule.rule_id,
                expected_version,
            ),
        )
        return affected == 1

    def claim(
        self,
        rule_id: str,
        expected_version: int,
        now: datetime,
        lease_until: datetime,
    ) -> bool:
        """Take the execution lease on an ACTIVE rule.

        Succeeds only if the row is still at ``expected_version``, still
        ACTIVE, and no unexpired lease is held.

        Returns:
            ``True`` if the lease was taken.
        """
        affected = self.execute_update(
            """
            UPDATE recurring_rules SET
                claimed_until = ?,
                updated_at    = ?,
                version       = version + 1
            WHERE rule_id = ?
              AND version = ?
              AND status = ?
              AND (claimed_until IS NULL OR claimed_until <= ?);
            """,
            (
                lease_until.isoformat(),
                now.isoformat(),
                rule_id,
                expected_version,
                RuleStatus.ACTIVE.value,
                now.isoformat(),
            ),
        )
        return affected == 1

    def delete(self, rule_id: str) -> bool:
        """Delete a rule; its executions cascade. Returns ``True`` if a row was removed."""
        return self.execute_update(
            "DELETE FROM recurring_rules WHERE rule_id = ?;", (rule_id,)
        ) == 1


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_rule(row: sqlite3.Row) -> RecurringRule:
    return RecurringRule(
        rule_id=row["rule_id"],
        household_id=row["household_id"],
        name=row["name"],
        description=row["description"],
        amount=row["amount"],
        currency=row["currency"],
        source_account_id=row["source_account_id"],
        transfer_account_id=row["transfer_account_id"],
        category_id=row["category_id"],
        merchant=row["merchant"],
        frequency=Frequency(row["frequency"]),
        interval_value=row["interval_value"],
        start_date=date.fromisoformat(row["start_date"]),
        end_date=parse_iso_date(row["end_date"]),
        next_execution_date=date.fromisoformat(row["next_execution_date"]),
        last_execution_date=parse_iso_date(row["last_execution_date"]),
        max_executions=row["max_executions"],
        execution_count=row["execution_count"],
        status=RuleStatus(row["status"]),
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_by=row["created_by"],
        created_at=parse_iso_datetime(row["created_at"]),
        updated_at=parse_iso_datetime(row["updated_at"]),
        version=row["version"],
        claimed_until=parse_iso_datetime(row["claimed_until"]),
    )
