"""
SQLite implementation of the scheduling ``Store``.

``SqliteStore`` composes the rule and execution repositories over one
connection. Each write is committed immediately (``with self.conn:``) so a
claim taken by one process is visible to every other process before any
ledger call is made.

Compare-and-swap failures surface as ``ConcurrencyConflictError``; the
repositories only report affected-row counts.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from typing import Optional

from recurring_scheduler.db.repositories.execution_repo import ExecutionRecordRepository
from recurring_scheduler.db.repositories.rule_repo import RecurringRuleRepository
from recurring_scheduler.errors import ConcurrencyConflictError
from recurring_scheduler.models.execution import ExecutionRecord
from recurring_scheduler.models.rule import RecurringRule
from recurring_scheduler.scheduling.interfaces import Clock, SystemClock
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency, RuleStatus

logger = logging.getLogger(__name__)


class SqliteStore:
    """``Store`` backed by the ``recurring_rules`` and ``rule_executions`` tables.

    Args:
        conn: Open, configured connection (see ``configure_connection``).
        clock: Source of ``created_at``/``updated_at`` timestamps.
    """

    def __init__(self, conn: sqlite3.Connection, clock: Optional[Clock] = None) -> None:
        self.conn = conn
        self.clock: Clock = clock or SystemClock()
        self.rules = RecurringRuleRepository(conn)
        self.executions = ExecutionRecordRepository(conn)

    # ── Rules ─────────────────────────────────────────────────────────────────

    def find_rule(self, rule_id: str) -> Optional[RecurringRule]:
        return self.rules.get_by_id(rule_id)

    def find_due_rules(self, as_of: date) -> list[str]:
        return self.rules.get_due_rule_ids(as_of)

    def insert_rule(self, rule: RecurringRule) -> RecurringRule:
        now = self.clock.now()
        stored = rule.model_copy(update={"created_at": now, "updated_at": now, "version": 0})
        with self.conn:
            self.rules.insert(stored)
        logger.info("Inserted rule %s for household %s", stored.rule_id, stored.household_id)
        return stored

    def save_rule(self, rule: RecurringRule) -> RecurringRule:
        """Persist ``rule`` if nobody has written it since it was read.

        Returns:
            The stored snapshot (``version`` bumped, ``updated_at`` stamped).

        Raises:
            ConcurrencyConflictError: If the stored version differs from
                ``rule.version`` or the rule has been deleted.
        """
        now = self.clock.now()
        with self.conn:
            saved = self.rules.update_if_version(rule, expected_version=rule.version, updated_at=now)
        if not saved:
            raise ConcurrencyConflictError(
                f"Rule {rule.rule_id} was modified concurrently (expected version {rule.version}).",
                rule_id=rule.rule_id,
            )
        return rule.model_copy(update={"version": rule.version + 1, "updated_at": now})

    def claim_rule(
        self,
        rule: RecurringRule,
        now: datetime,
        lease_until: datetime,
    ) -> RecurringRule:
        """Take the execution lease on ``rule`` until ``lease_until``.

        Raises:
            ConcurrencyConflictError: If another worker holds an unexpired
                lease, or the rule changed since it was read.
        """
        with self.conn:
            claimed = self.rules.claim(
                rule.rule_id, expected_version=rule.version, now=now, lease_until=lease_until
            )
        if not claimed:
            raise ConcurrencyConflictError(
                f"Rule {rule.rule_id} is being executed by another worker.",
                rule_id=rule.rule_id,
            )
        logger.debug("Claimed rule %s until %s", rule.rule_id, lease_until.isoformat())
        return rule.model_copy(
            update={"claimed_until": lease_until, "version": rule.version + 1, "updated_at": now}
        )

    def delete_rule(self, rule_id: str) -> bool:
        with self.conn:
            deleted = self.rules.delete(rule_id)
        if deleted:
            logger.info("Deleted rule %s and its execution history", rule_id)
        return deleted

    def list_rules(
        self,
        household_id: str,
        status: Optional[RuleStatus] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        frequency: Optional[Frequency] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[RecurringRule], int]:
        return self.rules.list_for_household(
            household_id,
            status=status,
            account_id=account_id,
            category_id=category_id,
            frequency=frequency,
            limit=limit,
            offset=offset,
        )

    # ── Executions ────────────────────────────────────────────────────────────

    def create_execution(self, rule_id: str, scheduled_date: date) -> ExecutionRecord:
        now = self.clock.now()
        record = ExecutionRecord(
            rule_id=rule_id,
            scheduled_date=scheduled_date,
            created_at=now,
            updated_at=now,
        )
        with self.conn:
            self.executions.insert(record)
        return record

    def save_execution(self, record: ExecutionRecord) -> ExecutionRecord:
        record.updated_at = self.clock.now()
        with self.conn:
            if not self.executions.update(record):
                if record.created_at is None:
                    record.created_at = record.updated_at
                self.executions.insert(record)
        return record

    def find_failed_executions(self, retry_limit: int) -> list[ExecutionRecord]:
        return self.executions.list_failed(retry_limit)

    def find_executions(self, rule_id: str, limit: int = 50) -> list[ExecutionRecord]:
        return self.executions.list_for_rule(rule_id, limit=limit)

    def find_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self.executions.get_by_id(execution_id)
