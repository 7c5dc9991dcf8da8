"""
Local ledger — books transactions into the ``ledger_transactions`` table.

Used when ``[ledger] backend = "local"`` and throughout the test suite. It
runs on the scheduler's own SQLite connection but is otherwise an
independent collaborator: the engine treats any exception it raises as a
ledger failure.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional
from uuid import uuid4

from recurring_scheduler.db.repositories.ledger_repo import LedgerTransactionRepository
from recurring_scheduler.models.ledger import TransactionRef, TransactionSpec
from recurring_scheduler.scheduling.interfaces import Clock, SystemClock

logger = logging.getLogger(__name__)


class LocalLedger:
    """``Ledger`` that writes to the local ``ledger_transactions`` table."""

    def __init__(self, conn: sqlite3.Connection, clock: Optional[Clock] = None) -> None:
        self.conn = conn
        self.clock: Clock = clock or SystemClock()
        self.repo = LedgerTransactionRepository(conn)

    def create_transaction(self, spec: TransactionSpec) -> TransactionRef:
        transaction_id = str(uuid4())
        created_at = self.clock.now()
        with self.conn:
            self.repo.insert(transaction_id, spec, created_at)
        logger.debug(
            "Booked transaction %s | household=%s | amount=%d %s | date=%s",
            transaction_id, spec.household_id, spec.amount, spec.currency,
            spec.booking_date.isoformat(),
        )
        return TransactionRef(transaction_id=transaction_id, created_at=created_at)

    def close(self) -> None:
        """No-op; the connection belongs to the caller."""
