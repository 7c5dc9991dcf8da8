"""
Repository for ``ledger_transactions`` — the local ledger backend's table.

The scheduler never reads this table to make decisions; it exists so the
``local`` ledger backend has somewhere to book transactions and so tests and
operators can inspect what was materialized.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from recurring_scheduler.db.repositories.base import BaseRepository
from recurring_scheduler.models.ledger import RULE_ID_METADATA_KEY, TransactionSpec
from recurring_scheduler.utils.time_utils import parse_iso_datetime

logger = logging.getLogger(__name__)


class BookedTransaction(BaseModel):
    """A transaction row as stored by the local ledger."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    household_id: str
    description: str
    amount: int
    currency: str
    source_account_id: str
    transfer_account_id: Optional[str] = None
    category_id: Optional[str] = None
    merchant: Optional[str] = None
    booking_date: date
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: str
    created_at: datetime


class LedgerTransactionRepository(BaseRepository):
    """Read/write access to ``ledger_transactions``."""

    def insert(self, transaction_id: str, spec: TransactionSpec, created_at: datetime) -> None:
        self.execute(
            """
            INSERT INTO ledger_transactions (
                transaction_id, household_id, description, amount, currency,
                source_account_id, transfer_account_id, category_id, merchant,
                booking_date, metadata, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                transaction_id,
                spec.household_id,
                spec.description,
                spec.amount,
                spec.currency,
                spec.source_account_id,
                spec.transfer_account_id,
                spec.category_id,
                spec.merchant,
                spec.booking_date.isoformat(),
                json.dumps(spec.metadata),
                spec.created_by,
                created_at.isoformat(),
            ),
        )

    def get_by_id(self, transaction_id: str) -> Optional[BookedTransaction]:
        row = self.fetchone(
            "SELECT * FROM ledger_transactions WHERE transaction_id = ?;",
            (transaction_id,),
        )
        return _row_to_transaction(row) if row else None

    def list_for_rule(self, rule_id: str) -> list[BookedTransaction]:
        """Return transactions whose metadata back-links to ``rule_id``, by booking date."""
        rows = self.fetchall(
            """
            SELECT * FROM ledger_transactions
            WHERE json_extract(metadata, ?) = ?
            ORDER BY booking_date, created_at;
            """,
            (f"$.{RULE_ID_METADATA_KEY}", rule_id),
        )
        return [_row_to_transaction(r) for r in rows]

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM ledger_transactions;")
        return int(row["n"]) if row else 0


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_transaction(row: sqlite3.Row) -> BookedTransaction:
    return BookedTransaction(
        transaction_id=row["transaction_id"],
        household_id=row["household_id"],
        description=row["description"],
        amount=row["amount"],
        currency=row["currency"],
        source_account_id=row["source_account_id"],
        transfer_account_id=row["transfer_account_id"],
        category_id=row["category_id"],
        merchant=row["merchant"],
        booking_date=date.fromisoformat(row["booking_date"]),
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_by=row["created_by"],
        created_at=parse_iso_datetime(row["created_at"]),
    )
