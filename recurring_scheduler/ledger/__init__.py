"""
Ledger adapters for the recurring-obligation scheduler.

  ledger/local_ledger.py — books into the local ``ledger_transactions`` table.
  ledger/http_ledger.py  — posts to a remote ledger API with httpx.

``build_ledger(config, conn)`` selects the adapter named by
``[ledger] backend``.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from recurring_scheduler.config import LedgerConfig
from recurring_scheduler.ledger.http_ledger import HttpLedgerClient
from recurring_scheduler.ledger.local_ledger import LocalLedger
from recurring_scheduler.scheduling.interfaces import Clock, Ledger


def build_ledger(
    config: LedgerConfig,
    conn: sqlite3.Connection,
    clock: Optional[Clock] = None,
) -> Ledger:
    """Return the ledger adapter configured by ``config.backend``."""
    if config.backend == "http":
        return HttpLedgerClient(
            base_url=config.base_url,
            api_key=config.api_key.get_secret_value() if config.api_key else None,
            timeout_seconds=config.timeout_seconds,
        )
    return LocalLedger(conn, clock=clock)


__all__ = ["HttpLedgerClient", "LocalLedger", "build_ledger"]
