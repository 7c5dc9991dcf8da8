"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. on every CLI call or
in tests).

Table creation order respects foreign key dependencies:
  1. recurring_rules      (no FKs)
  2. rule_executions      (→ recurring_rules, ON DELETE CASCADE)
  3. ledger_transactions  (no FKs — the local ledger is a separate system
                           that only carries back-links in its metadata)
  4. job_runs             (no FKs)

Dates (``start_date``, ``next_execution_date``, ``scheduled_date`` ...) are
stored as ``YYYY-MM-DD`` text so lexical comparison equals date comparison.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_RECURRING_RULES = """
CREATE TABLE IF NOT EXISTS recurring_rules (
    rule_id              TEXT    PRIMARY KEY,
    household_id         TEXT    NOT NULL,
    name                 TEXT    NOT NULL,
    description          TEXT    NOT NULL DEFAULT '',
    amount               INTEGER NOT NULL CHECK (amount > 0),
    currency             TEXT    NOT NULL,
    source_account_id    TEXT    NOT NULL,
    transfer_account_id  TEXT,
    category_id          TEXT,
    merchant             TEXT,
    frequency            TEXT    NOT NULL,
    interval_value       INTEGER NOT NULL DEFAULT 1 CHECK (interval_value >= 1),
    start_date           TEXT    NOT NULL,
    end_date             TEXT,
    next_execution_date  TEXT    NOT NULL,
    last_execution_date  TEXT,
    max_executions       INTEGER,
    execution_count      INTEGER NOT NULL DEFAULT 0 CHECK (execution_count >= 0),
    status               TEXT    NOT NULL DEFAULT 'ACTIVE',
    metadata             TEXT    NOT NULL DEFAULT '{}',
    created_by           TEXT    NOT NULL,
    created_at           TEXT    NOT NULL,
    updated_at           TEXT    NOT NULL,
    version              INTEGER NOT NULL DEFAULT 0,
    claimed_until        TEXT
);
"""

_DDL_RECURRING_RULES_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_rules_due
    ON recurring_rules(status, next_execution_date);
CREATE INDEX IF NOT EXISTS idx_rules_household
    ON recurring_rules(household_id, next_execution_date);
"""

_DDL_RULE_EXECUTIONS = """
CREATE TABLE IF NOT EXISTS rule_executions (
    execution_id          TEXT    PRIMARY KEY,
    rule_id               TEXT    NOT NULL REFERENCES recurring_rules(rule_id) ON DELETE CASCADE,
    scheduled_date        TEXT    NOT NULL,
    executed_at           TEXT,
    status                TEXT    NOT NULL DEFAULT 'PENDING',
    linked_transaction_id TEXT,
    error_message         TEXT,
    retry_count           INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
    created_at            TEXT    NOT NULL,
    updated_at            TEXT    NOT NULL
);
"""

_DDL_RULE_EXECUTIONS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_executions_rule_date
    ON rule_executions(rule_id, scheduled_date);
CREATE INDEX IF NOT EXISTS idx_executions_failed
    ON rule_executions(status, retry_count)
    WHERE status = 'FAILED';
"""

_DDL_LEDGER_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS ledger_transactions (
    transaction_id       TEXT    PRIMARY KEY,
    household_id         TEXT    NOT NULL,
    description          TEXT    NOT NULL,
    amount               INTEGER NOT NULL,
    currency             TEXT    NOT NULL,
    source_account_id    TEXT    NOT NULL,
    transfer_account_id  TEXT,
    category_id          TEXT,
    merchant             TEXT,
    booking_date         TEXT    NOT NULL,
    metadata             TEXT    NOT NULL DEFAULT '{}',
    created_by           TEXT    NOT NULL,
    created_at           TEXT    NOT NULL
);
"""

_DDL_LEDGER_TRANSACTIONS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_ledger_household_date
    ON ledger_transactions(household_id, booking_date);
"""

_DDL_JOB_RUNS = """
CREATE TABLE IF NOT EXISTS job_runs (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    job_name        TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'started',
    items_attempted INTEGER NOT NULL DEFAULT 0,
    items_succeeded INTEGER NOT NULL DEFAULT 0,
    items_failed    INTEGER NOT NULL DEFAULT 0,
    config_snapshot TEXT    NOT NULL,
    error_message   TEXT,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT
);
"""

_ALL_DDL = [
    _DDL_RECURRING_RULES,
    _DDL_RECURRING_RULES_INDEXES,
    _DDL_RULE_EXECUTIONS,
    _DDL_RULE_EXECUTIONS_INDEXES,
    _DDL_LEDGER_TRANSACTIONS,
    _DDL_LEDGER_TRANSACTIONS_INDEXES,
    _DDL_JOB_RUNS,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "recurring_rules",
    "rule_executions",
    "ledger_transactions",
    "job_runs",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent — safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of table names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of user-defined index names."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' AND name NOT LIKE 'sqlite_%' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
