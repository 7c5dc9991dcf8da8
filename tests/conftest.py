"""
Shared pytest fixtures for the recurring-obligation scheduler test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``clock``: A ``FixedClock`` at 2024-01-01 00:00 UTC, shared by every
    component wired from the fixtures below.
  - ``store`` / ``ledger`` / ``engine`` / ``service``: Components wired
    over ``in_memory_db`` and ``clock``.
  - ``make_rule``: Factory that creates and persists an ACTIVE rule.
"""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Callable, Generator

import pytest

from recurring_scheduler.config import SchedulerConfig
from recurring_scheduler.db.connection import configure_connection
from recurring_scheduler.db.schema import apply_schema
from recurring_scheduler.db.store import SqliteStore
from recurring_scheduler.ledger.local_ledger import LocalLedger
from recurring_scheduler.models.rule import RecurringRule
from recurring_scheduler.scheduling.engine import ExecutionEngine
from recurring_scheduler.scheduling.interfaces import FixedClock
from recurring_scheduler.services.rule_service import RuleService
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    configure_connection(conn, wal_mode=False)
    apply_schema(conn)
    yield conn
    conn.close()


# ── Wired components ──────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(date(2024, 1, 1))


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig()


@pytest.fixture
def store(in_memory_db, clock) -> SqliteStore:
    return SqliteStore(in_memory_db, clock=clock)


@pytest.fixture
def ledger(in_memory_db, clock) -> LocalLedger:
    return LocalLedger(in_memory_db, clock=clock)


@pytest.fixture
def engine(store, ledger, clock, scheduler_config) -> ExecutionEngine:
    return ExecutionEngine(store, ledger, clock, scheduler_config)


@pytest.fixture
def service(store, clock, scheduler_config) -> RuleService:
    return RuleService(store, clock=clock, config=scheduler_config)


# ── Sample domain object factories ────────────────────────────────────────────

@pytest.fixture
def make_rule(service) -> Callable[..., RecurringRule]:
    """Create and persist an ACTIVE rule; keyword arguments override defaults."""

    def _make(**overrides) -> RecurringRule:
        fields = {
            "name": "Rent",
            "description": "Monthly rent",
            "amount": 100_000,
            "source_account_id": "acc-checking",
            "category_id": "cat-housing",
            "frequency": Frequency.MONTHLY,
            "interval_value": 1,
            "start_date": date(2024, 1, 1),
        }
        household_id = overrides.pop("household_id", "hh-1")
        created_by = overrides.pop("created_by", "user-1")
        fields.update(overrides)
        return service.create_rule(household_id, created_by, **fields)

    return _make


@pytest.fixture
def sample_rule() -> RecurringRule:
    """A valid, unpersisted ``RecurringRule``."""
    return RecurringRule(
        household_id="hh-1",
        name="Gym",
        description="Membership",
        amount=250_000,
        source_account_id="acc-checking",
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 1, 15),
        next_execution_date=date(2024, 1, 15),
        created_by="user-1",
    )


# ── Ledger doubles ────────────────────────────────────────────────────────────

class FlakyLedger:
    """Wraps a real ledger, failing the first ``failures`` calls (``-1``: always).

    ``fail_accounts`` makes every call for those source accounts fail.
    """

    def __init__(self, inner, failures: int = 0, fail_accounts: frozenset[str] = frozenset()):
        self.inner = inner
        self.failures = failures
        self.fail_accounts = fail_accounts
        self.calls = 0

    def create_transaction(self, spec):
        self.calls += 1
        if spec.source_account_id in self.fail_accounts:
            raise RuntimeError(f"account {spec.source_account_id} is frozen")
        if self.failures != 0:
            if self.failures > 0:
                self.failures -= 1
            raise RuntimeError("ledger unavailable")
        return self.inner.create_transaction(spec)


@pytest.fixture
def flaky_engine(store, ledger, clock, scheduler_config) -> Callable[..., ExecutionEngine]:
    """Build an engine over a ``FlakyLedger``; returns ``(engine, flaky_ledger)``."""

    def _make(failures: int = 0, fail_accounts: frozenset[str] = frozenset()):
        flaky = FlakyLedger(ledger, failures=failures, fail_accounts=fail_accounts)
        return ExecutionEngine(store, flaky, clock, scheduler_config), flaky

    return _make
