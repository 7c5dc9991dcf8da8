"""Tests for the process-due and retry-failed jobs and their run records.

Jobs open their own connections, so these tests use a file database under
``tmp_path`` rather than the shared in-memory fixture.
"""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from recurring_scheduler.config import AppConfig, DatabaseConfig, LedgerConfig
from recurring_scheduler.db.connection import get_connection
from recurring_scheduler.db.repositories.job_repo import JobRunRepository
from recurring_scheduler.db.repositories.ledger_repo import LedgerTransactionRepository
from recurring_scheduler.db.schema import apply_schema
from recurring_scheduler.db.store import SqliteStore
from recurring_scheduler.jobs import ProcessDueJob, RetryFailedJob
from recurring_scheduler.ledger import LocalLedger
from recurring_scheduler.scheduling.interfaces import FixedClock
from recurring_scheduler.services.rule_service import RuleService
from recurring_scheduler.taxonomy.recurrence_taxonomy import ExecutionStatus, Frequency


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(database=DatabaseConfig(db_path=str(tmp_path / "scheduler.db")))


@pytest.fixture
def job_clock() -> FixedClock:
    return FixedClock(date(2024, 1, 10))


def _seed_rules(config: AppConfig, clock: FixedClock, *starts: date) -> list[str]:
    with get_connection(config.database.db_path) as conn:
        apply_schema(conn)
        service = RuleService(SqliteStore(conn, clock=clock), clock=clock)
        return [
            service.create_rule(
                "hh-1", "user-1",
                name=f"Rule {i}", amount=50_000, source_account_id="acc-checking",
                frequency=Frequency.MONTHLY, start_date=start,
            ).rule_id
            for i, start in enumerate(starts)
        ]


def _runs(config: AppConfig, job_name: str):
    with get_connection(config.database.db_path) as conn:
        return JobRunRepository(conn).get_recent_runs(job_name=job_name)


class TestProcessDueJob:
    def test_executes_due_rules_and_records_run(self, app_config, job_clock):
        _seed_rules(app_config, job_clock, date(2024, 1, 1), date(2024, 1, 10), date(2024, 2, 1))

        job = ProcessDueJob(config=app_config, clock=job_clock)
        run = job.run()

        assert run.status == "success"
        assert run.items_attempted == 2
        assert run.items_succeeded == 2
        assert run.items_failed == 0
        assert job.last_summary.as_of == date(2024, 1, 10)

        [stored] = _runs(app_config, "process_due")
        assert stored.run_slug == run.run_slug
        assert stored.items_succeeded == 2

        with get_connection(app_config.database.db_path) as conn:
            assert LedgerTransactionRepository(conn).count() == 2

    def test_ledger_failures_are_counted_not_raised(self, app_config, job_clock):
        _seed_rules(app_config, job_clock, date(2024, 1, 1))
        ledger = MagicMock()
        ledger.create_transaction.side_effect = RuntimeError("ledger down")

        run = ProcessDueJob(config=app_config, clock=job_clock, ledger=ledger).run()

        assert run.status == "success"
        assert run.items_failed == 1

    def test_infrastructure_failure_is_recorded_and_raised(self, app_config, job_clock):
        _seed_rules(app_config, job_clock)
        job = ProcessDueJob(config=app_config, clock=job_clock)

        with patch.object(ProcessDueJob, "_open_engine", side_effect=RuntimeError("no ledger")):
            with pytest.raises(RuntimeError, match="no ledger"):
                job.run()

        [stored] = _runs(app_config, "process_due")
        assert stored.status == "failed"
        assert stored.error_message == "no ledger"

    def test_snapshot_does_not_store_api_key(self, tmp_path, job_clock):
        config = AppConfig(
            database=DatabaseConfig(db_path=str(tmp_path / "scheduler.db")),
            ledger=LedgerConfig(
                backend="http", base_url="https://ledger.test", api_key="SUPER-SECRET-TOKEN"
            ),
        )
        _seed_rules(config, job_clock)

        run = ProcessDueJob(config=config, clock=job_clock, ledger=MagicMock()).run()

        with get_connection(config.database.db_path) as conn:
            raw = conn.execute(
                "SELECT config_snapshot FROM job_runs WHERE run_slug = ?", (run.run_slug,)
            ).fetchone()["config_snapshot"]
        assert "SUPER-SECRET-TOKEN" not in raw
        assert "SUPER-SECRET-TOKEN" not in str(run.config_snapshot)
        assert run.config_snapshot["ledger"]["base_url"] == "https://ledger.test"

    def test_built_ledger_is_closed(self, app_config, job_clock):
        _seed_rules(app_config, job_clock, date(2024, 1, 1))
        built: list[MagicMock] = []

        def _build(config, conn, clock=None):
            built.append(MagicMock(wraps=LocalLedger(conn, clock=clock)))
            return built[-1]

        with patch("recurring_scheduler.jobs.base.build_ledger", side_effect=_build):
            run = ProcessDueJob(config=app_config, clock=job_clock).run()

        assert run.items_succeeded == 1
        [ledger] = built
        ledger.close.assert_called_once_with()

    def test_injected_ledger_is_left_open(self, app_config, job_clock):
        _seed_rules(app_config, job_clock)
        ledger = MagicMock()

        ProcessDueJob(config=app_config, clock=job_clock, ledger=ledger).run()

        ledger.close.assert_not_called()


class TestRetryFailedJob:
    def test_retries_failed_records(self, app_config, job_clock):
        [rule_id] = _seed_rules(app_config, job_clock, date(2024, 1, 1))
        broken = MagicMock()
        broken.create_transaction.side_effect = RuntimeError("ledger down")
        ProcessDueJob(config=app_config, clock=job_clock, ledger=broken).run()

        job = RetryFailedJob(config=app_config, clock=job_clock)
        run = job.run()

        assert run.items_attempted == 1
        assert run.items_succeeded == 1
        assert job.last_summary.succeeded == 1

        with get_connection(app_config.database.db_path) as conn:
            [record] = SqliteStore(conn).find_executions(rule_id)
        assert record.status == ExecutionStatus.COMPLETED

    def test_permanent_failures_count_as_failed(self, app_config, job_clock):
        _seed_rules(app_config, job_clock, date(2024, 1, 1))
        broken = MagicMock()
        broken.create_transaction.side_effect = RuntimeError("ledger down")
        ProcessDueJob(config=app_config, clock=job_clock, ledger=broken).run()

        retry = RetryFailedJob(config=app_config, clock=job_clock, ledger=broken)
        retry.run()
        run = retry.run()

        assert run.items_failed == 1
        assert retry.last_summary.permanently_failed == 1
        assert len(_runs(app_config, "retry_failed")) == 2
