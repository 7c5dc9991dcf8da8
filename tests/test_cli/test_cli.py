"""End-to-end tests for the ``recurring-scheduler`` CLI via ``typer.testing.CliRunner``."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from recurring_scheduler.cli import app
from recurring_scheduler.ledger import LocalLedger

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Commands reconfigure the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path) -> str:
    path = tmp_path / "scheduler.toml"
    path.write_text(
        "[database]\n"
        f'db_path = "{(tmp_path / "scheduler.db").as_posix()}"\n'
        "wal_mode = false\n"
        "\n[logging]\n"
        'level = "WARNING"\n'
        f'log_file = "{(tmp_path / "scheduler.log").as_posix()}"\n',
        encoding="utf-8",
    )
    return str(path)


def _invoke(config_path: str, *args: str):
    return runner.invoke(app, [*args, "--config", config_path])


def _create_rent(config_path: str, *extra: str) -> str:
    result = _invoke(
        config_path,
        "create-rule",
        "--household", "hh-1",
        "--created-by", "user-1",
        "--name", "Rent",
        "--amount", "100000",
        "--source-account", "acc-checking",
        "--frequency", "monthly",
        "--start-date", "2024-01-01",
        *extra,
    )
    assert result.exit_code == 0, result.output
    [line] = [ln for ln in result.output.splitlines() if ln.strip().startswith("Rule:")]
    return line.split()[-1]


class TestSetupCommands:
    def test_init_db(self, config_path):
        result = _invoke(config_path, "init-db")
        assert result.exit_code == 0, result.output
        assert "[OK] Database ready." in result.output

    def test_validate_config_masks_api_key(self, config_path, monkeypatch):
        monkeypatch.setenv("RECURRING_SCHEDULER_LEDGER_BACKEND", "http")
        monkeypatch.setenv("RECURRING_SCHEDULER_LEDGER_BASE_URL", "https://ledger.test")
        monkeypatch.setenv("RECURRING_SCHEDULER_LEDGER_API_KEY", "top-secret")

        result = _invoke(config_path, "validate-config", "--full")

        assert result.exit_code == 0, result.output
        assert "Ledger backend:   http" in result.output
        assert "top-secret" not in result.output
        assert '"api_key": "**********"' in result.output

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["init-db", "--config", str(tmp_path / "nope.toml")])
        assert result.exit_code == 1
        assert "[ERROR]" in result.output


class TestRuleCommands:
    def test_create_and_show(self, config_path):
        rule_id = _create_rent(config_path, "--max-executions", "3")
        result = _invoke(config_path, "show-rule", rule_id)
        assert result.exit_code == 0, result.output
        assert "100000 IDR" in result.output
        assert "Next due:    2024-01-01" in result.output
        assert "0 / 3" in result.output

    def test_create_invalid_rule(self, config_path):
        result = _invoke(
            config_path,
            "create-rule",
            "--household", "hh-1",
            "--created-by", "user-1",
            "--name", "Rent",
            "--amount", "0",
            "--source-account", "acc-checking",
            "--frequency", "MONTHLY",
            "--start-date", "2024-01-01",
        )
        assert result.exit_code == 1
        assert "amount" in result.output

    def test_unknown_frequency(self, config_path):
        result = _invoke(
            config_path,
            "create-rule",
            "--household", "hh-1",
            "--created-by", "user-1",
            "--name", "Rent",
            "--amount", "1",
            "--source-account", "acc-checking",
            "--frequency", "HOURLY",
            "--start-date", "2024-01-01",
        )
        assert result.exit_code == 1
        assert "Unknown frequency" in result.output

    def test_list_rules(self, config_path):
        rule_id = _create_rent(config_path)
        result = _invoke(config_path, "list-rules", "--household", "hh-1")
        assert result.exit_code == 0, result.output
        assert "1 total" in result.output
        assert rule_id in result.output

    def test_update_rule(self, config_path):
        rule_id = _create_rent(config_path)
        result = _invoke(config_path, "update-rule", rule_id, "--amount", "125000")
        assert result.exit_code == 0, result.output
        assert "125000 IDR" in result.output

    def test_update_without_options(self, config_path):
        rule_id = _create_rent(config_path)
        result = _invoke(config_path, "update-rule", rule_id)
        assert result.exit_code == 1
        assert "Nothing to update" in result.output

    def test_lifecycle(self, config_path):
        rule_id = _create_rent(config_path)
        assert "PAUSED" in _invoke(config_path, "pause-rule", rule_id).output
        assert "ACTIVE" in _invoke(config_path, "resume-rule", rule_id).output
        assert "CANCELLED" in _invoke(config_path, "cancel-rule", rule_id).output

        result = _invoke(config_path, "resume-rule", rule_id)
        assert result.exit_code == 1
        assert "[ERROR]" in result.output

    def test_delete_rule(self, config_path):
        rule_id = _create_rent(config_path)
        assert _invoke(config_path, "delete-rule", rule_id, "--yes").exit_code == 0

        result = _invoke(config_path, "show-rule", rule_id)
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_show_missing_rule(self, config_path):
        result = _invoke(config_path, "show-rule", "missing")
        assert result.exit_code == 1


class TestExecutionCommands:
    def test_execute_and_history(self, config_path):
        rule_id = _create_rent(config_path)

        result = _invoke(config_path, "execute", rule_id, "--date", "2024-01-01")
        assert result.exit_code == 0, result.output
        assert "Next due:    2024-02-01" in result.output

        result = _invoke(config_path, "history", rule_id)
        assert result.exit_code == 0, result.output
        assert "1 record(s)" in result.output
        assert "COMPLETED" in result.output

    def test_execute_closes_ledger(self, config_path):
        rule_id = _create_rent(config_path)
        built: list[MagicMock] = []

        def _build(config, conn, clock=None):
            built.append(MagicMock(wraps=LocalLedger(conn, clock=clock)))
            return built[-1]

        with patch("recurring_scheduler.ledger.build_ledger", side_effect=_build):
            result = _invoke(config_path, "execute", rule_id, "--date", "2024-01-01")
            failed = _invoke(config_path, "execute", rule_id, "--date", "2024-01-01")

        assert result.exit_code == 0, result.output
        assert failed.exit_code == 1
        assert [ledger.close.call_count for ledger in built] == [1, 1]

    def test_execute_not_due(self, config_path):
        rule_id = _create_rent(config_path)
        result = _invoke(config_path, "execute", rule_id, "--date", "2023-12-01")
        assert result.exit_code == 1
        assert "not_due" in result.output

    def test_process_due_and_job_runs(self, config_path):
        _create_rent(config_path)
        _create_rent(config_path)

        result = _invoke(config_path, "process-due", "--as-of", "2024-01-01")
        assert result.exit_code == 0, result.output
        assert "attempted=2" in result.output
        assert "succeeded=2" in result.output

        result = _invoke(config_path, "retry-failed")
        assert result.exit_code == 0, result.output
        assert "scanned=0" in result.output

        result = _invoke(config_path, "job-runs")
        assert result.exit_code == 0, result.output
        assert "process_due" in result.output
        assert "retry_failed" in result.output
