"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from recurring_scheduler.config import (
    AppConfig,
    LedgerConfig,
    SchedulerConfig,
    load_config,
)

_TOML = """
[database]
db_path = "tmp/test.db"

[scheduler]
retry_ceiling = 4
retry_scan_limit = 6
default_currency = "USD"

[logging]
level = "debug"
"""

_ENV_VARS = [
    "RECURRING_SCHEDULER_DB_PATH",
    "RECURRING_SCHEDULER_LOG_LEVEL",
    "RECURRING_SCHEDULER_DEBUG",
    "RECURRING_SCHEDULER_LEDGER_BACKEND",
    "RECURRING_SCHEDULER_LEDGER_BASE_URL",
    "RECURRING_SCHEDULER_LEDGER_API_KEY",
]


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "scheduler.toml"
    path.write_text(_TOML, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_toml_values_applied(self, config_file):
        config = load_config(config_file)
        assert config.database.db_path == "tmp/test.db"
        assert config.scheduler.retry_ceiling == 4
        assert config.scheduler.default_currency == "USD"
        assert config.logging.level == "DEBUG"
        assert config.ledger.backend == "local"

    def test_unset_sections_use_defaults(self, config_file):
        config = load_config(config_file)
        assert config.scheduler.claim_lease_seconds == 300
        assert config.scheduler.history_limit == 50

    def test_local_toml_overrides(self, config_file):
        (config_file.parent / "local.toml").write_text(
            "[scheduler]\nhistory_limit = 10\n", encoding="utf-8"
        )
        config = load_config(config_file)
        assert config.scheduler.history_limit == 10
        assert config.scheduler.retry_ceiling == 4

    def test_env_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("RECURRING_SCHEDULER_DB_PATH", "/var/lib/sched.db")
        monkeypatch.setenv("RECURRING_SCHEDULER_LEDGER_BACKEND", "http")
        monkeypatch.setenv("RECURRING_SCHEDULER_LEDGER_BASE_URL", "https://ledger.test")
        monkeypatch.setenv("RECURRING_SCHEDULER_LEDGER_API_KEY", "k")

        config = load_config(config_file)

        assert config.database.db_path == "/var/lib/sched.db"
        assert config.ledger.backend == "http"
        assert config.ledger.api_key.get_secret_value() == "k"
        assert config.model_dump(mode="json")["ledger"]["api_key"] == "**********"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")


class TestValidation:
    def test_defaults_are_valid(self):
        config = AppConfig()
        assert config.scheduler.retry_ceiling == 2
        assert config.scheduler.retry_scan_limit == 3

    def test_scan_limit_must_exceed_ceiling(self):
        with pytest.raises(ValidationError, match="retry_scan_limit"):
            SchedulerConfig(retry_ceiling=3, retry_scan_limit=3)

    def test_http_backend_requires_base_url(self):
        with pytest.raises(ValidationError, match="base_url"):
            LedgerConfig(backend="http")

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            LedgerConfig(backend="ftp")
