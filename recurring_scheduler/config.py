"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``RECURRING_SCHEDULER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The CLI, the scheduler jobs and the ledger factory receive an ``AppConfig``
instance — never raw dicts or individual env var lookups scattered through
the codebase.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, SecretStr, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/recurring_scheduler.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class SchedulerConfig(BaseModel):
    """Execution, retry and claim policy."""

    model_config = ConfigDict(frozen=True)

    retry_ceiling: int = 2          # pre-retry count at which a failure becomes permanent
    retry_scan_limit: int = 3       # FAILED records at or above this count are not scanned
    claim_lease_seconds: int = 300
    default_currency: str = "IDR"
    history_limit: int = 50

    @field_validator("retry_ceiling", "retry_scan_limit", "claim_lease_seconds", "history_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_scan_limit(self) -> "SchedulerConfig":
        if self.retry_scan_limit <= self.retry_ceiling:
            raise ValueError(
                f"retry_scan_limit ({self.retry_scan_limit}) must be greater than "
                f"retry_ceiling ({self.retry_ceiling})."
            )
        return self


class LedgerConfig(BaseModel):
    """Ledger collaborator selection.

    ``backend = "local"`` books transactions into the ``ledger_transactions``
    table of the scheduler database; ``backend = "http"`` posts them to an
    external ledger service at ``base_url``.
    """

    model_config = ConfigDict(frozen=True)

    backend: str = "local"
    base_url: Optional[str] = None
    api_key: Optional[SecretStr] = None
    timeout_seconds: float = 30.0

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        valid = {"local", "http"}
        if v.lower() not in valid:
            raise ValueError(f"Ledger backend must be one of {sorted(valid)}, got '{v}'.")
        return v.lower()

    @model_validator(mode="after")
    def validate_http_settings(self) -> "LedgerConfig":
        if self.backend == "http" and not self.base_url:
            raise ValueError("ledger.base_url is required when ledger.backend = 'http'.")
        return self


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/recurring_scheduler.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    It is constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    ledger: LedgerConfig = LedgerConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply RECURRING_SCHEDULER_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply RECURRING_SCHEDULER_* env vars to the raw config dict.

    Supported overrides:
      RECURRING_SCHEDULER_DB_PATH          → raw["database"]["db_path"]
      RECURRING_SCHEDULER_LOG_LEVEL        → raw["logging"]["level"]
      RECURRING_SCHEDULER_DEBUG            → raw["debug"]
      RECURRING_SCHEDULER_LEDGER_BACKEND   → raw["ledger"]["backend"]
      RECURRING_SCHEDULER_LEDGER_BASE_URL  → raw["ledger"]["base_url"]
      RECURRING_SCHEDULER_LEDGER_API_KEY   → raw["ledger"]["api_key"]
    """
    if db_path := os.environ.get("RECURRING_SCHEDULER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("RECURRING_SCHEDULER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("RECURRING_SCHEDULER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    if backend := os.environ.get("RECURRING_SCHEDULER_LEDGER_BACKEND"):
        raw.setdefault("ledger", {})["backend"] = backend

    if base_url := os.environ.get("RECURRING_SCHEDULER_LEDGER_BASE_URL"):
        raw.setdefault("ledger", {})["base_url"] = base_url

    if api_key := os.environ.get("RECURRING_SCHEDULER_LEDGER_API_KEY"):
        raw.setdefault("ledger", {})["api_key"] = api_key

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        scheduler=SchedulerConfig(**raw.get("scheduler", {})),
        ledger=LedgerConfig(**raw.get("ledger", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
