"""
Recurring-obligation scheduler — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, rule management, batch job).
  5. Report result to stdout; errors go to stderr with exit code 1.

Install and run::

    pip install -e .
    recurring-scheduler --help
    recurring-scheduler init-db
    recurring-scheduler create-rule --household hh-1 --created-by u-1 \\
        --name Rent --amount 100000 --source-account acc-1 \\
        --frequency MONTHLY --start-date 2024-01-01 --max-executions 3
    recurring-scheduler process-due
    recurring-scheduler retry-failed

``process-due`` and ``retry-failed`` are meant to be run periodically by an
external trigger (cron, a systemd timer). Every invocation is recorded in
the ``job_runs`` table; ``job-runs`` lists the most recent ones.
"""

from __future__ import annotations

import json
from contextlib import closing, contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Optional

import typer

app = typer.Typer(
    name="recurring-scheduler",
    help="Recurring-obligation scheduler — materializes recurring rules into ledger transactions.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from recurring_scheduler.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from recurring_scheduler.utils.logging import configure_logging
    configure_logging(config.logging)


def _ensure_schema(config) -> None:
    """Create any missing tables before a job opens its own connection."""
    with _open_store(config):
        pass


@contextmanager
def _open_store(config):
    """Yield ``(conn, store)`` over the configured database, schema applied."""
    from recurring_scheduler.db.connection import get_connection
    from recurring_scheduler.db.schema import apply_schema
    from recurring_scheduler.db.store import SqliteStore

    with get_connection(
        config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)
        yield conn, SqliteStore(conn)


def _fail(message: str) -> None:
    typer.echo(f"[ERROR] {message}", err=True)
    raise typer.Exit(code=1)


def _parse_date(value: Optional[str], option: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        _fail(f"{option} must be an ISO date (YYYY-MM-DD), got '{value}'.")


def _parse_frequency(value: Optional[str]):
    from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency

    if value is None:
        return None
    try:
        return Frequency(value.upper())
    except ValueError:
        _fail(f"Unknown frequency '{value}'. Use one of: {', '.join(f.value for f in Frequency)}.")


def _parse_status(value: Optional[str]):
    from recurring_scheduler.taxonomy.recurrence_taxonomy import RuleStatus

    if value is None:
        return None
    try:
        return RuleStatus(value.upper())
    except ValueError:
        _fail(f"Unknown status '{value}'. Use one of: {', '.join(s.value for s in RuleStatus)}.")


def _parse_metadata(value: Optional[str]) -> Optional[dict[str, Any]]:
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        _fail(f"--metadata must be a JSON object: {exc}")
    if not isinstance(parsed, dict):
        _fail("--metadata must be a JSON object.")
    return parsed


def _echo_rule(rule) -> None:
    typer.echo(f"  Rule:        {rule.rule_id}")
    typer.echo(f"  Name:        {rule.transaction_description()}")
    typer.echo(f"  Amount:      {rule.amount} {rule.currency}")
    typer.echo(f"  Schedule:    every {rule.interval_value} x {rule.frequency.value} from {rule.start_date}")
    typer.echo(f"  End date:    {rule.end_date or '-'}")
    typer.echo(f"  Executions:  {rule.execution_count} / {rule.max_executions or '∞'}")
    typer.echo(f"  Next due:    {rule.next_execution_date}")
    typer.echo(f"  Last run:    {rule.last_execution_date or '-'}")
    typer.echo(f"  Status:      {rule.status.value}")


# ── Database / config ─────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from recurring_scheduler.db.connection import get_connection
    from recurring_scheduler.db.migrations import run_migrations
    from recurring_scheduler.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)
        migrations_applied = run_migrations(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Ledger backend:   {config.ledger.backend}")
    typer.echo(f"  Retry ceiling:    {config.scheduler.retry_ceiling}")
    typer.echo(f"  Retry scan limit: {config.scheduler.retry_scan_limit}")
    typer.echo(f"  Claim lease (s):  {config.scheduler.claim_lease_seconds}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))

    typer.echo("")
    typer.echo("[OK] Config valid.")


# ── Rule management ───────────────────────────────────────────────────────────

@app.command("create-rule")
def create_rule(
    household: str = typer.Option(..., "--household", help="Owning household id."),
    created_by: str = typer.Option(..., "--created-by", help="User the rule is attributed to."),
    name: str = typer.Option(..., "--name", help="Rule name, e.g. 'Rent'."),
    amount: int = typer.Option(..., "--amount", help="Amount in minor currency units."),
    source_account: str = typer.Option(..., "--source-account", help="Account booked against."),
    frequency: str = typer.Option(..., "--frequency", help="DAILY, WEEKLY, MONTHLY, YEARLY or CUSTOM."),
    start_date: str = typer.Option(..., "--start-date", help="First occurrence (YYYY-MM-DD)."),
    interval: int = typer.Option(1, "--interval", help="Every N frequency units (1-365)."),
    description: str = typer.Option("", "--description", help="Appended to the transaction description."),
    currency: Optional[str] = typer.Option(None, "--currency", help="ISO currency code (default from config)."),
    transfer_account: Optional[str] = typer.Option(None, "--transfer-account", help="Destination account for transfers."),
    category: Optional[str] = typer.Option(None, "--category", help="Ledger category id."),
    merchant: Optional[str] = typer.Option(None, "--merchant", help="Merchant name."),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="Last valid execution date (YYYY-MM-DD)."),
    max_executions: Optional[int] = typer.Option(None, "--max-executions", help="Stop after N successful executions."),
    metadata: Optional[str] = typer.Option(None, "--metadata", help="JSON object copied into transaction metadata."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Create an ACTIVE recurring rule; its first occurrence is the start date."""
    from recurring_scheduler.errors import SchedulerError
    from recurring_scheduler.services.rule_service import RuleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    fields: dict[str, Any] = {
        "name": name,
        "amount": amount,
        "source_account_id": source_account,
        "frequency": _parse_frequency(frequency),
        "start_date": _parse_date(start_date, "--start-date"),
        "interval_value": interval,
        "description": description,
        "transfer_account_id": transfer_account,
        "category_id": category,
        "merchant": merchant,
        "end_date": _parse_date(end_date, "--end-date"),
        "max_executions": max_executions,
        "metadata": _parse_metadata(metadata) or {},
    }
    if currency is not None:
        fields["currency"] = currency

    with _open_store(config) as (_, store):
        service = RuleService(store, config=config.scheduler)
        try:
            rule = service.create_rule(household, created_by, **fields)
        except SchedulerError as exc:
            _fail(exc.message)

    typer.echo("Rule created.")
    _echo_rule(rule)
    typer.echo("[OK] Rule created.")


@app.command("list-rules")
def list_rules(
    household: str = typer.Option(..., "--household", help="Household id."),
    status: Optional[str] = typer.Option(None, "--status", help="Filter by status."),
    account: Optional[str] = typer.Option(None, "--account", help="Filter by source or transfer account."),
    category: Optional[str] = typer.Option(None, "--category", help="Filter by category id."),
    frequency: Optional[str] = typer.Option(None, "--frequency", help="Filter by frequency."),
    page: int = typer.Option(1, "--page", min=1, help="1-based page number."),
    limit: int = typer.Option(20, "--limit", min=1, max=100, help="Rules per page."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List a household's rules ordered by next execution date."""
    from recurring_scheduler.services.rule_service import RuleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config) as (_, store):
        result = RuleService(store, config=config.scheduler).list_rules(
            household,
            status=_parse_status(status),
            account_id=account,
            category_id=category,
            frequency=_parse_frequency(frequency),
            page=page,
            limit=limit,
        )

    typer.echo(
        f"Rules for {household}: {result.total} total | page {result.page}/{max(result.total_pages, 1)}"
    )
    for rule in result.items:
        typer.echo(
            f"  {rule.rule_id} | {rule.name:<20} | {rule.amount:>12} {rule.currency} | "
            f"{rule.frequency.value:<7} x{rule.interval_value:<3} | next {rule.next_execution_date} | "
            f"{rule.status.value}"
        )


@app.command("show-rule")
def show_rule(
    rule_id: str = typer.Argument(..., help="Rule id."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Show one rule."""
    from recurring_scheduler.errors import SchedulerError
    from recurring_scheduler.services.rule_service import RuleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config) as (_, store):
        try:
            rule = RuleService(store, config=config.scheduler).get_rule(rule_id)
        except SchedulerError as exc:
            _fail(exc.message)

    _echo_rule(rule)


@app.command("update-rule")
def update_rule(
    rule_id: str = typer.Argument(..., help="Rule id."),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
    amount: Optional[int] = typer.Option(None, "--amount"),
    currency: Optional[str] = typer.Option(None, "--currency"),
    source_account: Optional[str] = typer.Option(None, "--source-account"),
    transfer_account: Optional[str] = typer.Option(None, "--transfer-account"),
    category: Optional[str] = typer.Option(None, "--category"),
    merchant: Optional[str] = typer.Option(None, "--merchant"),
    frequency: Optional[str] = typer.Option(None, "--frequency"),
    interval: Optional[int] = typer.Option(None, "--interval"),
    start_date: Optional[str] = typer.Option(None, "--start-date"),
    end_date: Optional[str] = typer.Option(None, "--end-date"),
    max_executions: Optional[int] = typer.Option(None, "--max-executions"),
    metadata: Optional[str] = typer.Option(None, "--metadata", help="JSON object; replaces existing metadata."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Update a non-terminal rule. Only the options given are changed.

    Changing the frequency, interval or start date recomputes the next
    execution date.
    """
    from recurring_scheduler.errors import SchedulerError
    from recurring_scheduler.services.rule_service import RuleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    candidates: dict[str, Any] = {
        "name": name,
        "description": description,
        "amount": amount,
        "currency": currency,
        "source_account_id": source_account,
        "transfer_account_id": transfer_account,
        "category_id": category,
        "merchant": merchant,
        "frequency": _parse_frequency(frequency),
        "interval_value": interval,
        "start_date": _parse_date(start_date, "--start-date"),
        "end_date": _parse_date(end_date, "--end-date"),
        "max_executions": max_executions,
        "metadata": _parse_metadata(metadata),
    }
    changes = {k: v for k, v in candidates.items() if v is not None}
    if not changes:
        _fail("Nothing to update; pass at least one option.")

    with _open_store(config) as (_, store):
        try:
            rule = RuleService(store, config=config.scheduler).update_rule(rule_id, **changes)
        except SchedulerError as exc:
            _fail(exc.message)

    _echo_rule(rule)
    typer.echo("[OK] Rule updated.")


def _transition(rule_id: str, config_path: Optional[str], action: str) -> None:
    from recurring_scheduler.errors import SchedulerError
    from recurring_scheduler.services.rule_service import RuleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config) as (_, store):
        service = RuleService(store, config=config.scheduler)
        try:
            rule = getattr(service, f"{action}_rule")(rule_id)
        except SchedulerError as exc:
            _fail(exc.message)

    typer.echo(f"[OK] Rule {rule.rule_id} is now {rule.status.value}.")


@app.command("pause-rule")
def pause_rule(
    rule_id: str = typer.Argument(..., help="Rule id."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Pause an ACTIVE rule."""
    _transition(rule_id, config_path, "pause")


@app.command("resume-rule")
def resume_rule(
    rule_id: str = typer.Argument(..., help="Rule id."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Resume a PAUSED rule."""
    _transition(rule_id, config_path, "resume")


@app.command("cancel-rule")
def cancel_rule(
    rule_id: str = typer.Argument(..., help="Rule id."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Cancel an ACTIVE or PAUSED rule. Cancellation is final."""
    _transition(rule_id, config_path, "cancel")


@app.command("delete-rule")
def delete_rule(
    rule_id: str = typer.Argument(..., help="Rule id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Delete a rule and its execution history."""
    from recurring_scheduler.errors import SchedulerError
    from recurring_scheduler.services.rule_service import RuleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if not yes:
        typer.confirm(f"Delete rule {rule_id} and its execution history?", abort=True)

    with _open_store(config) as (_, store):
        try:
            RuleService(store, config=config.scheduler).delete_rule(rule_id)
        except SchedulerError as exc:
            _fail(exc.message)

    typer.echo(f"[OK] Rule {rule_id} deleted.")


@app.command("history")
def history(
    rule_id: str = typer.Argument(..., help="Rule id."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Max records (default from config)."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Show a rule's execution history, newest first."""
    from recurring_scheduler.errors import SchedulerError
    from recurring_scheduler.services.rule_service import RuleService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config) as (_, store):
        try:
            records = RuleService(store, config=config.scheduler).get_execution_history(
                rule_id, limit=limit
            )
        except SchedulerError as exc:
            _fail(exc.message)

    typer.echo(f"Execution history for {rule_id}: {len(records)} record(s)")
    for rec in records:
        line = (
            f"  {rec.scheduled_date} | {rec.status.value:<18} | retries={rec.retry_count} | "
            f"txn={rec.linked_transaction_id or '-'}"
        )
        if rec.error_message:
            line += f" | {rec.error_message}"
        typer.echo(line)


# ── Execution ─────────────────────────────────────────────────────────────────

@app.command("execute")
def execute(
    rule_id: str = typer.Argument(..., help="Rule id."),
    on_date: Optional[str] = typer.Option(None, "--date", help="Effective date (default: today, UTC)."),
    force: bool = typer.Option(False, "--force", help="Execute even if the rule is not yet due."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Execute one occurrence of a rule now."""
    from recurring_scheduler.errors import SchedulerError
    from recurring_scheduler.ledger import build_ledger
    from recurring_scheduler.scheduling.engine import ExecutionEngine
    from recurring_scheduler.scheduling.interfaces import SystemClock

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    requested = _parse_date(on_date, "--date")

    clock = SystemClock()
    with _open_store(config) as (conn, store), closing(
        build_ledger(config.ledger, conn, clock=clock)
    ) as ledger:
        engine = ExecutionEngine(store, ledger, clock, config.scheduler)
        try:
            result = engine.execute(rule_id, requested_date=requested, force=force)
        except SchedulerError as exc:
            _fail(f"[{exc.kind.value}] {exc.message}")

    typer.echo(f"  Execution:   {result.execution.execution_id}")
    typer.echo(f"  Transaction: {result.transaction.transaction_id}")
    typer.echo(f"  Next due:    {result.rule.next_execution_date}")
    typer.echo(f"  Status:      {result.rule.status.value}")
    typer.echo("[OK] Rule executed.")


@app.command("process-due")
def process_due(
    as_of: Optional[str] = typer.Option(
        None,
        "--as-of",
        help="Treat this date as today (YYYY-MM-DD); default is the current UTC date.",
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Execute every ACTIVE rule that is due. Per-rule failures do not stop the batch."""
    from recurring_scheduler.jobs.process_due import ProcessDueJob
    from recurring_scheduler.scheduling.interfaces import FixedClock

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    as_of_date = _parse_date(as_of, "--as-of")
    clock = FixedClock(as_of_date) if as_of_date else None

    _ensure_schema(config)

    job = ProcessDueJob(config=config, clock=clock)
    try:
        run = job.run()
    except Exception as exc:
        _fail(f"process-due failed: {exc}")

    summary = job.last_summary
    typer.echo(
        f"process-due as of {summary.as_of} | attempted={summary.attempted} | "
        f"succeeded={summary.succeeded} | failed={summary.failed}"
    )
    for item in summary.items:
        if item.success:
            typer.echo(f"  [OK]   {item.rule_id} → txn {item.transaction_id}")
        else:
            kind = item.error_kind.value if item.error_kind else "error"
            typer.echo(f"  [FAIL] {item.rule_id} [{kind}] {item.error}")
    typer.echo(f"[OK] Run {run.run_slug} recorded.")


@app.command("retry-failed")
def retry_failed(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Re-attempt FAILED executions that are below the retry scan limit."""
    from recurring_scheduler.jobs.retry_failed import RetryFailedJob

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    _ensure_schema(config)

    job = RetryFailedJob(config=config)
    try:
        run = job.run()
    except Exception as exc:
        _fail(f"retry-failed failed: {exc}")

    summary = job.last_summary
    typer.echo(
        f"retry-failed | scanned={summary.scanned} | succeeded={summary.succeeded} | "
        f"failed={summary.failed} | permanently_failed={summary.permanently_failed}"
    )
    for item in summary.items:
        typer.echo(
            f"  {item.execution_id} (rule {item.rule_id}) → {item.status.value}"
            + (f" | {item.error}" if item.error else "")
        )
    typer.echo(f"[OK] Run {run.run_slug} recorded.")


@app.command("job-runs")
def job_runs(
    job_name: Optional[str] = typer.Option(None, "--job", help="process_due or retry_failed."),
    limit: int = typer.Option(20, "--limit", min=1, help="Max runs to show."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List recent batch job runs, most recent first."""
    from recurring_scheduler.db.repositories.job_repo import JobRunRepository

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open_store(config) as (conn, _):
        runs = JobRunRepository(conn).get_recent_runs(job_name=job_name, limit=limit)

    for run in runs:
        typer.echo(
            f"  {run.started_at:%Y-%m-%d %H:%M:%S} | {run.job_name:<12} | {run.status:<7} | "
            f"attempted={run.items_attempted} succeeded={run.items_succeeded} "
            f"failed={run.items_failed}"
            + (f" | {run.error_message}" if run.error_message else "")
        )


if __name__ == "__main__":
    app()
