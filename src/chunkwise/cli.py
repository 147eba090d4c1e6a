# src/chunkwise/cli.py
"""Chunkwise Command Line Interface.

Operator commands over an existing execution ledger: inspect executions,
list skip records, and purge expired history. Running work units is a
Python API concern (RunOrchestrator); the CLI never starts executions.
"""

from __future__ import annotations

import json as json_module
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from chunkwise import __version__
from chunkwise.contracts import ExecutionNotFoundError
from chunkwise.core.config import ChunkwiseSettings, load_settings, resolve_config

if TYPE_CHECKING:
    from chunkwise.core.ledger import LedgerDB

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]

DEFAULT_LEDGER_URL = "sqlite:///./state/ledger.db"


app = typer.Typer(
    name="chunkwise",
    help="Chunkwise: resumable chunk-oriented batch execution.",
    no_args_is_help=True,
)


@dataclass
class _CliState:
    """Global options shared by every subcommand."""

    ledger_url: str | None = None
    settings: ChunkwiseSettings | None = None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"chunkwise version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


def _load_settings_or_exit(path: Path) -> ChunkwiseSettings:
    try:
        return load_settings(path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {path}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {path}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    ledger_url: str | None = typer.Option(
        None,
        "--ledger-url",
        "-l",
        help="SQLAlchemy URL of the execution ledger (overrides settings).",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # We handle existence check ourselves for better error message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """Chunkwise: resumable chunk-oriented batch execution."""
    from chunkwise.core.logging import configure_logging

    # .env must be loaded before settings so ${VAR} expansion can see it
    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )

    loaded = _load_settings_or_exit(settings) if settings is not None else None

    if verbose:
        configure_logging(json_output=json_logs, level="DEBUG")
    elif loaded is not None:
        configure_logging(json_output=json_logs or loaded.logging.json_output, level=loaded.logging.level)
    else:
        configure_logging(json_output=json_logs, level="INFO")

    ctx.obj = _CliState(ledger_url=ledger_url, settings=loaded)


def _state(ctx: typer.Context) -> _CliState:
    state = ctx.obj
    if not isinstance(state, _CliState):
        # Invoked without the callback (e.g. direct function call in tests)
        return _CliState()
    return state


def _resolve_ledger_url(state: _CliState) -> str:
    """Ledger URL: --ledger-url > settings.ledger.url > default."""
    if state.ledger_url:
        return state.ledger_url
    if state.settings is not None:
        if state.settings.ledger.backend == "memory":
            typer.echo("Error: The memory ledger backend has no persisted state to inspect.", err=True)
            raise typer.Exit(1)
        return state.settings.ledger.url
    return DEFAULT_LEDGER_URL


def _open_ledger_db(state: _CliState) -> LedgerDB:
    """Open the ledger database, refusing to create a missing SQLite file."""
    from sqlalchemy.engine import make_url

    from chunkwise.core.ledger import LedgerDB

    url = _resolve_ledger_url(state)
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        db_path = Path(parsed.database).expanduser()
        # Fail fast on typoed paths instead of creating an empty ledger
        if not db_path.exists():
            typer.echo(f"Error: Ledger database not found: {db_path}", err=True)
            raise typer.Exit(1)

    try:
        return LedgerDB.from_url(url)
    except Exception as e:
        typer.echo(f"Error connecting to ledger: {e}", err=True)
        raise typer.Exit(1) from None


@app.command()
def status(
    ctx: typer.Context,
    execution_id: str = typer.Argument(..., help="Execution ID to report on."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Show the state, counts and partition progress of an execution."""
    from chunkwise.core.ledger import SQLExecutionLedger
    from chunkwise.engine.orchestrator import build_summary

    db = _open_ledger_db(_state(ctx))
    try:
        ledger = SQLExecutionLedger(db)
        try:
            record = ledger.get(execution_id)
        except ExecutionNotFoundError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
        summary = build_summary(record, ledger.checkpoints(execution_id), ledger.skip_record_count(execution_id))
    finally:
        db.close()

    if json_output:
        typer.echo(json_module.dumps(summary.to_dict(), indent=2))
        return

    typer.echo(f"Execution: {summary.execution_id}")
    typer.echo(f"  Name:     {summary.name}")
    typer.echo(f"  Status:   {summary.status.value}")
    typer.echo(f"  Attempt:  {summary.attempt}")
    typer.echo(
        f"  Records:  read={summary.read_count} written={summary.write_count} "
        f"skipped={summary.skip_count} filtered={summary.filter_count}"
    )
    typer.echo(f"  Skip records: {summary.skip_record_count}")
    if summary.failure_category is not None:
        typer.echo(f"  Failure:  [{summary.failure_category}] {summary.failure_message or ''}")
    for partition in summary.partitions:
        checkpoint = partition.checkpoint
        if checkpoint is None:
            progress = "not started"
        elif checkpoint.completed:
            progress = "completed"
        else:
            progress = f"cursor={checkpoint.cursor}"
        typer.echo(f"  Partition {partition.index} [{partition.start}, {partition.end}): {progress}")


@app.command("list")
def list_executions(
    ctx: typer.Context,
    name: str | None = typer.Option(None, "--name", "-n", help="Only executions of this work unit."),
    limit: int = typer.Option(50, "--limit", help="Maximum rows to show.", min=1),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """List recent executions, newest first."""
    from chunkwise.core.ledger import SQLExecutionLedger

    db = _open_ledger_db(_state(ctx))
    try:
        records = SQLExecutionLedger(db).list_executions(name=name, limit=limit)
    finally:
        db.close()

    if json_output:
        typer.echo(
            json_module.dumps(
                [
                    {
                        "execution_id": r.execution_id,
                        "name": r.name,
                        "attempt": r.attempt,
                        "status": r.status.value,
                        "started_at": r.started_at.isoformat(),
                        "ended_at": r.ended_at.isoformat() if r.ended_at else None,
                        "failure_category": r.failure_category,
                    }
                    for r in records
                ],
                indent=2,
            )
        )
        return

    if not records:
        typer.echo("No executions found.")
        return
    for r in records:
        failure = f" ({r.failure_category})" if r.failure_category else ""
        typer.echo(f"{r.execution_id}  {r.name}  attempt={r.attempt}  {r.status.value}{failure}  {r.started_at.isoformat()}")


@app.command()
def skips(
    ctx: typer.Context,
    execution_id: str = typer.Argument(..., help="Execution ID whose skip records to show."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Show the records an execution skipped, in skip order."""
    from chunkwise.core.ledger import SQLExecutionLedger

    db = _open_ledger_db(_state(ctx))
    try:
        ledger = SQLExecutionLedger(db)
        try:
            ledger.get(execution_id)
        except ExecutionNotFoundError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
        records = ledger.skip_records(execution_id)
    finally:
        db.close()

    if json_output:
        typer.echo(
            json_module.dumps(
                [
                    {
                        "sequence": s.sequence,
                        "partition_index": s.partition_index,
                        "cursor": s.cursor,
                        "error_category": s.error_category,
                        "error_type": s.error_type,
                        "error_message": s.error_message,
                        "payload": json_module.loads(s.payload_json),
                    }
                    for s in records
                ],
                indent=2,
            )
        )
        return

    if not records:
        typer.echo(f"No skip records for {execution_id}.")
        return
    for s in records:
        typer.echo(
            f"#{s.sequence}  partition={s.partition_index} cursor={s.cursor}  [{s.error_category}] {s.error_type}: {s.error_message}"
        )


@app.command()
def purge(
    ctx: typer.Context,
    older_than_days: int | None = typer.Option(
        None,
        "--older-than-days",
        "-r",
        help="Delete terminal executions that ended more than this many days ago (default: from config or 30).",
        min=0,
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be deleted without deleting.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt.",
    ),
) -> None:
    """Purge expired executions from the ledger.

    Only terminal executions (completed, failed, stopped) are eligible.
    Their checkpoints and skip records are deleted with them.

    Examples:

        # See what would be deleted
        chunkwise --ledger-url sqlite:///./state/ledger.db purge --dry-run

        # Delete executions that ended more than 7 days ago
        chunkwise purge --older-than-days 7 --yes
    """
    from chunkwise.core.retention.purge import PurgeManager

    state = _state(ctx)
    if older_than_days is not None:
        retention_days = older_than_days
    elif state.settings is not None:
        retention_days = state.settings.ledger.retention_days
        typer.echo(f"Using retention_days from config: {retention_days}")
    else:
        retention_days = 30

    db = _open_ledger_db(state)
    try:
        purge_manager = PurgeManager(db)
        expired = purge_manager.find_expired_executions(retention_days)

        if not expired:
            typer.echo(f"No executions older than {retention_days} days found.")
            return

        if dry_run:
            typer.echo(f"Would delete {len(expired)} execution(s) older than {retention_days} days:")
            for execution_id in expired[:10]:
                typer.echo(f"  {execution_id}")
            if len(expired) > 10:
                typer.echo(f"  ... and {len(expired) - 10} more")
            return

        if not yes:
            confirm = typer.confirm(f"Delete {len(expired)} execution(s) older than {retention_days} days?")
            if not confirm:
                typer.echo("Aborted.")
                raise typer.Exit(1)

        result = purge_manager.purge(retention_days)
    finally:
        db.close()

    typer.echo(
        f"Purged {result.deleted_executions} execution(s), "
        f"{result.deleted_checkpoints} checkpoint(s), "
        f"{result.deleted_skip_records} skip record(s) in {result.duration_seconds:.2f}s"
    )


@app.command()
def config(
    ctx: typer.Context,
    output_format: Literal["yaml", "json"] = typer.Option(
        "yaml",
        "--format",
        "-f",
        help="Output format.",
    ),
) -> None:
    """Print the resolved settings (file + environment + defaults)."""
    import yaml

    state = _state(ctx)
    if state.settings is None:
        typer.echo("Error: --settings is required for this command.", err=True)
        raise typer.Exit(1)
    resolved = resolve_config(state.settings)
    if output_format == "json":
        typer.echo(json_module.dumps(resolved, indent=2))
    else:
        typer.echo(yaml.dump(resolved, default_flow_style=False, sort_keys=False))


if __name__ == "__main__":
    app()
