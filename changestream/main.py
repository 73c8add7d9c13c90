from __future__ import annotations

import sqlite3
import sys
from pathlib import Path
from typing import Optional

import typer

from changestream.capture.cleanup import cleanup_database
from changestream.config import get_settings
from changestream.domain.models import ChangeEvent
from changestream.errors import ChangeStreamError
from changestream.infrastructure.db_factory import get_sync_connection
from changestream.lifecycle import (
    CancellationToken,
    install_signal_handlers,
    restore_signal_handlers,
)
from changestream.orchestrator import run_pipeline
from changestream.reporter import collect_status, print_status
from changestream.utils.logging import configure_logging, get_logger

log = get_logger(__name__)

app = typer.Typer(help="Stream row-level changes of a SQLite database as JSON lines.")
admin_app = typer.Typer(help="Inspect or remove change stream instrumentation.")


def _stdout_sink(event: ChangeEvent) -> None:
    typer.echo(event.to_json())


@app.command()
def watch(
    db_path: Path = typer.Argument(
        ...,
        help="Path to the SQLite database file to watch.",
        show_default=False,
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        "-i",
        min=0.01,
        help="Seconds between poll cycles (default from settings).",
    ),
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        "-b",
        min=1,
        help="Maximum log entries read per query (default from settings).",
    ),
    start_after: int = typer.Option(
        0,
        "--start-after",
        min=0,
        help="Only emit entries with an id greater than this (0 replays the whole log).",
    ),
    json_logs: Optional[bool] = typer.Option(
        None,
        "--json-logs/--console-logs",
        help="Diagnostic log format on stderr (default from settings).",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Diagnostic log level (default from settings).",
    ),
) -> None:
    """
    Instrument every user table and print one JSON change event per line.

    Runs until SIGINT/SIGTERM, then removes all instrumentation and exits 0.
    """
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_logs=settings.json_logs if json_logs is None else json_logs,
    )

    token = CancellationToken()
    previous = install_signal_handlers(token)
    try:
        run_pipeline(
            db_path,
            token=token,
            sink=_stdout_sink,
            settings=settings,
            start_after=start_after,
            interval=interval,
            batch_size=batch_size,
        )
    except ChangeStreamError as exc:
        log.error(f"[STARTUP FAILED] {exc}", extra={"database": str(db_path)})
        raise typer.Exit(code=1)
    finally:
        restore_signal_handlers(previous)


@admin_app.command()
def status(
    db_path: Path = typer.Argument(..., help="Path to the SQLite database file."),
) -> None:
    """
    Show which tables are instrumented and how many entries the change log holds.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    # Inspect without switching the journal mode of the database.
    inspect_settings = settings.model_copy(update={"journal_mode": ""})
    try:
        conn = get_sync_connection(db_path, settings=inspect_settings)
    except ChangeStreamError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    try:
        print_status(collect_status(conn))
    except (ChangeStreamError, sqlite3.Error) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    finally:
        conn.close()


@admin_app.command()
def cleanup(
    db_path: Path = typer.Argument(..., help="Path to the SQLite database file."),
) -> None:
    """
    Remove all capture triggers and the change log (e.g. after a killed watcher).
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    try:
        report = cleanup_database(db_path, settings=settings)
    except ChangeStreamError as exc:
        typer.echo(f"Cleanup failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(
        f"Dropped {len(report.dropped_triggers)} trigger(s); "
        f"change log {'dropped' if report.dropped_log else 'was absent'}."
    )


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


def admin() -> None:
    try:
        admin_app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
