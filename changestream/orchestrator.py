"""
Orchestrator for the capture pipeline: instrument, poll, clean up.

Usage (example from CLI):
    from changestream.orchestrator import run_pipeline

    token = CancellationToken()
    run_pipeline("app.db", token=token, sink=lambda event: print(event.to_json()))

Startup errors (schema introspection, change log creation) propagate before the
poll loop starts. Cleanup always runs once the loop exits and never raises.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from changestream.capture.cleanup import CleanupReport, cleanup_database
from changestream.capture.emitter import ChangeEmitter, EventSink
from changestream.capture.installer import InstallReport, install_all
from changestream.capture.introspector import introspect
from changestream.capture.log_store import LogStore
from changestream.config import Settings, get_settings
from changestream.errors import ChangeStreamError
from changestream.infrastructure.db_factory import get_sync_connection
from changestream.lifecycle import CancellationToken
from changestream.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class PipelineResult:
    install: InstallReport
    last_id: int
    emitted: int
    cleanup: Optional[CleanupReport] = None


def start_capture(conn: sqlite3.Connection) -> InstallReport:
    """
    Introspect the schema, create the change log, and install triggers.

    Introspection runs first so a ``SchemaError`` aborts before anything is
    written. Safe to rerun.
    """
    schemas = introspect(conn)
    LogStore(conn).ensure_created()
    return install_all(conn, schemas)


def safe_cleanup(db_path: str | Path, settings: Optional[Settings] = None) -> Optional[CleanupReport]:
    """Run cleanup once; failures are logged and swallowed so exit is never blocked."""
    try:
        return cleanup_database(db_path, settings=settings)
    except ChangeStreamError as exc:
        log.error(f"[CLEANUP FAILED] {exc}", extra={"database": str(db_path)})
        return None


def run_pipeline(
    db_path: str | Path,
    token: CancellationToken,
    sink: EventSink,
    settings: Optional[Settings] = None,
    start_after: int = 0,
    interval: Optional[float] = None,
    batch_size: Optional[int] = None,
) -> PipelineResult:
    """
    Instrument ``db_path``, stream events into ``sink`` until ``token`` is
    cancelled, then remove all instrumentation.

    Parameters
    ----------
    db_path : str | Path
        SQLite database file to watch.
    token : CancellationToken
        Observed between poll cycles.
    sink : EventSink
        Receives each change event in id order.
    settings : Settings | None
        Defaults to environment settings.
    start_after : int
        Initial cursor; 0 replays the whole log.
    interval, batch_size : optional overrides of the poll settings.

    Returns
    -------
    PipelineResult
        Install report, final cursor, event count, and cleanup outcome.
    """
    settings = settings or get_settings()
    conn = get_sync_connection(db_path, settings=settings)
    try:
        install = start_capture(conn)
    except BaseException:
        conn.close()
        raise

    log.info(f"Starting database monitoring: {db_path}", extra={"database": str(db_path)})
    emitter = ChangeEmitter(
        LogStore(conn),
        sink,
        interval=interval or settings.poll_interval_seconds,
        batch_size=batch_size or settings.poll_batch_size,
        start_after=start_after,
    )
    try:
        emitter.run(token)
    finally:
        conn.close()
        cleanup_report = safe_cleanup(db_path, settings=settings)
    return PipelineResult(
        install=install,
        last_id=emitter.last_id,
        emitted=emitter.emitted,
        cleanup=cleanup_report,
    )


__all__ = [
    "PipelineResult",
    "run_pipeline",
    "safe_cleanup",
    "start_capture",
]
