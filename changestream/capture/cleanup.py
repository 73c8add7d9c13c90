"""
Removal of all capture instrumentation.

Triggers are found by their name prefix, not by re-introspecting tables, so
cleanup works even when the table set changed since installation.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from changestream.capture.identifiers import CAPTURE_PREFIX, LOG_TABLE, quote_identifier
from changestream.capture.log_store import LogStore
from changestream.config import Settings
from changestream.errors import StorageError
from changestream.infrastructure.db_factory import get_sync_connection, transaction
from changestream.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class CleanupReport:
    dropped_triggers: List[str] = field(default_factory=list)
    dropped_log: bool = False


def capture_triggers(conn: sqlite3.Connection) -> List[str]:
    """Names of every trigger following the capture naming convention."""
    # Case-sensitive prefix match; CHANGE_STREAM_x belongs to the user.
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'trigger' "
        "AND name GLOB ? ORDER BY name;",
        (CAPTURE_PREFIX + "*",),
    ).fetchall()
    return [row[0] for row in rows]


def cleanup(conn: sqlite3.Connection, log_table: str = LOG_TABLE) -> CleanupReport:
    """
    Drop every capture trigger, then the change log, in one transaction.

    Triggers go first so no writer can fire one into a missing log table.
    A database without instrumentation is left untouched.

    Raises
    ------
    StorageError
        If the catalog cannot be read or a drop fails; nothing is dropped then.
    """
    report = CleanupReport()
    store = LogStore(conn, table=log_table)
    try:
        with transaction(conn):
            for name in capture_triggers(conn):
                conn.execute(f"DROP TRIGGER IF EXISTS {quote_identifier(name)};")
                report.dropped_triggers.append(name)
            if store.exists():
                store.drop()
                report.dropped_log = True
    except sqlite3.Error as exc:
        raise StorageError(f"Cleanup failed: {exc}") from exc
    log.info(
        f"Cleanup completed: {len(report.dropped_triggers)} trigger(s) dropped, "
        f"change log {'dropped' if report.dropped_log else 'absent'}",
        extra={"triggers": report.dropped_triggers, "dropped_log": report.dropped_log},
    )
    return report


def cleanup_database(path: str | Path, settings: Optional[Settings] = None) -> CleanupReport:
    """Open a fresh connection to ``path`` and run :func:`cleanup`."""
    conn = get_sync_connection(path, settings=settings)
    try:
        return cleanup(conn)
    finally:
        conn.close()


__all__ = ["CleanupReport", "capture_triggers", "cleanup", "cleanup_database"]
