"""
SQLite connection factory utilities for sqlite-changestream.

Connections are opened in autocommit mode (``isolation_level=None``) so that
every read done by the poller observes the latest committed log entries and
DDL work runs inside explicit transactions via :func:`transaction`.

Includes retry logic for transient "database is locked" failures using tenacity.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from changestream.config import Settings, get_settings
from changestream.errors import StorageError
from changestream.utils.logging import get_logger

log = get_logger(__name__)


def _open(path: str, busy_timeout_ms: int, journal_mode: str) -> sqlite3.Connection:
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        timeout=busy_timeout_ms / 1000,
    )
    try:
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
        if journal_mode:
            mode = conn.execute(f"PRAGMA journal_mode = {journal_mode};").fetchone()[0]
            log.info(f"Database journal mode: {mode}", extra={"journal_mode": mode})
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _journal_mode(value: str) -> str:
    """Allow-list the journal mode since PRAGMA values cannot be bound."""
    allowed = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
    mode = value.strip().upper()
    if mode not in allowed:
        raise ValueError(f"Unsupported journal mode '{value}'. Allowed: {', '.join(sorted(allowed))}")
    return mode


def get_sync_connection(
    path: str | Path,
    settings: Optional[Settings] = None,
    must_exist: bool = True,
) -> sqlite3.Connection:
    """
    Open a connection to the database file with automatic retry.

    Retries ``settings.connect_attempts`` times with exponential backoff while
    the database is locked by another writer.

    Parameters
    ----------
    path : str | Path
        Path to the SQLite database file.
    settings : Settings | None
        Effective settings; defaults to the cached environment settings.
    must_exist : bool
        Refuse to create a new empty database when the file is missing.

    Raises
    ------
    StorageError
        If the file is missing, the journal mode is not supported, or the
        connection fails after all retry attempts.
    """
    settings = settings or get_settings()
    db_path = str(path)
    if must_exist and db_path != ":memory:" and not Path(db_path).is_file():
        raise StorageError(f"Database file not found: {db_path}")

    try:
        journal_mode = _journal_mode(settings.journal_mode) if settings.journal_mode else ""
    except ValueError as exc:
        raise StorageError(str(exc)) from exc

    retrying = Retrying(
        stop=stop_after_attempt(settings.connect_attempts),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
        retry=retry_if_exception_type(sqlite3.OperationalError),
        reraise=True,
    )
    try:
        return retrying(_open, db_path, settings.busy_timeout_ms, journal_mode)
    except sqlite3.Error as exc:
        raise StorageError(f"Unable to open database {db_path}: {exc}") from exc


@contextmanager
def transaction(conn: sqlite3.Connection) -> Generator[sqlite3.Connection, None, None]:
    """
    Run a block inside ``BEGIN IMMEDIATE`` / ``COMMIT``, rolling back on error.

    Example
    -------
        with transaction(conn):
            conn.execute("CREATE TRIGGER ...")
    """
    conn.execute("BEGIN IMMEDIATE;")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK;")
        raise
    else:
        conn.execute("COMMIT;")


__all__ = [
    "get_sync_connection",
    "transaction",
]
