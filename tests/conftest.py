"""
Pytest configuration for sqlite-changestream.

Provides fixtures for:
- Settings tuned for fast tests
- Temporary SQLite databases with a small user schema
- Connections (capture side) and writer connections (application side)
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Generator

import pytest

from changestream.config import Settings
from changestream.infrastructure.db_factory import get_sync_connection
from changestream.orchestrator import start_capture


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Generator[None, None, None]:
    """
    Undo logging configuration done by CLI invocations inside a test.
    """
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.
    """
    return Settings(
        log_level="DEBUG",
        poll_interval_seconds=0.01,
        poll_batch_size=100,
        busy_timeout_ms=2_000,
        journal_mode="WAL",
        connect_attempts=1,
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """
    A database file holding one plain user table ``items(a, b)``.
    """
    path = tmp_path / "app.db"
    with sqlite3.connect(path) as setup:
        setup.execute("CREATE TABLE items (a INTEGER, b TEXT);")
    setup.close()
    return path


@pytest.fixture
def conn(db_path: Path, test_settings: Settings) -> Generator[sqlite3.Connection, None, None]:
    """
    Capture-side connection (autocommit, WAL).
    """
    connection = get_sync_connection(db_path, settings=test_settings)
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def writer(db_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """
    Application-side connection used to mutate instrumented tables.
    """
    connection = sqlite3.connect(db_path)
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def instrumented(conn: sqlite3.Connection) -> sqlite3.Connection:
    """
    The capture connection after the log table and triggers are in place.
    """
    report = start_capture(conn)
    assert report.ok
    return conn
