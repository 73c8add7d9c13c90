"""
End-to-end tests for the watch pipeline and the CLI entry points.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import sqlite3
import sys
import threading
from pathlib import Path
from typing import List

import pytest
from typer.testing import CliRunner

from changestream import orchestrator
from changestream.capture.cleanup import capture_triggers
from changestream.capture.log_store import LogStore
from changestream.config import get_settings
from changestream.domain.models import ChangeEvent
from changestream.errors import StorageError
from changestream.lifecycle import CancellationToken
from changestream.main import admin_app, app
from changestream.orchestrator import run_pipeline, safe_cleanup, start_capture

USAGE_ERROR_EXIT_CODE = 2

runner = CliRunner()


def _seed_history(conn: sqlite3.Connection, db_path: Path) -> None:
    start_capture(conn)
    writer = sqlite3.connect(db_path)
    try:
        writer.execute("INSERT INTO items (a, b) VALUES (1, 'x');")
        writer.execute("UPDATE items SET b = 'y' WHERE a = 1;")
        writer.execute("DELETE FROM items WHERE a = 1;")
        writer.commit()
    finally:
        writer.close()


class TestRunPipeline:
    def test_replays_history_then_cleans_up(self, conn, db_path, test_settings):
        _seed_history(conn, db_path)
        token = CancellationToken()
        token.cancel("test")
        received: List[ChangeEvent] = []

        result = run_pipeline(db_path, token=token, sink=received.append, settings=test_settings)

        assert [event.action for event in received] == ["insert", "update", "delete"]
        assert received[1].to_record()["changed_fields"] == {"b": {"old": "x", "new": "y"}}
        assert result.last_id == received[-1].id
        assert result.emitted == 3
        assert result.install.installed == ["items"]
        assert result.cleanup is not None and result.cleanup.dropped_log
        assert capture_triggers(conn) == []
        assert not LogStore(conn).exists()

    def test_start_after_skips_consumed_entries(self, conn, db_path, test_settings):
        _seed_history(conn, db_path)
        token = CancellationToken()
        token.cancel("test")
        received: List[ChangeEvent] = []

        run_pipeline(db_path, token=token, sink=received.append, settings=test_settings, start_after=2)

        assert [event.id for event in received] == [3]

    def test_cleanup_failure_is_logged_and_not_raised(
        self, conn, db_path, test_settings, monkeypatch, caplog
    ):
        _seed_history(conn, db_path)

        def failing_cleanup(*args, **kwargs):
            raise StorageError("database is locked")

        monkeypatch.setattr(orchestrator, "cleanup_database", failing_cleanup)
        token = CancellationToken()
        token.cancel("test")
        received: List[ChangeEvent] = []

        with caplog.at_level(logging.ERROR):
            result = run_pipeline(db_path, token=token, sink=received.append, settings=test_settings)

        assert result.cleanup is None
        assert result.emitted == 3
        assert "[CLEANUP FAILED]" in caplog.text

    def test_safe_cleanup_of_removed_database_returns_none(self, tmp_path: Path, test_settings):
        assert safe_cleanup(tmp_path / "removed.db", settings=test_settings) is None


class TestWatchCommand:
    def test_missing_argument_is_usage_error(self):
        result = runner.invoke(app, [])
        assert result.exit_code == USAGE_ERROR_EXIT_CODE

    def test_missing_database_file_fails_without_creating_it(self, tmp_path: Path):
        target = tmp_path / "absent.db"
        result = runner.invoke(app, [str(target)])
        assert result.exit_code == 1
        assert not target.exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signal delivery")
    def test_sigterm_stops_watch_cleans_up_and_exits_zero(self, conn, db_path, monkeypatch):
        _seed_history(conn, db_path)
        monkeypatch.setenv("CHANGESTREAM_POLL_INTERVAL", "0.05")
        get_settings.cache_clear()
        timer = threading.Timer(0.5, os.kill, args=(os.getpid(), signal.SIGTERM))
        timer.start()
        try:
            result = runner.invoke(app, [str(db_path), "--console-logs", "--log-level", "INFO"])
        finally:
            timer.cancel()
            get_settings.cache_clear()

        assert result.exit_code == 0, result.output
        events = [json.loads(line) for line in result.output.splitlines() if line.startswith('{"id"')]
        assert [event["action"] for event in events] == ["insert", "update", "delete"]
        assert "Cleanup completed" in result.output
        assert capture_triggers(conn) == []
        assert not LogStore(conn).exists()


class TestAdminCommands:
    def test_status_lists_instrumented_tables(self, conn, db_path):
        _seed_history(conn, db_path)
        result = runner.invoke(admin_app, ["status", str(db_path)])
        assert result.exit_code == 0, result.output
        assert "items" in result.output
        assert "3 entries" in result.output

    def test_cleanup_removes_instrumentation(self, conn, db_path):
        _seed_history(conn, db_path)
        result = runner.invoke(admin_app, ["cleanup", str(db_path)])
        assert result.exit_code == 0, result.output
        assert "Dropped 3 trigger(s)" in result.output
        assert capture_triggers(conn) == []

    def test_event_lines_are_valid_json(self):
        event = ChangeEvent(
            id=1,
            table="items",
            action="delete",
            row_id=1,
            timestamp="2024-01-01T00:00:00.000Z",
            old_image={"a": 1, "b": "y"},
        )
        assert json.loads(event.to_json())["old_image"] == {"a": 1, "b": "y"}
