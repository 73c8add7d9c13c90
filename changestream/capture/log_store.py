"""
Append-only change log backing the capture pipeline.

Rows are written by the capture triggers inside the mutating transaction and
read back by the poller in ``id`` order. The pipeline never updates or deletes
log rows; only cleanup drops the whole table.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from changestream.capture.identifiers import LOG_TABLE, quote_identifier
from changestream.domain.models import ACTIONS, ChangeLogEntry
from changestream.errors import StorageError
from changestream.utils.logging import get_logger

log = get_logger(__name__)

ImagePayload = Union[Mapping[str, Any], str, None]

_COLUMNS = "id, table_name, action, row_id, new_image, old_image, captured_at"


class LogStore:
    """
    Accessor for the ``change_stream_log`` table on one connection.
    """

    def __init__(self, conn: sqlite3.Connection, table: str = LOG_TABLE) -> None:
        self._conn = conn
        self.table = table
        self._quoted = quote_identifier(table)

    def ensure_created(self) -> None:
        """Create the log table if absent. Safe on every startup."""
        action_list = ", ".join(f"'{action}'" for action in ACTIONS)
        ddl = f"""
            CREATE TABLE IF NOT EXISTS {self._quoted} (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                table_name  TEXT NOT NULL,
                action      TEXT NOT NULL CHECK (action IN ({action_list})),
                row_id      INTEGER,
                new_image   TEXT,
                old_image   TEXT,
                captured_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
            );
        """
        try:
            self._conn.execute(ddl)
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to create change log '{self.table}': {exc}") from exc
        log.debug(f"Change log '{self.table}' ready")

    def exists(self) -> bool:
        try:
            row = self._conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?;", (self.table,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to inspect change log: {exc}") from exc
        return row is not None

    def append_statement(self, table_literal: str, action: str, **exprs: str) -> str:
        """SQL for appending one entry to this log; see :func:`append_statement`."""
        return append_statement(table_literal, action, log_table=self.table, **exprs)

    def append(
        self,
        table_name: str,
        action: str,
        row_id: Optional[int] = None,
        new_image: ImagePayload = None,
        old_image: ImagePayload = None,
    ) -> int:
        """
        Append an entry directly and return its id.

        Captured mutations reach the log through the triggers; this entry point
        exists for tooling and for replaying externally produced entries.
        """
        try:
            cur = self._conn.execute(
                f"INSERT INTO {self._quoted} (table_name, action, row_id, new_image, old_image) "
                "VALUES (?, ?, ?, ?, ?);",
                (table_name, action, row_id, _encode(new_image), _encode(old_image)),
            )
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to append to change log: {exc}") from exc
        return int(cur.lastrowid)

    def read_from(self, cursor: int, limit: Optional[int] = None) -> List[ChangeLogEntry]:
        """
        Entries with ``id > cursor`` in ascending id order, at most ``limit``.

        Text columns are fetched as bytes and decoded with replacement, so a
        captured value holding invalid UTF-8 cannot fail the batch. A row that
        does not validate is returned unvalidated and rejected per entry by the
        emitter.
        """
        sql = f"SELECT {_COLUMNS} FROM {self._quoted} WHERE id > ? ORDER BY id ASC"
        params: Tuple[Any, ...] = (cursor,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        text_factory = self._conn.text_factory
        self._conn.text_factory = bytes
        try:
            rows = self._conn.execute(sql + ";", params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to read change log after id {cursor}: {exc}") from exc
        finally:
            self._conn.text_factory = text_factory
        return [_to_entry(row) for row in rows]

    def stats(self) -> Tuple[int, int]:
        """Return ``(entry_count, last_id)``; ``(0, 0)`` when the log is empty."""
        try:
            count, last_id = self._conn.execute(
                f"SELECT COUNT(*), COALESCE(MAX(id), 0) FROM {self._quoted};"
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to read change log stats: {exc}") from exc
        return int(count), int(last_id)

    def drop(self) -> None:
        try:
            self._conn.execute(f"DROP TABLE IF EXISTS {self._quoted};")
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to drop change log '{self.table}': {exc}") from exc


def append_statement(
    table_literal: str,
    action: str,
    row_id_expr: str = "NULL",
    new_image_expr: str = "NULL",
    old_image_expr: str = "NULL",
    log_table: str = LOG_TABLE,
) -> str:
    """
    SQL appending one entry; capture trigger bodies embed this statement.

    The expressions are SQL fragments already validated and quoted by the caller.
    """
    if action not in ACTIONS:
        raise ValueError(f"Unknown action '{action}'")
    return (
        f"INSERT INTO {quote_identifier(log_table)} (table_name, action, row_id, new_image, old_image) "
        f"VALUES ({table_literal}, '{action}', {row_id_expr}, {new_image_expr}, {old_image_expr});"
    )


def _to_entry(row: Tuple[Any, ...]) -> ChangeLogEntry:
    fields = dict(
        id=row[0],
        table_name=_as_text(row[1]),
        action=_as_text(row[2]),
        row_id=_decode(row[3]),
        new_image=_as_text(row[4]),
        old_image=_as_text(row[5]),
        timestamp=_as_text(row[6]),
    )
    try:
        return ChangeLogEntry(**fields)
    except ValidationError as exc:
        log.warning(
            f"Log entry {row[0]} failed validation ({exc.error_count()} error(s))",
            extra={"entry_id": row[0]},
        )
        return ChangeLogEntry.model_construct(**fields)


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return _decode(value)
    return str(value)


def _encode(image: ImagePayload) -> Optional[str]:
    if image is None or isinstance(image, str):
        return image
    return json.dumps(dict(image))


__all__ = ["LogStore", "append_statement"]
