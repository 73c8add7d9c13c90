"""
Trigger-based instrumentation for user tables.

For every table three ``AFTER ... FOR EACH ROW`` triggers append a change log
entry. Images are built with ``json_object`` over all current columns, so the
before/after state is captured by SQLite itself inside the mutating statement.

Every table and column name passes :func:`validate_identifier` before it is
interpolated into trigger SQL.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from changestream.capture.identifiers import (
    CAPTURE_PREFIX,
    LOG_TABLE,
    ROWID_ALIASES,
    quote_identifier,
    quote_literal,
    trigger_name,
    validate_identifier,
)
from changestream.capture.log_store import append_statement
from changestream.domain.models import TableSchema
from changestream.errors import InstrumentationError
from changestream.infrastructure.db_factory import transaction
from changestream.utils.logging import get_logger

log = get_logger(__name__)

# Columns per json_object/json_insert call; keeps each call under SQLite's
# default function argument limit of 127.
IMAGE_CHUNK_SIZE = 50

_EVENTS = {
    "insert": "AFTER INSERT",
    "update": "AFTER UPDATE",
    "delete": "AFTER DELETE",
}


@dataclass
class InstallReport:
    """Outcome of instrumenting a set of tables."""

    installed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def _column_value(ref: str, column: str) -> str:
    # json_object() rejects BLOBs, which would abort the user's write.
    value = f"{ref}.{quote_identifier(column)}"
    return f"CASE WHEN typeof({value}) = 'blob' THEN hex({value}) ELSE {value} END"


def build_image_expr(ref: str, columns: Sequence[str]) -> str:
    """
    JSON object expression over ``columns`` of the ``NEW``/``OLD`` row.

    Wide tables are split into chunks: the first chunk seeds ``json_object``
    and each further chunk is added with ``json_insert``.
    """
    if ref not in ("NEW", "OLD"):
        raise ValueError(f"Row reference must be NEW or OLD, got {ref!r}")
    if not columns:
        return "json_object()"

    chunks = [columns[i : i + IMAGE_CHUNK_SIZE] for i in range(0, len(columns), IMAGE_CHUNK_SIZE)]
    first, rest = chunks[0], chunks[1:]
    expr = "json_object(" + ", ".join(
        f"{quote_literal(column)}, {_column_value(ref, column)}" for column in first
    ) + ")"
    for chunk in rest:
        pairs = ", ".join(
            f"{quote_literal('$.' + column)}, {_column_value(ref, column)}" for column in chunk
        )
        expr = f"json_insert({expr}, {pairs})"
    return expr


def build_trigger_statements(schema: TableSchema, log_table: str = LOG_TABLE) -> List[str]:
    """
    Generate the insert/update/delete ``CREATE TRIGGER IF NOT EXISTS`` statements.

    Raises
    ------
    InstrumentationError
        If the table or any column name falls outside the identifier grammar.
    """
    table = validate_identifier(schema.name, "table", table=schema.name)
    if table == log_table:
        raise InstrumentationError("The change log itself cannot be instrumented", table=table)
    columns = [validate_identifier(name, "column", table=table) for name in schema.column_names]
    if not columns:
        raise InstrumentationError(f"Table '{table}' has no columns", table=table)

    rowid = schema.rowid_column
    if rowid is not None and (
        rowid not in ROWID_ALIASES or rowid in {column.lower() for column in columns}
    ):
        raise InstrumentationError(f"Rowid alias {rowid!r} does not reach the rowid", table=table)

    new_expr = build_image_expr("NEW", columns)
    old_expr = build_image_expr("OLD", columns)
    table_literal = quote_literal(table)

    bodies = {
        "insert": append_statement(
            table_literal,
            "insert",
            log_table=log_table,
            row_id_expr=f"NEW.{rowid}" if rowid else "NULL",
            new_image_expr=new_expr,
        ),
        "update": append_statement(
            table_literal,
            "update",
            log_table=log_table,
            row_id_expr=f"NEW.{rowid}" if rowid else "NULL",
            new_image_expr=new_expr,
            old_image_expr=old_expr,
        ),
        "delete": append_statement(
            table_literal,
            "delete",
            log_table=log_table,
            row_id_expr=f"OLD.{rowid}" if rowid else "NULL",
            old_image_expr=old_expr,
        ),
    }

    statements = []
    for action, timing in _EVENTS.items():
        statements.append(
            f"CREATE TRIGGER IF NOT EXISTS {quote_identifier(trigger_name(table, action))}\n"
            f"{timing} ON {quote_identifier(table)}\n"
            "FOR EACH ROW\n"
            "BEGIN\n"
            f"    {bodies[action]}\n"
            "END;"
        )
    return statements


def install_table(conn: sqlite3.Connection, schema: TableSchema, log_table: str = LOG_TABLE) -> None:
    """
    Install the three capture triggers for one table atomically.

    On failure nothing is left behind for this table.
    """
    statements = build_trigger_statements(schema, log_table)
    try:
        with transaction(conn):
            for statement in statements:
                conn.execute(statement)
    except sqlite3.Error as exc:
        raise InstrumentationError(
            f"Unable to install triggers on '{schema.name}': {exc}", table=schema.name
        ) from exc
    log.debug(f"Triggers installed on {schema.name}", extra={"table": schema.name})


def install_all(
    conn: sqlite3.Connection,
    schemas: Iterable[TableSchema],
    log_table: str = LOG_TABLE,
) -> InstallReport:
    """
    Instrument every table; a failing table is reported and skipped.
    """
    report = InstallReport()
    for schema in schemas:
        try:
            install_table(conn, schema, log_table)
        except InstrumentationError as exc:
            log.error(
                f"[INSTRUMENTATION FAILED] {schema.name}: {exc}",
                extra={"table": schema.name},
            )
            report.failed[schema.name] = str(exc)
        else:
            report.installed.append(schema.name)
    log.info(
        f"Instrumented {len(report.installed)} table(s), skipped {len(report.failed)}",
        extra={"installed": report.installed, "skipped": sorted(report.failed)},
    )
    return report


def instrumented_tables(conn: sqlite3.Connection) -> List[str]:
    """Tables carrying triggers that follow the capture naming convention."""
    rows = conn.execute(
        "SELECT DISTINCT tbl_name FROM sqlite_master "
        "WHERE type = 'trigger' AND name GLOB ? ORDER BY tbl_name;",
        (CAPTURE_PREFIX + "*",),
    ).fetchall()
    return [row[0] for row in rows]


__all__ = [
    "IMAGE_CHUNK_SIZE",
    "InstallReport",
    "build_image_expr",
    "build_trigger_statements",
    "install_all",
    "install_table",
    "instrumented_tables",
]
