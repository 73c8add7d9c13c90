"""
Schema introspection for the capture pipeline.

Read-only queries against ``sqlite_master`` and ``pragma_table_info``. Table
names are bound as parameters; nothing here writes to the database.
"""

from __future__ import annotations

import sqlite3
from typing import Iterable, List, Optional

from changestream.capture.identifiers import LOG_TABLE, ROWID_ALIASES, quote_identifier
from changestream.domain.models import ColumnDescriptor, TableSchema
from changestream.errors import SchemaError
from changestream.utils.logging import get_logger

log = get_logger(__name__)

_TABLES_SQL = r"""
SELECT name FROM sqlite_master
WHERE type = 'table'
  AND name NOT LIKE 'sqlite\_%' ESCAPE '\'
  AND name <> ?
ORDER BY name;
"""


def list_user_tables(conn: sqlite3.Connection) -> List[str]:
    """
    Return user table names, excluding SQLite catalog tables and the change log.
    """
    try:
        return [row[0] for row in conn.execute(_TABLES_SQL, (LOG_TABLE,))]
    except sqlite3.Error as exc:
        raise SchemaError(f"Unable to list tables: {exc}") from exc


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?;", (table,)
    ).fetchone()
    return row is not None


def list_columns(conn: sqlite3.Connection, table: str) -> List[ColumnDescriptor]:
    """
    Return the columns of ``table`` in ordinal order.

    Raises
    ------
    SchemaError
        If the table does not exist or the metadata query is rejected.
    """
    try:
        if not _table_exists(conn, table):
            raise SchemaError(f"Table '{table}' does not exist")
        rows = conn.execute(
            "SELECT cid, name, type FROM pragma_table_info(?) ORDER BY cid;", (table,)
        ).fetchall()
    except sqlite3.Error as exc:
        raise SchemaError(f"Unable to read columns of '{table}': {exc}") from exc
    return [ColumnDescriptor(name=name, declared_type=decl or "", ordinal=cid) for cid, name, decl in rows]


def rowid_alias(conn: sqlite3.Connection, table: str, columns: Iterable[str]) -> Optional[str]:
    """
    Name that reaches the engine rowid of ``table``, or None when there is none.

    A user column named ``rowid`` (or ``_rowid_``, ``oid``) hides that alias, so
    the first alias no column claims is used. None for ``WITHOUT ROWID`` tables
    and when every alias is taken.

    Raises
    ------
    SchemaError
        If the probe query fails for any reason other than a missing rowid.
    """
    taken = {name.lower() for name in columns}
    free = [alias for alias in ROWID_ALIASES if alias not in taken]
    if not free:
        log.warning(
            f"Every rowid alias of '{table}' is a user column; row_id will be null",
            extra={"table": table},
        )
        return None
    alias = free[0]
    try:
        conn.execute(f"SELECT {alias} FROM {quote_identifier(table)} LIMIT 0;")
    except sqlite3.OperationalError as exc:
        if "no such column" in str(exc):
            return None
        raise SchemaError(f"Unable to inspect rowid of '{table}': {exc}") from exc
    except sqlite3.Error as exc:
        raise SchemaError(f"Unable to inspect rowid of '{table}': {exc}") from exc
    return alias


def has_rowid(conn: sqlite3.Connection, table: str) -> bool:
    """False for ``WITHOUT ROWID`` tables (and virtual tables lacking one)."""
    names = [column.name for column in list_columns(conn, table)]
    return rowid_alias(conn, table, names) is not None


def describe_table(conn: sqlite3.Connection, table: str) -> TableSchema:
    columns = list_columns(conn, table)
    alias = rowid_alias(conn, table, [column.name for column in columns])
    return TableSchema(name=table, columns=tuple(columns), rowid_column=alias)


def introspect(conn: sqlite3.Connection) -> List[TableSchema]:
    """Describe every user table currently in the database."""
    schemas = [describe_table(conn, table) for table in list_user_tables(conn)]
    log.debug(
        f"Introspected {len(schemas)} table(s)",
        extra={"tables": [schema.name for schema in schemas]},
    )
    return schemas


__all__ = [
    "describe_table",
    "has_rowid",
    "introspect",
    "list_columns",
    "list_user_tables",
    "rowid_alias",
]
