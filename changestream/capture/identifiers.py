"""
Identifier grammar for generated trigger SQL.

Table and column names are discovered at runtime and end up interpolated into
trigger bodies, so every name must pass the allow-list before it is quoted.
"""

from __future__ import annotations

import re

from changestream.errors import InstrumentationError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Prefix shared by the log table and every trigger we install.
CAPTURE_PREFIX = "change_stream_"
LOG_TABLE = "change_stream_log"

# Names SQLite resolves to the rowid unless a column of the same name exists.
ROWID_ALIASES = ("rowid", "_rowid_", "oid")


def validate_identifier(name: str, kind: str = "identifier", table: str | None = None) -> str:
    """
    Return ``name`` unchanged if it matches ``[A-Za-z_][A-Za-z0-9_]*``.

    Raises
    ------
    InstrumentationError
        If the name is empty or contains anything outside the allow-list.
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise InstrumentationError(f"Unsupported {kind} name {name!r}", table=table)
    return name


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Single-quote a string literal, escaping embedded quotes."""
    return "'" + value.replace("'", "''") + "'"


def trigger_name(table: str, action: str) -> str:
    """Name of the capture trigger for ``table`` and ``action``."""
    return f"{CAPTURE_PREFIX}{table}_{action}"


__all__ = [
    "CAPTURE_PREFIX",
    "LOG_TABLE",
    "ROWID_ALIASES",
    "quote_identifier",
    "quote_literal",
    "trigger_name",
    "validate_identifier",
]
