"""
Error taxonomy for the capture pipeline.

Startup failures (schema introspection, log store setup) are fatal; per-table
instrumentation failures are reported and skipped; per-entry failures during
polling are logged and the stream moves on.
"""

from __future__ import annotations


class ChangeStreamError(Exception):
    """Base class for all capture pipeline errors."""


class SchemaError(ChangeStreamError):
    """Introspection failed: missing table or a rejected metadata query."""


class InstrumentationError(ChangeStreamError):
    """Trigger installation for a single table failed."""

    def __init__(self, message: str, table: str | None = None) -> None:
        super().__init__(message)
        self.table = table


class StorageError(ChangeStreamError):
    """Reading from or writing to the change log failed."""


class MalformedImageError(ChangeStreamError):
    """A before/after image payload could not be parsed into a record."""


__all__ = [
    "ChangeStreamError",
    "SchemaError",
    "InstrumentationError",
    "StorageError",
    "MalformedImageError",
]
