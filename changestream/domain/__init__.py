"""
Domain package for sqlite-changestream.

Exports the schema descriptors, change log entries, and change events shared
by the capture pipeline. Keep this package focused on data definitions.
"""

from changestream.domain.models import (
    ACTIONS,
    ChangeAction,
    ChangeEvent,
    ChangeLogEntry,
    ColumnDescriptor,
    FieldChange,
    TableSchema,
)

__all__ = [
    "ACTIONS",
    "ChangeAction",
    "ChangeEvent",
    "ChangeLogEntry",
    "ColumnDescriptor",
    "FieldChange",
    "TableSchema",
]
