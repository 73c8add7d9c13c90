"""
sqlite-changestream - change data capture for SQLite databases.

This package turns the tables of an existing SQLite database into a stream of
row-level change events without touching application code:

- Schema introspection of the user tables
- Trigger-based instrumentation writing into an append-only change log
- Field-level diffs for updates
- A polling emitter producing one JSON event per line
- Cleanup restoring the database to its pre-instrumentation schema
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from changestream.config import Settings, get_settings
from changestream.domain.models import ChangeEvent, ChangeLogEntry, ColumnDescriptor, TableSchema
from changestream.errors import (
    ChangeStreamError,
    InstrumentationError,
    MalformedImageError,
    SchemaError,
    StorageError,
)
from changestream.lifecycle import CancellationToken
from changestream.orchestrator import run_pipeline, start_capture
from changestream.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "ChangeEvent",
    "ChangeLogEntry",
    "ColumnDescriptor",
    "TableSchema",
    # Errors
    "ChangeStreamError",
    "InstrumentationError",
    "MalformedImageError",
    "SchemaError",
    "StorageError",
    # Orchestration
    "CancellationToken",
    "run_pipeline",
    "start_capture",
    # Logging
    "configure_logging",
    "get_logger",
]
