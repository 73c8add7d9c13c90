"""
Capture package for sqlite-changestream.

Re-exports the pipeline stages (introspection, log store, trigger installer,
diff engine, emitter, cleanup) so callers can import from
`changestream.capture` directly.
"""

from changestream.capture.cleanup import CleanupReport, cleanup, cleanup_database
from changestream.capture.diff import diff, load_image, parse_image
from changestream.capture.emitter import ChangeEmitter, poll_cycle, to_event
from changestream.capture.installer import (
    InstallReport,
    build_trigger_statements,
    install_all,
    install_table,
    instrumented_tables,
)
from changestream.capture.introspector import (
    describe_table,
    introspect,
    list_columns,
    list_user_tables,
)
from changestream.capture.log_store import LogStore

__all__ = [
    # Introspection
    "describe_table",
    "introspect",
    "list_columns",
    "list_user_tables",
    # Log store
    "LogStore",
    # Instrumentation
    "InstallReport",
    "build_trigger_statements",
    "install_all",
    "install_table",
    "instrumented_tables",
    # Diff
    "diff",
    "load_image",
    "parse_image",
    # Emitter
    "ChangeEmitter",
    "poll_cycle",
    "to_event",
    # Cleanup
    "CleanupReport",
    "cleanup",
    "cleanup_database",
]
