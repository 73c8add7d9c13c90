from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from changestream.capture.cleanup import capture_triggers
from changestream.capture.installer import instrumented_tables
from changestream.capture.introspector import list_columns, list_user_tables
from changestream.capture.log_store import LogStore


def collect_status(conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Snapshot of the capture state of a database.

    Returns a dict with per-table rows, the trigger names, and change log stats.
    """
    instrumented = set(instrumented_tables(conn))
    tables: List[Dict[str, Any]] = []
    for name in list_user_tables(conn):
        tables.append(
            {
                "table": name,
                "columns": len(list_columns(conn, name)),
                "instrumented": name in instrumented,
            }
        )

    store = LogStore(conn)
    log_exists = store.exists()
    entries, last_id = store.stats() if log_exists else (0, 0)
    return {
        "tables": tables,
        "triggers": capture_triggers(conn),
        "log_exists": log_exists,
        "log_entries": entries,
        "last_id": last_id,
    }


def print_status(status: Dict[str, Any], console: Optional[Console] = None) -> None:
    """
    Render a status snapshot as a rich table.
    """
    console = console or Console()

    if not status["tables"]:
        console.print("[yellow]No user tables found.[/yellow]")

    table = Table(
        title="Change Stream Status",
        box=box.ROUNDED,
    )
    table.add_column("Table", style="cyan", no_wrap=True)
    table.add_column("Columns", justify="right", style="magenta")
    table.add_column("Instrumented", justify="center")

    for row in status["tables"]:
        flag = "[bold green]yes[/bold green]" if row["instrumented"] else "[red]no[/red]"
        table.add_row(row["table"], str(row["columns"]), flag)

    console.print(table)

    if status["log_exists"]:
        console.print(
            f"Change log: {status['log_entries']:,} entries, last id {status['last_id']} "
            f"({len(status['triggers'])} capture trigger(s))"
        )
    else:
        console.print("[dim]Change log: absent[/dim]")
