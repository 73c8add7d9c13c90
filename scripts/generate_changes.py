"""
Demo workload for sqlite-changestream.

Creates a small SQLite schema and applies deterministic pseudo-random
inserts, updates, and deletes, so a running watcher has something to stream.
"""

from __future__ import annotations

import random
import sqlite3
import sys
import time
from pathlib import Path

import typer

app = typer.Typer(help="Create a demo SQLite database and mutate it.")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS customers (
    id      INTEGER PRIMARY KEY,
    name    TEXT NOT NULL,
    email   TEXT,
    active  INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS orders (
    id          INTEGER PRIMARY KEY,
    customer_id INTEGER NOT NULL,
    amount      REAL NOT NULL,
    status      TEXT NOT NULL
);
"""


def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(_SCHEMA)


def _apply_mutations(conn: sqlite3.Connection, mutations: int, seed: int) -> dict[str, int]:
    """
    Apply ``mutations`` random statements and return counts per action.
    """
    rng = random.Random(seed)
    names = ["ada", "grace", "linus", "barbara", "ken", "margaret"]
    statuses = ["new", "paid", "shipped", "cancelled"]
    counts = {"insert": 0, "update": 0, "delete": 0}

    for _ in range(mutations):
        customer_ids = [row[0] for row in conn.execute("SELECT id FROM customers;")]
        order_ids = [row[0] for row in conn.execute("SELECT id FROM orders;")]
        roll = rng.random()

        if roll < 0.5 or not customer_ids:
            name = rng.choice(names)
            conn.execute(
                "INSERT INTO customers (name, email) VALUES (?, ?);",
                (name, f"{name}{rng.randint(1, 999)}@example.com"),
            )
            if customer_ids:
                conn.execute(
                    "INSERT INTO orders (customer_id, amount, status) VALUES (?, ?, ?);",
                    (rng.choice(customer_ids), round(rng.uniform(5, 500), 2), "new"),
                )
                counts["insert"] += 1
            counts["insert"] += 1
        elif roll < 0.85:
            if order_ids:
                conn.execute(
                    "UPDATE orders SET status = ? WHERE id = ?;",
                    (rng.choice(statuses), rng.choice(order_ids)),
                )
            else:
                conn.execute(
                    "UPDATE customers SET active = 1 - active WHERE id = ?;",
                    (rng.choice(customer_ids),),
                )
            counts["update"] += 1
        else:
            if order_ids:
                conn.execute("DELETE FROM orders WHERE id = ?;", (rng.choice(order_ids),))
            else:
                conn.execute("DELETE FROM customers WHERE id = ?;", (rng.choice(customer_ids),))
            counts["delete"] += 1
        conn.commit()
    return counts


@app.command()
def main(
    db_path: Path = typer.Argument(..., help="SQLite database file (created if missing)."),
    mutations: int = typer.Option(
        20,
        "--mutations",
        "-m",
        min=0,
        help="Number of random mutations to apply.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    delay: float = typer.Option(
        0.0,
        "--delay",
        min=0.0,
        help="Seconds to sleep between mutations.",
    ),
    schema_only: bool = typer.Option(
        False,
        "--schema-only",
        help="Only create the demo tables; apply no mutations.",
    ),
) -> None:
    """
    Create the demo tables and optionally apply random mutations.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        _create_schema(conn)
        typer.echo(f"Schema ready in {db_path}")
        if schema_only:
            typer.echo("Skipping mutations (schema-only flag set).")
            return

        start = time.perf_counter()
        totals = {"insert": 0, "update": 0, "delete": 0}
        for step in range(mutations):
            counts = _apply_mutations(conn, 1, seed + step)
            for action, value in counts.items():
                totals[action] += value
            if delay:
                time.sleep(delay)
        duration = time.perf_counter() - start
        typer.echo(
            f"Applied {sum(totals.values())} statement(s) in {duration:.2f}s "
            f"(insert={totals['insert']} update={totals['update']} delete={totals['delete']})."
        )
    finally:
        conn.close()


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
