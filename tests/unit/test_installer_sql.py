from __future__ import annotations

from typing import Optional

import pytest

from changestream.capture.installer import (
    IMAGE_CHUNK_SIZE,
    build_image_expr,
    build_trigger_statements,
)
from changestream.domain.models import ColumnDescriptor, TableSchema
from changestream.errors import InstrumentationError


def _schema(name: str, *columns: str, rowid_column: Optional[str] = "rowid") -> TableSchema:
    return TableSchema(
        name=name,
        columns=tuple(ColumnDescriptor(name=col, ordinal=i) for i, col in enumerate(columns)),
        rowid_column=rowid_column,
    )


def test_three_idempotent_triggers_per_table() -> None:
    statements = build_trigger_statements(_schema("items", "a", "b"))
    assert len(statements) == 3
    assert all(s.startswith("CREATE TRIGGER IF NOT EXISTS") for s in statements)
    insert_sql, update_sql, delete_sql = statements
    assert '"change_stream_items_insert"' in insert_sql and "AFTER INSERT ON \"items\"" in insert_sql
    assert '"change_stream_items_update"' in update_sql and "AFTER UPDATE ON \"items\"" in update_sql
    assert '"change_stream_items_delete"' in delete_sql and "AFTER DELETE ON \"items\"" in delete_sql


def test_images_reference_the_right_row() -> None:
    insert_sql, update_sql, delete_sql = build_trigger_statements(_schema("items", "a", "b"))
    assert "NEW.rowid" in insert_sql and "OLD." not in insert_sql
    assert "NEW.rowid" in update_sql and 'OLD."a"' in update_sql and 'NEW."b"' in update_sql
    assert "OLD.rowid" in delete_sql and "NEW." not in delete_sql


def test_without_rowid_tables_log_null_row_id() -> None:
    statements = build_trigger_statements(_schema("kv", "k", "v", rowid_column=None))
    assert all("rowid" not in statement for statement in statements)


def test_shadowed_rowid_uses_the_next_alias() -> None:
    insert_sql, update_sql, delete_sql = build_trigger_statements(
        _schema("tagged", "rowid", "v", rowid_column="_rowid_")
    )
    assert "NEW._rowid_," in insert_sql and "NEW._rowid_," in update_sql
    assert "OLD._rowid_," in delete_sql


@pytest.mark.parametrize("rowid_column", ["rowid", "ROWID", "id"])
def test_rowid_alias_must_reach_the_engine_rowid(rowid_column: str) -> None:
    with pytest.raises(InstrumentationError):
        build_trigger_statements(_schema("tagged", "RowId", "v", rowid_column=rowid_column))


@pytest.mark.parametrize(
    "schema",
    [
        _schema("bad-table", "a"),
        _schema("items", "ok", "not ok"),
        _schema("items", "a", "b\"); DROP TABLE items; --"),
        _schema("change_stream_log", "id"),
        _schema("empty"),
    ],
)
def test_unsafe_or_unsupported_schema_is_rejected(schema: TableSchema) -> None:
    with pytest.raises(InstrumentationError):
        build_trigger_statements(schema)


def test_wide_tables_are_chunked_with_json_insert() -> None:
    columns = [f"c{i}" for i in range(IMAGE_CHUNK_SIZE * 2 + 5)]
    expr = build_image_expr("NEW", columns)
    assert expr.count("json_insert(") == 2
    assert expr.count("json_object(") == 1
    assert f"'$.c{len(columns) - 1}'" in expr


def test_blob_values_are_hex_encoded() -> None:
    expr = build_image_expr("OLD", ["payload"])
    assert "typeof(OLD.\"payload\") = 'blob'" in expr
    assert "hex(OLD.\"payload\")" in expr


def test_image_expr_requires_row_reference() -> None:
    with pytest.raises(ValueError):
        build_image_expr("ROW", ["a"])
