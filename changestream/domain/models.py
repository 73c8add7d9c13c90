"""
Domain models for sqlite-changestream.

Defines the schema descriptors produced by introspection, the change log entry
as persisted by the triggers, and the consumer-facing change event written to
stdout.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field

ChangeAction = Literal["insert", "update", "delete"]
ACTIONS: Tuple[str, ...] = ("insert", "update", "delete")


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    A column of a user table as seen at introspection time.
    """

    name: str
    declared_type: str = ""
    ordinal: int = 0


@dataclass(frozen=True)
class TableSchema:
    """
    A user table with its current columns.
    """

    name: str
    columns: Tuple[ColumnDescriptor, ...] = field(default_factory=tuple)
    # Alias that reaches the engine rowid; None for WITHOUT ROWID tables or
    # when user columns shadow every alias.
    rowid_column: Optional[str] = "rowid"

    @property
    def has_rowid(self) -> bool:
        return self.rowid_column is not None

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]


class ChangeLogEntry(BaseModel):
    """
    Representation of a single row in the change log table.

    Images are kept as the raw JSON text written by the trigger; parsing is
    deferred to the diff engine so one bad payload cannot fail a whole read.
    """

    id: int = Field(..., description="AUTOINCREMENT key, used as the consumption cursor.")
    table_name: str = Field(..., description="Originating table.")
    action: str = Field(..., description="insert, update or delete.")
    row_id: Optional[int] = Field(None, description="SQLite rowid of the mutated row.")
    new_image: Optional[str] = Field(None, description="Row after the mutation (JSON text).")
    old_image: Optional[str] = Field(None, description="Row before the mutation (JSON text).")
    timestamp: str = Field(..., description="Capture time, ISO-8601 UTC.")

    model_config = {
        "frozen": True,
    }


class FieldChange(BaseModel):
    """Old/new value pair for one changed field."""

    old: Any = None
    new: Any = None

    model_config = {"frozen": True}


class ChangeEvent(BaseModel):
    """
    Consumer-facing change event.

    Inserts and deletes carry the raw images; updates carry ``changed_fields``.
    """

    id: int
    table: str
    action: ChangeAction
    row_id: Optional[int] = None
    timestamp: str
    new_image: Optional[Dict[str, Any]] = None
    old_image: Optional[Dict[str, Any]] = None
    changed_fields: Optional[Dict[str, FieldChange]] = None

    model_config = {"frozen": True}

    def to_record(self) -> Dict[str, Any]:
        """Plain dict in the output shape; image/diff keys appear only when set."""
        record: Dict[str, Any] = {
            "id": self.id,
            "table": self.table,
            "action": self.action,
            "row_id": self.row_id,
            "timestamp": self.timestamp,
        }
        if self.changed_fields is not None:
            record["changed_fields"] = {
                name: change.model_dump() for name, change in self.changed_fields.items()
            }
        if self.new_image is not None:
            record["new_image"] = self.new_image
        if self.old_image is not None:
            record["old_image"] = self.old_image
        return record

    def to_json(self) -> str:
        """Serialize as a single-line JSON object."""
        return json.dumps(self.to_record(), ensure_ascii=False, separators=(",", ":"))


__all__ = [
    "ACTIONS",
    "ChangeAction",
    "ChangeEvent",
    "ChangeLogEntry",
    "ColumnDescriptor",
    "FieldChange",
    "TableSchema",
]
