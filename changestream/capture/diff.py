"""
Field-level diffs between before and after images.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Dict, Optional, Union

from changestream.domain.models import FieldChange
from changestream.errors import MalformedImageError
from changestream.utils.logging import get_logger

log = get_logger(__name__)

Image = Union[str, Mapping[str, Any], None]


class _Absent:
    """Marks a field missing from the old image; distinct from a JSON null."""

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def parse_image(payload: Image) -> Dict[str, Any]:
    """
    Decode an image payload into a record.

    Raises
    ------
    MalformedImageError
        If the payload is not valid JSON or does not decode to an object.
    """
    if payload is None:
        return {}
    if isinstance(payload, Mapping):
        return dict(payload)
    try:
        value = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise MalformedImageError(f"Image is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise MalformedImageError(f"Image must be a JSON object, got {type(value).__name__}")
    return value


def load_image(payload: Image, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Like :func:`parse_image` but recovers to an empty record."""
    try:
        return parse_image(payload)
    except MalformedImageError as exc:
        log.warning(f"Malformed image treated as empty: {exc}", extra=context or {})
        return {}


def diff(
    new_image: Image,
    old_image: Image,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, FieldChange]:
    """
    Changed fields between two images as ``{field: FieldChange(old, new)}``.

    Every field of the new image is compared with the old one; a field missing
    from the old image counts as changed and reports ``old=None``. When either
    payload is malformed there are no comparable fields and the result is empty.
    """
    try:
        new = parse_image(new_image)
        old = parse_image(old_image)
    except MalformedImageError as exc:
        log.warning(f"Diff skipped, malformed image: {exc}", extra=context or {})
        return {}

    changed: Dict[str, FieldChange] = {}
    for name, new_value in new.items():
        old_value = old.get(name, ABSENT)
        if old_value is ABSENT or not _same(old_value, new_value):
            changed[name] = FieldChange(
                old=None if old_value is ABSENT else old_value,
                new=new_value,
            )
    return changed


def _same(left: Any, right: Any) -> bool:
    # bool is an int subclass; keep True and 1 apart.
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


__all__ = ["ABSENT", "diff", "load_image", "parse_image"]
