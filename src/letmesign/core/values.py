"""
Signature value model.

Signer contributions arrive as opaque strings.  ``interpret_value``
turns one into a typed ``SignatureValue`` using the field's semantic
type first and the string's shape second (JSON ink array, JSON object
with ``text`` / ``initials`` / ``signature``, or plain text).
"""

from __future__ import annotations

__all__ = [
    "FIELD_TYPES",
    "SIGNATURE_TYPES",
    "TEXT_LIKE_TYPES",
    "Point",
    "SignatureValue",
    "ValueKind",
    "interpret_value",
    "parse_ink",
]

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

TEXT_LIKE_TYPES = frozenset({"text", "date", "number", "phone", "select"})
SIGNATURE_TYPES = frozenset({"signature", "initials"})
FIELD_TYPES = TEXT_LIKE_TYPES | SIGNATURE_TYPES | {
    "checkbox",
    "multiple",
    "cells",
    "radio",
    "image",
    "file",
}

# Shown when a JSON object carries none of the known text keys
_OPAQUE_SIGNATURE_TEXT = "[SIGNATURE]"


class ValueKind(str, Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    MULTIPLE = "multiple"
    CELLS = "cells"
    IMAGE = "image"
    FILE = "file"
    INK = "ink"


class Point(NamedTuple):
    x: float
    y: float


Stroke = tuple[Point, ...]


@dataclass(frozen=True)
class SignatureValue:
    """One signer's contribution to one field.  Immutable once created.

    Only the attributes relevant to ``kind`` are populated: ``text`` for
    text, radio, cells, image and file; ``checked`` for checkboxes;
    ``items`` for multi-select; ``strokes`` for ink.
    """

    kind: ValueKind
    text: str = ""
    checked: bool = False
    items: tuple[str, ...] = ()
    strokes: tuple[Stroke, ...] = ()
    reason: str | None = None

    @property
    def is_empty(self) -> bool:
        if self.kind is ValueKind.INK:
            return not any(self.strokes)
        if self.kind is ValueKind.CHECKBOX:
            return False
        if self.kind is ValueKind.MULTIPLE:
            return not any(self.items)
        return not self.text


def parse_ink(raw: str) -> tuple[Stroke, ...]:
    """
    Parse a JSON array of stroke arrays of ``{"x": f, "y": f}`` objects.

    Raises:
        ValueError: If the payload is not valid JSON or has the wrong shape.
    """
    data: Any = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("Ink payload must be a JSON array of strokes")
    strokes: list[Stroke] = []
    for stroke in data:
        if not isinstance(stroke, list):
            raise ValueError("Each ink stroke must be an array of points")
        points: list[Point] = []
        for pt in stroke:
            if not isinstance(pt, dict) or "x" not in pt or "y" not in pt:
                raise ValueError("Ink points must be objects with x and y")
            try:
                points.append(Point(float(pt["x"]), float(pt["y"])))
            except TypeError as e:
                raise ValueError(f"Ink point coordinates must be numbers: {pt!r}") from e
        strokes.append(tuple(points))
    return tuple(strokes)


def _interpret_signature(raw: str) -> SignatureValue:
    stripped = raw.strip()
    if stripped.startswith("["):
        return SignatureValue(ValueKind.INK, strokes=parse_ink(stripped))
    if stripped.startswith("{"):
        try:
            obj: Any = json.loads(stripped)
        except json.JSONDecodeError:
            return SignatureValue(ValueKind.TEXT, text=raw)
        if not isinstance(obj, dict):
            return SignatureValue(ValueKind.TEXT, text=raw)
        reason = obj.get("reason") if isinstance(obj.get("reason"), str) else None
        for key in ("text", "initials", "signature"):
            inner = obj.get(key)
            if isinstance(inner, str):
                if inner.strip().startswith("["):
                    return SignatureValue(ValueKind.INK, strokes=parse_ink(inner), reason=reason)
                return SignatureValue(ValueKind.TEXT, text=inner, reason=reason)
            if isinstance(inner, list):
                return SignatureValue(
                    ValueKind.INK, strokes=parse_ink(json.dumps(inner)), reason=reason
                )
        return SignatureValue(ValueKind.TEXT, text=_OPAQUE_SIGNATURE_TEXT, reason=reason)
    return SignatureValue(ValueKind.TEXT, text=raw)


def interpret_value(raw: str | None, field_type: str) -> SignatureValue:
    """
    Interpret a raw submitted string for a field of *field_type*.

    Unknown field types are interpreted as plain text; deciding whether
    to render them is the renderer's job.

    Raises:
        ValueError: For a malformed ink payload on a signature field.
    """
    raw = raw or ""
    ftype = field_type.lower()
    if ftype in SIGNATURE_TYPES:
        return _interpret_signature(raw) if raw.strip() else SignatureValue(ValueKind.TEXT)
    if ftype == "checkbox":
        return SignatureValue(ValueKind.CHECKBOX, checked=raw.strip().lower() == "true")
    if ftype == "multiple":
        return SignatureValue(ValueKind.MULTIPLE, items=tuple(raw.split(",")) if raw else ())
    if ftype == "radio":
        return SignatureValue(ValueKind.RADIO, text=raw)
    if ftype == "cells":
        return SignatureValue(ValueKind.CELLS, text=raw)
    if ftype == "image":
        return SignatureValue(ValueKind.IMAGE, text=raw)
    if ftype == "file":
        return SignatureValue(ValueKind.FILE, text=raw)
    return SignatureValue(ValueKind.TEXT, text=raw)
