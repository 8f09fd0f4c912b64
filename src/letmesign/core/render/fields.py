"""
Per-field-type drawing.

Each ``*_ops`` function returns content-stream operators for one field
box in PDF user space.  ``field_ops`` dispatches on the field's semantic
type and lays out the signature sub-area above the metadata caption.
"""

from __future__ import annotations

__all__ = [
    "cells_ops",
    "checkbox_ops",
    "error_ops",
    "field_ops",
    "file_display_name",
    "ink_ops",
    "signature_area",
    "text_ops",
    "typed_signature_ops",
]

from urllib.parse import urlsplit

from ...constants import CAPTION_SIGNATURE_GAP
from ...errors import UnsupportedFieldType
from ..values import (
    FIELD_TYPES,
    SIGNATURE_TYPES,
    Point,
    SignatureValue,
    ValueKind,
)
from .caption import caption_height, caption_ops
from .coords import PdfBox
from .stream import HELVETICA, TIMES_ITALIC, clamp, text_op, text_width


# ── Layout constants ─────────────────────────────────────────────────

_TEXT_FONT_RATIO = 0.65
_TEXT_FONT_MIN = 8.0
_TEXT_FONT_MAX = 16.0

_SIGNATURE_FONT_RATIO = 0.6
_SIGNATURE_FONT_MIN = 10.0
_SIGNATURE_FONT_MAX = 18.0

_CELL_FONT_RATIO = 0.8
_CELL_LINE_WIDTH = 0.5
_CELL_LINE_GRAY = 0.7

_CHECKBOX_LINE_WIDTH = 1.0
_CHECK_LINE_WIDTH = 1.5

_INK_LINE_WIDTH = 2.5
_INK_FIT_PADDING = 2.0

_ERROR_FONT_SIZE = 8.0

TYPED_SIGNATURES_DISABLED = "typed signatures are disabled"


def _baseline(y: float, height: float, font_size: float) -> float:
    """Baseline that vertically centres a line of *font_size* in the box."""
    return y + (height - font_size) / 2 + font_size * 0.25


def _clip(box: PdfBox) -> str:
    return f"{box.x:.2f} {box.y:.2f} {box.width:.2f} {box.height:.2f} re W n"


# ── Primitive field visuals ──────────────────────────────────────────


def text_ops(text: str, box: PdfBox) -> list[str]:
    """Left-aligned single line, vertically centred, clipped to the box."""
    fs = clamp(box.height * _TEXT_FONT_RATIO, _TEXT_FONT_MIN, _TEXT_FONT_MAX)
    return [
        "q",
        _clip(box),
        "BT",
        "0 g",
        *text_op(HELVETICA, fs, box.x, _baseline(box.y, box.height, fs), text),
        "ET",
        "Q",
    ]


def typed_signature_ops(text: str, box: PdfBox) -> list[str]:
    """Typed signature or initials: centred italic serif text."""
    fs = clamp(box.height * _SIGNATURE_FONT_RATIO, _SIGNATURE_FONT_MIN, _SIGNATURE_FONT_MAX)
    x = box.x + (box.width - text_width(text, fs, TIMES_ITALIC)) / 2
    return [
        "BT",
        "0 g",
        *text_op(TIMES_ITALIC, fs, x, _baseline(box.y, box.height, fs), text),
        "ET",
    ]


def checkbox_ops(checked: bool, box: PdfBox) -> list[str]:
    """Square stroke centred in the box, with a check mark when *checked*."""
    side = min(box.width, box.height)
    sx = box.x + (box.width - side) / 2
    sy = box.y + (box.height - side) / 2
    ops = [
        "0 G",
        f"{_CHECKBOX_LINE_WIDTH} w",
        f"{sx:.2f} {sy:.2f} {side:.2f} {side:.2f} re",
        "S",
    ]
    if checked:
        ops += [
            f"{_CHECK_LINE_WIDTH} w",
            "1 J 1 j",
            f"{sx + side * 0.2:.2f} {sy + side * 0.5:.2f} m",
            f"{sx + side * 0.4:.2f} {sy + side * 0.3:.2f} l",
            f"{sx + side * 0.8:.2f} {sy + side * 0.7:.2f} l",
            "S",
        ]
    return ops


def cells_ops(text: str, box: PdfBox) -> list[str]:
    """One character per equal-width cell, with a light grid."""
    chars = list(text)
    if not chars:
        return []
    cell_w = box.width / len(chars)
    fs = min(box.height * _CELL_FONT_RATIO, cell_w * _CELL_FONT_RATIO)
    top = box.y + box.height
    right = box.x + box.width
    ops = [
        f"{_CELL_LINE_WIDTH} w",
        f"{_CELL_LINE_GRAY} {_CELL_LINE_GRAY} {_CELL_LINE_GRAY} RG",
    ]
    for i in range(len(chars) + 1):
        cx = box.x + i * cell_w
        ops += [f"{cx:.2f} {box.y:.2f} m", f"{cx:.2f} {top:.2f} l", "S"]
    ops += [f"{box.x:.2f} {box.y:.2f} m", f"{right:.2f} {box.y:.2f} l", "S"]
    ops += [f"{box.x:.2f} {top:.2f} m", f"{right:.2f} {top:.2f} l", "S"]

    baseline = _baseline(box.y, box.height, fs)
    ops += ["BT", "0 g"]
    for i, ch in enumerate(chars):
        x = box.x + i * cell_w + (cell_w - text_width(ch, fs)) / 2
        ops += text_op(HELVETICA, fs, x, baseline, ch)
    ops.append("ET")
    return ops


def _is_normalized(strokes: tuple[tuple[Point, ...], ...]) -> bool:
    return all(0.0 <= p.x <= 1.0 and 0.0 <= p.y <= 1.0 for s in strokes for p in s)


def ink_ops(strokes: tuple[tuple[Point, ...], ...], box: PdfBox) -> list[str]:
    """
    Stroke ink polylines into *box*.

    Normalized points (0..1, y growing downwards) map linearly onto the
    box.  Raw canvas coordinates are scaled uniformly to fit with a small
    padding and centred horizontally.
    """
    points = [p for s in strokes for p in s]
    if not points:
        return []

    if _is_normalized(strokes):

        def project(p: Point) -> tuple[float, float]:
            return (box.x + p.x * box.width, box.y + box.height - p.y * box.height)

    else:
        min_x = min(p.x for p in points)
        min_y = min(p.y for p in points)
        span_x = max(p.x for p in points) - min_x
        span_y = max(p.y for p in points) - min_y
        scales = []
        if span_x > 0:
            scales.append((box.width - 2 * _INK_FIT_PADDING) / span_x)
        if span_y > 0:
            scales.append((box.height - 2 * _INK_FIT_PADDING) / span_y)
        scale = max(min(scales), 0.0) if scales else 1.0
        offset_x = (box.width - span_x * scale) / 2 - min_x * scale
        offset_y = _INK_FIT_PADDING - min_y * scale

        def project(p: Point) -> tuple[float, float]:
            return (
                box.x + p.x * scale + offset_x,
                box.y + box.height - (p.y * scale + offset_y),
            )

    ops = ["0 G", f"{_INK_LINE_WIDTH} w", "1 J 1 j"]
    for stroke in strokes:
        if not stroke:
            continue
        x, y = project(stroke[0])
        ops.append(f"{x:.2f} {y:.2f} m")
        # A single-point stroke becomes a dot via the round cap
        for p in stroke[1:] or stroke[:1]:
            x, y = project(p)
            ops.append(f"{x:.2f} {y:.2f} l")
        ops.append("S")
    return ops


def error_ops(message: str, box: PdfBox) -> list[str]:
    """Red-outlined placeholder box carrying an error message."""
    y = box.y + max(box.height - _ERROR_FONT_SIZE, 0) / 2
    return [
        "1 0 0 RG",
        "0.5 w",
        f"{box.x:.2f} {box.y:.2f} {box.width:.2f} {box.height:.2f} re",
        "S",
        "q",
        _clip(box),
        "BT",
        "1 0 0 rg",
        *text_op(HELVETICA, _ERROR_FONT_SIZE, box.x + 2, y, f"[ERROR: {message}]"),
        "ET",
        "Q",
    ]


def file_display_name(url: str) -> str:
    """Last path segment of a URL, without query or fragment."""
    path = urlsplit(url).path or url
    return path.rstrip("/").rsplit("/", 1)[-1] or "file"


# ── Dispatch ─────────────────────────────────────────────────────────


def signature_area(box: PdfBox, text_height: float) -> PdfBox:
    """Portion of a signature box above the caption (the whole box without one)."""
    if text_height <= 0:
        return box
    lift = text_height + CAPTION_SIGNATURE_GAP
    return PdfBox(box.x, box.y + lift, box.width, max(box.height - lift, 0.0))


def field_ops(
    field_type: str,
    value: SignatureValue,
    box: PdfBox,
    *,
    field_name: str = "",
    caption: list[str] | None = None,
    allow_typed_text: bool = True,
) -> list[str]:
    """
    Operators for one field.

    Args:
        caption: Caption lines (bottom to top); drawn for signature and
            initials fields only.
        allow_typed_text: When False, a non-ink signature is replaced by
            an error box.

    Raises:
        UnsupportedFieldType: If *field_type* is not a known type.
    """
    ftype = field_type.lower()
    if ftype not in FIELD_TYPES:
        raise UnsupportedFieldType(field_type)

    if ftype in SIGNATURE_TYPES:
        lines = caption or []
        area = signature_area(box, caption_height(len(lines)))
        ops: list[str] = []
        if value.kind is ValueKind.INK:
            ops += ink_ops(value.strokes, area)
        elif not value.is_empty:
            if ftype == "signature" and not allow_typed_text:
                ops += error_ops(TYPED_SIGNATURES_DISABLED, area)
            else:
                ops += typed_signature_ops(value.text, area)
        ops += caption_ops(lines, box.x, box.y)
        return ops

    if value.kind is ValueKind.CHECKBOX:
        return checkbox_ops(value.checked, box)
    if value.kind is ValueKind.CELLS:
        return cells_ops(value.text, box)
    if value.kind is ValueKind.MULTIPLE:
        return text_ops(" ".join(value.items), box)
    if value.kind is ValueKind.RADIO:
        return text_ops(value.text or f"Choose {field_name}".rstrip(), box)
    if value.kind is ValueKind.IMAGE:
        return text_ops(f"[IMAGE: {value.text}]", box)
    if value.kind is ValueKind.FILE:
        return text_ops(f"[DOWNLOAD: {file_display_name(value.text)}]", box)
    return text_ops(value.text, box)
