"""
Field renderer: overlays submitted values onto PDF pages.

Each rendered field becomes one new content stream appended to its
page; the original page content is never rewritten.  Problems with a
single field are logged and either skipped or drawn as an error box so
the rest of the document still renders.
"""

from __future__ import annotations

__all__ = [
    "FieldDescriptor",
    "RenderItem",
    "RenderSettings",
    "SignerContext",
    "filter_fields_for_submitter",
    "render_signatures",
]

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, NamedTuple

from ...constants import DEFAULT_LOCALE, DEFAULT_TIMEZONE
from ...errors import PdfStructureError, UnsupportedFieldType
from .. import require_pikepdf
from ..values import SIGNATURE_TYPES, interpret_value
from .caption import build_caption_lines
from .coords import CoordinateMode, PdfBox, to_pdf_box
from .fields import error_ops, field_ops, text_ops
from .stream import append_content_stream, ensure_page_fonts, make_font_objects, page_geometry

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

_logger = logging.getLogger(__name__)


# ── Inputs ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldDescriptor:
    """A logical field box on a page (1-based page, top-left origin).

    ``coordinate_mode`` of None means the mode is detected from the
    value ranges.
    """

    page: int
    x: float
    y: float
    width: float
    height: float
    field_type: str = "text"
    name: str = ""
    partner: str | None = None
    default_value: str | None = None
    coordinate_mode: CoordinateMode | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldDescriptor:
        """Build from the JSON shape ``{page, x, y, width, height, ...}``.

        ``w`` / ``h`` and ``type`` are accepted as aliases.
        """
        try:
            mode = data.get("coordinate_mode")
            return cls(
                page=int(data.get("page", 1)),
                x=float(data["x"]),
                y=float(data["y"]),
                width=float(data["width"] if "width" in data else data["w"]),
                height=float(data["height"] if "height" in data else data["h"]),
                field_type=str(data.get("field_type") or data.get("type") or "text"),
                name=str(data.get("name") or ""),
                partner=data.get("partner"),
                default_value=data.get("default_value"),
                coordinate_mode=CoordinateMode(mode) if mode else None,
            )
        except KeyError as e:
            raise ValueError(f"Field descriptor is missing {e.args[0]!r}") from e


@dataclass(frozen=True)
class RenderSettings:
    """Account settings that govern the caption beneath signatures."""

    add_signature_id: bool = False
    require_signing_reason: bool = False
    allow_typed_text_signatures: bool = True
    timezone: str = DEFAULT_TIMEZONE
    locale: str = DEFAULT_LOCALE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SignerContext:
    """Who signed and when.  ``ip`` and ``user_agent`` are never rendered."""

    submitter_id: int
    email: str = ""
    signed_at: datetime = field(default_factory=_utcnow)
    reason: str | None = None
    ip: str | None = None
    user_agent: str | None = None


class RenderItem(NamedTuple):
    field: FieldDescriptor
    value: str | None
    context: SignerContext


def filter_fields_for_submitter(
    fields: Iterable[FieldDescriptor], name: str | None, email: str | None
) -> list[FieldDescriptor]:
    """Fields tagged for this submitter (exact name or email match) plus untagged fields."""
    keys = {k for k in (name, email) if k}
    return [f for f in fields if not f.partner or f.partner in keys]


# ── Rendering ────────────────────────────────────────────────────────


def _field_ops(
    item: RenderItem, raw: str, box: PdfBox, settings: RenderSettings
) -> list[str]:
    fld = item.field
    ftype = fld.field_type.lower()
    try:
        value = interpret_value(raw, ftype)
        caption = (
            build_caption_lines(settings, item.context, value.reason)
            if ftype in SIGNATURE_TYPES
            else None
        )
        return field_ops(
            ftype,
            value,
            box,
            field_name=fld.name,
            caption=caption,
            allow_typed_text=settings.allow_typed_text_signatures,
        )
    except UnsupportedFieldType as e:
        _logger.warning("%s in field %r, drawing the raw value as text", e, fld.name)
        return text_ops(raw, box)
    except ValueError as e:
        _logger.warning("Field %r could not be rendered: %s", fld.name, e)
        return error_ops(str(e), box)


def render_signatures(
    pdf_bytes: bytes,
    items: Iterable[RenderItem],
    settings: RenderSettings | None = None,
) -> bytes:
    """
    Draw every item's value onto its page and return the new PDF bytes.

    Empty values are skipped, except radio fields (placeholder text) and
    signature fields whose caption is still drawn.  Fields on pages the
    document does not have are logged and skipped.

    Raises:
        PdfStructureError: If the input cannot be parsed or written.
    """
    pikepdf = require_pikepdf()
    settings = settings or RenderSettings()

    try:
        pdf = pikepdf.open(io.BytesIO(pdf_bytes))
    except pikepdf.PdfError as e:
        raise PdfStructureError(f"Cannot open PDF for rendering: {e}") from e

    with pdf:
        page_count = len(pdf.pages)
        fonts = None
        rendered = 0
        for item in items:
            fld = item.field
            ftype = fld.field_type.lower()
            raw = item.value if item.value is not None else (fld.default_value or "")
            if not raw.strip() and ftype != "radio" and ftype not in SIGNATURE_TYPES:
                _logger.debug("Skipping empty %s field %r", ftype, fld.name)
                continue
            if not 1 <= fld.page <= page_count:
                _logger.warning(
                    "Field %r is on page %d but the document has %d page(s), skipping",
                    fld.name,
                    fld.page,
                    page_count,
                )
                continue

            page = pdf.pages[fld.page - 1]
            x0, y0, page_w, page_h = page_geometry(page)
            box = to_pdf_box(
                fld.x, fld.y, fld.width, fld.height, page_w, page_h, fld.coordinate_mode
            )
            box = PdfBox(box.x + x0, box.y + y0, box.width, box.height)

            ops = _field_ops(item, raw, box, settings)
            if not ops:
                _logger.debug("Nothing to draw for field %r", fld.name)
                continue
            if fonts is None:
                fonts = make_font_objects(pdf)
            ensure_page_fonts(page, fonts)
            append_content_stream(pdf, page, ops)
            rendered += 1
            _logger.debug(
                "Rendered %s field %r on page %d at (%.2f, %.2f, %.2f, %.2f)",
                ftype,
                fld.name,
                fld.page,
                *box,
            )

        out = io.BytesIO()
        try:
            pdf.save(out)
        except pikepdf.PdfError as e:
            raise PdfStructureError(f"Cannot write rendered PDF: {e}") from e

    _logger.info("Rendered %d field(s) onto %d page(s)", rendered, page_count)
    return out.getvalue()
