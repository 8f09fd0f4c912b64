"""
Content-stream primitives and page plumbing for the field renderer.

Text is drawn with non-embedded base-14 fonts registered on each page
under private resource names, so existing page fonts are never shadowed.
"""

from __future__ import annotations

__all__ = [
    "HELVETICA",
    "TIMES_ITALIC",
    "append_content_stream",
    "clamp",
    "ensure_page_fonts",
    "make_font_objects",
    "page_geometry",
    "text_op",
    "text_width",
]

import logging
from typing import TYPE_CHECKING

from ...constants import DEFAULT_PAGE_HEIGHT, DEFAULT_PAGE_WIDTH
from .. import require_pikepdf
from ..pdf.objects import pdf_string

if TYPE_CHECKING:
    import pikepdf

_logger = logging.getLogger(__name__)

# Resource names; prefixed to avoid clashing with fonts already on the page
HELVETICA = "LmsHelv"
TIMES_ITALIC = "LmsTimes"

_BASE_FONTS = {
    HELVETICA: "/Helvetica",
    TIMES_ITALIC: "/Times-Italic",
}

# Parent-chain depth limit when resolving inherited page attributes
_MAX_INHERIT_DEPTH = 32


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def text_op(font: str, size: float, x: float, y: float, text: str) -> list[str]:
    """Operators placing *text* at an absolute position (inside BT/ET)."""
    return [
        f"/{font} {size:.2f} Tf",
        f"1 0 0 1 {x:.2f} {y:.2f} Tm",
        f"({pdf_string(text)}) Tj",
    ]


# Advance widths in 1/1000 em for WinAnsi 0x20-0x7E, from the Adobe
# base-14 AFM files; other characters use the font's average digit width
_HELVETICA_WIDTHS = (
    "278 278 355 556 556 889 667 191 333 333 389 584 278 333 278 278 "
    "556 556 556 556 556 556 556 556 556 556 278 278 584 584 584 556 "
    "1015 667 667 722 722 667 611 778 722 278 500 667 556 833 722 778 "
    "667 778 722 667 611 722 667 944 667 667 611 278 278 278 469 556 "
    "333 556 556 500 556 556 278 556 556 222 222 500 222 833 556 556 "
    "556 556 333 500 278 556 500 722 500 500 500 334 260 334 584"
)
_TIMES_ITALIC_WIDTHS = (
    "250 333 420 500 500 833 778 214 333 333 500 675 250 333 250 278 "
    "500 500 500 500 500 500 500 500 500 500 333 333 675 675 675 500 "
    "920 611 611 667 722 611 611 722 722 333 444 667 556 833 667 722 "
    "611 722 611 500 556 722 611 833 611 556 556 389 278 389 422 500 "
    "333 500 500 444 500 444 278 500 500 278 278 444 278 722 500 500 "
    "500 500 389 389 278 500 444 667 444 444 389 400 275 400 541"
)


def _width_table(widths: str) -> dict[str, int]:
    return {chr(0x20 + i): int(w) for i, w in enumerate(widths.split())}


_METRICS: dict[str, tuple[dict[str, int], int]] = {
    HELVETICA: (_width_table(_HELVETICA_WIDTHS), 556),
    TIMES_ITALIC: (_width_table(_TIMES_ITALIC_WIDTHS), 500),
}


def text_width(text: str, font_size: float, font: str = HELVETICA) -> float:
    """Advance width of *text* in points for one of the renderer's base-14 fonts."""
    table, fallback = _METRICS[font]
    return sum(table.get(ch, fallback) for ch in text) * font_size / 1000


# ── Page plumbing ────────────────────────────────────────────────────


def _inherited(page_obj: pikepdf.Dictionary, key: str) -> pikepdf.Object | None:
    """Look up a page attribute, following /Parent for inheritable keys."""
    node = page_obj
    for _ in range(_MAX_INHERIT_DEPTH):
        value = node.get(key)
        if value is not None:
            return value
        parent = node.get("/Parent")
        if parent is None:
            return None
        node = parent
    return None


def page_geometry(page: pikepdf.Page) -> tuple[float, float, float, float]:
    """
    Page MediaBox as (x0, y0, width, height).

    Falls back to US Letter when the MediaBox is missing or malformed.
    """
    box = _inherited(page.obj, "/MediaBox")
    try:
        if box is not None and len(box) >= 4:
            x0, y0, x1, y1 = (float(v) for v in list(box)[:4])
            if x1 > x0 and y1 > y0:
                return (x0, y0, x1 - x0, y1 - y0)
    except (TypeError, ValueError):
        pass
    _logger.warning(
        "Page has no usable MediaBox, assuming %gx%g", DEFAULT_PAGE_WIDTH, DEFAULT_PAGE_HEIGHT
    )
    return (0.0, 0.0, DEFAULT_PAGE_WIDTH, DEFAULT_PAGE_HEIGHT)


def make_font_objects(pdf: pikepdf.Pdf) -> dict[str, pikepdf.Object]:
    """Create one indirect Type1 font dictionary per resource name."""
    pikepdf = require_pikepdf()
    return {
        res_name: pdf.make_indirect(
            pikepdf.Dictionary(
                Type=pikepdf.Name.Font,
                Subtype=pikepdf.Name.Type1,
                BaseFont=pikepdf.Name(base_font),
                Encoding=pikepdf.Name.WinAnsiEncoding,
            )
        )
        for res_name, base_font in _BASE_FONTS.items()
    }


def ensure_page_fonts(page: pikepdf.Page, fonts: dict[str, pikepdf.Object]) -> None:
    """
    Register *fonts* in the page's /Resources /Font dictionary.

    Inherited resources are copied onto the page first, and the /Font
    dictionary is copied before modification so sibling pages sharing it
    are unaffected.
    """
    pikepdf = require_pikepdf()
    page_obj = page.obj
    resources = page_obj.get("/Resources")
    if resources is None:
        inherited = _inherited(page_obj, "/Resources")
        resources = pikepdf.Dictionary()
        if inherited is not None:
            for key, value in inherited.items():
                resources[key] = value
        page_obj.Resources = resources
        resources = page_obj.Resources

    existing = resources.get("/Font")
    font_dict = pikepdf.Dictionary()
    if existing is not None:
        for key, value in existing.items():
            font_dict[key] = value
    for res_name, font_obj in fonts.items():
        font_dict[f"/{res_name}"] = font_obj
    resources.Font = font_dict


def append_content_stream(pdf: pikepdf.Pdf, page: pikepdf.Page, ops: list[str]) -> pikepdf.Object:
    """
    Wrap *ops* in ``q ... Q`` and append them as a new content stream.

    The page's existing streams are kept untouched: a single stream
    becomes ``[old, new]`` and an array is extended.
    """
    pikepdf = require_pikepdf()
    data = "\n".join(["q", *ops, "Q"]).encode("latin-1") + b"\n"
    stream = pdf.make_stream(data)
    page_obj = page.obj
    contents = page_obj.get("/Contents")
    if contents is None:
        page_obj.Contents = pikepdf.Array([stream])
    elif isinstance(contents, pikepdf.Array):
        contents.append(stream)
    else:
        page_obj.Contents = pikepdf.Array([contents, stream])
    return stream
