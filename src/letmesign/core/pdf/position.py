"""
Placement of the signature widget on a page.

A preset ("bottom-right", alias "br", ...) is an anchor inside the page
area left after the margins; explicit coordinates bypass presets.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...errors import PdfStructureError

if TYPE_CHECKING:
    import pikepdf

# Widget size in PDF points (3:1, about 75x25 mm)
SIG_WIDTH = 210
SIG_HEIGHT = 70
SIG_MARGIN_H = 36
SIG_MARGIN_V = 60

# Preset -> (horizontal, vertical) anchor: 0 = left/bottom, 1 = right/top
_ANCHORS: dict[str, tuple[float, float]] = {
    "bottom-right": (1.0, 0.0),
    "top-right": (1.0, 1.0),
    "bottom-left": (0.0, 0.0),
    "top-left": (0.0, 1.0),
    "bottom-center": (0.5, 0.0),
}

POSITION_PRESETS = frozenset(_ANCHORS)

# "bottom-right" -> "br"
POSITION_ALIASES = {
    "".join(part[0] for part in name.split("-")): name for name in _ANCHORS
}


def resolve_position(position_name: str) -> str:
    """Canonical preset name for a preset or its two-letter alias.

    >>> resolve_position("BR")
    'bottom-right'

    Raises:
        PdfStructureError: For an unknown name.
    """
    key = position_name.strip().lower()
    resolved = POSITION_ALIASES.get(key, key)
    if resolved in _ANCHORS:
        return resolved
    choices = ", ".join([*sorted(_ANCHORS), *sorted(POSITION_ALIASES)])
    raise PdfStructureError(f"Unknown position {position_name!r}. Valid: {choices}")


def compute_sig_rect(
    page_width: float,
    page_height: float,
    position: str = "bottom-right",
    sig_w: float = SIG_WIDTH,
    sig_h: float = SIG_HEIGHT,
    margin_h: float = SIG_MARGIN_H,
    margin_v: float = SIG_MARGIN_V,
) -> tuple[float, float, float, float]:
    """
    ``(x, y, w, h)`` of a preset widget, origin bottom-left.

    Raises:
        PdfStructureError: Non-positive sizes, or a widget that does not fit
            between the margins.
    """
    if min(page_width, page_height) <= 0:
        raise PdfStructureError(f"Invalid page dimensions: {page_width:.1f} x {page_height:.1f} pt")
    if min(sig_w, sig_h) <= 0:
        raise PdfStructureError(f"Invalid signature dimensions: {sig_w:.1f} x {sig_h:.1f} pt")

    fx, fy = _ANCHORS[resolve_position(position)]
    slack_x = page_width - 2 * margin_h - sig_w
    slack_y = page_height - 2 * margin_v - sig_h
    if slack_x < 0 or slack_y < 0:
        raise PdfStructureError(
            f"Signature does not fit on page: {sig_w:.0f}x{sig_h:.0f} pt widget, "
            f"{page_width:.0f}x{page_height:.0f} pt page, "
            f"margins {margin_h:.0f}/{margin_v:.0f} pt"
        )
    return margin_h + fx * slack_x, margin_v + fy * slack_y, sig_w, sig_h


def get_page_dimensions(pdf: pikepdf.Pdf, page_index: int) -> tuple[float, float]:
    """Visible (width, height) of a page: CropBox if set, quarter turns swap axes."""
    page = pdf.pages[page_index]
    llx, lly, urx, ury = (float(v) for v in page.cropbox)
    width, height = abs(urx - llx), abs(ury - lly)
    if int(page.obj.get("/Rotate", 0)) % 180 == 90:
        return height, width
    return width, height


_NAMED_PAGES = {"first": 0, "last": -1}


def resolve_page_index(pdf: pikepdf.Pdf, page_spec: int | str) -> int:
    """
    0-based page index for ``"first"``, ``"last"`` or a 0-based number.

    Raises:
        PdfStructureError: On an unparseable or out-of-range page.
    """
    total = len(pdf.pages)
    if total == 0:
        raise PdfStructureError("PDF has no pages.")
    if isinstance(page_spec, str):
        key = page_spec.strip().lower()
        if key in _NAMED_PAGES:
            return _NAMED_PAGES[key] % total
        if not key.lstrip("-").isdigit():
            raise PdfStructureError(
                f"Invalid page: {page_spec!r}. Use 'first', 'last', or a 0-based number."
            )
        page_spec = int(key)
    index = int(page_spec)
    if not 0 <= index < total:
        raise PdfStructureError(f"Page {index} out of range (PDF has {total} page(s), 0-based).")
    return index
