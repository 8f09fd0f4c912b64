"""
Field coordinate conversion.

Field boxes arrive with a top-left origin in one of three modes:

- relative: every value in 0..1, fractions of the page size
- viewer: pixels of the 600 x 800 web previewer
- absolute: PDF points

``to_pdf_box`` converts any of them to a bottom-left-origin box in
PDF user space.
"""

from __future__ import annotations

__all__ = ["CoordinateMode", "PdfBox", "detect_mode", "to_absolute", "to_pdf_box"]

import logging
from enum import Enum
from typing import NamedTuple

from ...constants import VIEWER_HEIGHT, VIEWER_WIDTH

_logger = logging.getLogger(__name__)


class CoordinateMode(str, Enum):
    RELATIVE = "relative"
    VIEWER = "viewer"
    ABSOLUTE = "absolute"


class PdfBox(NamedTuple):
    """Rectangle in PDF user space (bottom-left origin, points)."""

    x: float
    y: float
    width: float
    height: float


def detect_mode(x: float, y: float, width: float, height: float) -> CoordinateMode:
    """Pick the coordinate mode from the value ranges."""
    if x <= 1.0 and y <= 1.0 and width <= 1.0 and height <= 1.0:
        return CoordinateMode.RELATIVE
    fits_x = x <= VIEWER_WIDTH and width <= VIEWER_WIDTH
    if fits_x and y <= VIEWER_HEIGHT and height <= VIEWER_HEIGHT:
        return CoordinateMode.VIEWER
    return CoordinateMode.ABSOLUTE


def to_absolute(
    x: float,
    y: float,
    width: float,
    height: float,
    page_width: float,
    page_height: float,
    mode: CoordinateMode | None = None,
) -> tuple[float, float, float, float]:
    """
    Convert a box to absolute points, keeping the top-left origin.

    Args:
        mode: Force a mode instead of detecting one.

    Returns:
        (x, y_top, width, height) in PDF points.
    """
    if mode is None:
        mode = detect_mode(x, y, width, height)
        _logger.debug(
            "Detected %s coordinates for (%g, %g, %g, %g)", mode.value, x, y, width, height
        )
    if mode is CoordinateMode.RELATIVE:
        return (x * page_width, y * page_height, width * page_width, height * page_height)
    if mode is CoordinateMode.VIEWER:
        sx = page_width / VIEWER_WIDTH
        sy = page_height / VIEWER_HEIGHT
        return (x * sx, y * sy, width * sx, height * sy)
    return (x, y, width, height)


def to_pdf_box(
    x: float,
    y: float,
    width: float,
    height: float,
    page_width: float,
    page_height: float,
    mode: CoordinateMode | None = None,
) -> PdfBox:
    """Convert a top-left-origin field box to PDF user space."""
    ax, ay, aw, ah = to_absolute(x, y, width, height, page_width, page_height, mode)
    return PdfBox(ax, page_height - ay - ah, aw, ah)
