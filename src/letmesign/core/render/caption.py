"""
Metadata caption drawn beneath signature and initials fields.

The caption lists, bottom to top: the signing reason, a display ID
derived from the submitter id, the signer's email and the localized
signing time.  Which lines appear is governed by the render settings.
"""

from __future__ import annotations

__all__ = [
    "TIMEZONE_ALIASES",
    "TIMEZONE_OFFSETS",
    "build_caption_lines",
    "caption_height",
    "caption_ops",
    "format_signed_at",
    "hash_id",
    "resolve_utc_offset",
    "signature_id",
]

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from ...constants import (
    CAPTION_BOTTOM_PADDING,
    CAPTION_FONT_SIZE,
    CAPTION_LEFT_PADDING,
    CAPTION_LINE_HEIGHT,
    DEFAULT_TIMEZONE,
)
from .stream import HELVETICA, text_op

if TYPE_CHECKING:
    from .renderer import RenderSettings, SignerContext

_logger = logging.getLogger(__name__)

# ── Timezones ────────────────────────────────────────────────────────

# Friendly names offered by the settings UI
TIMEZONE_ALIASES: dict[str, str] = {
    "Midway Island": "Pacific/Midway",
    "Hawaii": "Pacific/Honolulu",
    "Alaska": "America/Anchorage",
    "Pacific": "America/Los_Angeles",
    "Mountain": "America/Denver",
    "Central": "America/Chicago",
    "Eastern": "America/New_York",
    "Atlantic": "America/Halifax",
    "London": "Europe/London",
    "Berlin": "Europe/Berlin",
    "Paris": "Europe/Paris",
    "Rome": "Europe/Rome",
    "Moscow": "Europe/Moscow",
    "Tokyo": "Asia/Tokyo",
    "Shanghai": "Asia/Shanghai",
    "Hong Kong": "Asia/Hong_Kong",
    "Singapore": "Asia/Singapore",
    "Sydney": "Australia/Sydney",
    "UTC": "UTC",
}

# Fixed offsets in hours; daylight saving is deliberately ignored
TIMEZONE_OFFSETS: dict[str, int] = {
    "Asia/Ho_Chi_Minh": 7,
    "Pacific/Midway": -11,
    "Pacific/Honolulu": -10,
    "America/Anchorage": -9,
    "America/Los_Angeles": -8,
    "America/Denver": -7,
    "America/Chicago": -6,
    "America/New_York": -5,
    "America/Halifax": -4,
    "Europe/London": 0,
    "Europe/Berlin": 1,
    "Europe/Paris": 1,
    "Europe/Rome": 1,
    "Europe/Moscow": 3,
    "Asia/Tokyo": 9,
    "Asia/Shanghai": 8,
    "Asia/Hong_Kong": 8,
    "Asia/Singapore": 8,
    "Australia/Sydney": 10,
    "UTC": 0,
}


def resolve_utc_offset(tz_name: str | None) -> int:
    """Map a timezone name (IANA or friendly) to a fixed hour offset.

    Unknown names fall back to Asia/Ho_Chi_Minh (+7).
    """
    name = (tz_name or DEFAULT_TIMEZONE).strip()
    iana = TIMEZONE_ALIASES.get(name, name)
    if iana not in TIMEZONE_OFFSETS:
        _logger.debug("Unknown timezone %r, using %s", tz_name, DEFAULT_TIMEZONE)
        return TIMEZONE_OFFSETS[DEFAULT_TIMEZONE]
    return TIMEZONE_OFFSETS[iana]


def format_signed_at(signed_at: datetime, tz_name: str | None, locale: str | None) -> str:
    """Format a signing instant as ``DD/MM/YYYY, HH:MM:SS`` (vi) or ``MM/DD/YYYY, HH:MM:SS``."""
    if signed_at.tzinfo is None:
        signed_at = signed_at.replace(tzinfo=timezone.utc)
    local = signed_at.astimezone(timezone(timedelta(hours=resolve_utc_offset(tz_name))))
    if (locale or "").lower().startswith("vi"):
        return local.strftime("%d/%m/%Y, %H:%M:%S")
    return local.strftime("%m/%d/%Y, %H:%M:%S")


# ── Display identifiers ──────────────────────────────────────────────


def hash_id(value: int) -> str:
    """
    UUID-shaped display identifier from a djb2-style hash of ``str(value)``.

    The 32-bit hash is rendered as eight uppercase hex nibbles, least
    significant first, repeated four times and split 8-4-4-4-12.  Not a
    secret and not collision-free.
    """
    h = 0
    for ch in str(value):
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    nibbles = "".join(f"{(h >> (i * 4)) & 0xF:X}" for i in range(8))
    hex32 = nibbles * 4
    return f"{hex32[0:8]}-{hex32[8:12]}-{hex32[12:16]}-{hex32[16:20]}-{hex32[20:32]}"


def signature_id(submitter_id: int) -> str:
    """Display ID printed in captions for a submitter."""
    return hash_id(submitter_id + 1)


# ── Caption block ────────────────────────────────────────────────────


def build_caption_lines(
    settings: RenderSettings, context: SignerContext, reason: str | None = None
) -> list[str]:
    """
    Caption lines in bottom-to-top order.

    Args:
        reason: Overrides ``context.reason`` (e.g. a reason carried in
            the submitted value).
    """
    reason = reason if reason is not None else context.reason
    lines: list[str] = []
    if settings.require_signing_reason and reason:
        lines.append(f"Reason: {reason}")
    if settings.add_signature_id:
        lines.append(f"ID: {signature_id(context.submitter_id)}")
        if context.email:
            lines.append(context.email)
        lines.append(format_signed_at(context.signed_at, settings.timezone, settings.locale))
    return lines


def caption_height(line_count: int) -> float:
    """Height reserved at the bottom of the field for *line_count* caption lines."""
    if line_count <= 0:
        return 0.0
    return (line_count - 1) * CAPTION_LINE_HEIGHT + 22.0


def caption_ops(lines: list[str], x: float, y: float) -> list[str]:
    """Content-stream operators drawing *lines* upwards from the box bottom at (x, y)."""
    if not lines:
        return []
    ops = ["BT", "0 g"]
    for idx, line in enumerate(lines):
        line_y = y + CAPTION_BOTTOM_PADDING + idx * CAPTION_LINE_HEIGHT
        ops.extend(text_op(HELVETICA, CAPTION_FONT_SIZE, x + CAPTION_LEFT_PADDING, line_y, line))
    ops.append("ET")
    return ops
