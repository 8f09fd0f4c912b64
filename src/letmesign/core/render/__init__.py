"""Field renderer: projects submitted values onto PDF pages."""

from .caption import (
    build_caption_lines,
    caption_height,
    format_signed_at,
    hash_id,
    resolve_utc_offset,
    signature_id,
)
from .coords import CoordinateMode, PdfBox, detect_mode, to_absolute, to_pdf_box
from .renderer import (
    FieldDescriptor,
    RenderItem,
    RenderSettings,
    SignerContext,
    filter_fields_for_submitter,
    render_signatures,
)

__all__ = [
    "CoordinateMode",
    "FieldDescriptor",
    "PdfBox",
    "RenderItem",
    "RenderSettings",
    "SignerContext",
    "build_caption_lines",
    "caption_height",
    "detect_mode",
    "filter_fields_for_submitter",
    "format_signed_at",
    "hash_id",
    "render_signatures",
    "resolve_utc_offset",
    "signature_id",
    "to_absolute",
    "to_pdf_box",
]
