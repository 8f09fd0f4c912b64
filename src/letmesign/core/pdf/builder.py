"""PDF signature field preparation.

High-level API for preparing PDFs with an empty signature field,
computing ByteRange digests, and inserting CMS containers.

Low-level PDF object building is in objects.py.
Position/geometry helpers are in position.py.
Post-sign verification is in verify.py.
"""

from __future__ import annotations

import hashlib
import io
import logging
from typing import TYPE_CHECKING, NamedTuple

from ...constants import DEFAULT_SIGNATURE_REASON, DEFAULT_SIGNATURE_SIZE
from ...errors import PdfStructureError, PlaceholderTooSmall
from .. import require_pikepdf
from .incremental import (
    assemble_incremental_update,
    find_prev_startxref,
    find_root_obj_num,
    patch_byterange,
)
from .objects import (
    allocate_sig_objects,
    build_acroform_override,
    build_annot_widget,
    build_blank_appearance,
    build_page_override,
    build_sig_dict,
)
from .position import (
    SIG_HEIGHT,
    SIG_WIDTH,
    compute_sig_rect,
    get_page_dimensions,
    resolve_page_index,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    import pikepdf

_logger = logging.getLogger(__name__)

# Nesting limit when walking /Kids of form fields
_MAX_FIELD_DEPTH = 32


class PreparedPdf(NamedTuple):
    """Output of :func:`prepare_pdf_with_sig_field`."""

    pdf: bytes
    byte_range: tuple[int, int, int, int]
    hex_start: int
    hex_len: int
    field_name: str


# ── Helpers ────────────────────────────────────────────────────────────


def _to_bytes(raw: str | bytes) -> bytes:
    """Convert a raw PDF object (str or bytes) to bytes."""
    return raw if isinstance(raw, bytes) else raw.encode("latin-1")


def iter_form_fields(
    fields: pikepdf.Array | None, depth: int = 0
) -> Iterator[pikepdf.Dictionary]:
    """Yield every field dictionary under an AcroForm /Fields array, following /Kids."""
    if fields is None or depth > _MAX_FIELD_DEPTH:
        return
    for i in range(len(fields)):
        fld = fields[i]
        yield fld
        kids = fld.get("/Kids")
        if kids is not None:
            yield from iter_form_fields(kids, depth + 1)


def _unique_field_name(acroform: pikepdf.Dictionary | None, requested: str | None) -> str:
    """``requested`` if it is free, else the first free ``Signature_N``.

    Raises:
        PdfStructureError: If *requested* names an existing field.
    """
    names: set[str] = set()
    sig_count = 0
    if acroform is not None:
        for fld in iter_form_fields(acroform.get("/Fields")):
            if "/T" in fld:
                names.add(str(fld["/T"]))
            if fld.get("/FT") == "/Sig":
                sig_count += 1
    if requested:
        if requested in names:
            raise PdfStructureError(f"PDF already has a field named {requested!r}.")
        return requested
    n = sig_count + 1
    while f"Signature_{n}" in names:
        n += 1
    return f"Signature_{n}"


# ── Preparation ────────────────────────────────────────────────────────


def prepare_pdf_with_sig_field(
    pdf_bytes: bytes,
    page: int | str = "last",
    x: float | None = None,
    y: float | None = None,
    w: float = SIG_WIDTH,
    h: float = SIG_HEIGHT,
    position: str = "bottom-right",
    reason: str = DEFAULT_SIGNATURE_REASON,
    name: str | None = None,
    location: str | None = None,
    contact_info: str | None = None,
    field_name: str | None = None,
    visible: bool = True,
    signature_size: int = DEFAULT_SIGNATURE_SIZE,
    signing_time: datetime | None = None,
) -> PreparedPdf:
    """
    Prepare a PDF with an empty signature field for hash-then-sign.

    Uses a true incremental update: the original PDF bytes are preserved
    exactly, and new objects are appended after the original %%EOF.

    Position can be set in two ways:
    - **Preset** (default): use ``position`` name like "bottom-right" or alias "br".
    - **Manual**: pass explicit ``x`` and ``y`` (PDF points, origin bottom-left).

    Args:
        pdf_bytes: Raw PDF content.
        page: Page for the signature -- 0-based int, "first", or "last".
        w, h: Widget size in PDF points.
        reason, name, location, contact_info: Signature dictionary entries.
        field_name: AcroForm field name; defaults to ``Signature_N``.
        visible: If False, the widget gets ``/Rect [0 0 0 0]`` and no /AP.
        signature_size: Bytes reserved for the CMS (hex placeholder is twice that).
        signing_time: Value for /M; defaults to now.

    Returns:
        PreparedPdf with the final ByteRange and the location of the
        zeroed /Contents hex.

    Raises:
        PdfStructureError: Malformed input, bad page, or unplaceable widget.
    """
    pikepdf = require_pikepdf()

    # ── Read-only analysis of the original PDF ──────────────────
    root_obj_num, root_gen = find_root_obj_num(pdf_bytes)
    prev_xref, prev_size, trailer_extra = find_prev_startxref(pdf_bytes)
    obj_nums = allocate_sig_objects(prev_size, visible=visible)

    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            page_idx = resolve_page_index(pdf, page)
            page_obj = pdf.pages[page_idx].obj
            page_num, page_gen = page_obj.objgen
            catalog = pdf.Root
            acroform = catalog.get("/AcroForm")
            sig_field_name = _unique_field_name(acroform, field_name)

            rect: tuple[float, float, float, float] | None = None
            if visible:
                if x is None or y is None:
                    page_w, page_h = get_page_dimensions(pdf, page_idx)
                    x, y, w, h = compute_sig_rect(page_w, page_h, position, w, h)
                rect = (x, y, x + w, y + h)

            page_override = build_page_override(page_obj, obj_nums["annot"])
            acroform_override = build_acroform_override(catalog, obj_nums["annot"])
            if acroform is not None and acroform.is_indirect:
                acroform_num, acroform_gen = acroform.objgen
            else:
                acroform_num, acroform_gen = catalog.objgen
    except pikepdf.PdfError as e:
        raise PdfStructureError(f"Cannot read PDF structure: {e}") from e

    if page_num == 0:
        raise PdfStructureError("Target page is not an indirect object; cannot update it.")

    hex_len = signature_size * 2
    sig_dict_raw = build_sig_dict(
        obj_nums["sig"],
        hex_len=hex_len,
        reason=reason,
        name=name,
        location=location,
        contact_info=contact_info,
        signing_time=signing_time,
    )
    annot_raw = build_annot_widget(
        obj_nums,
        page_ref=f"{page_num} {page_gen} R",
        field_name=sig_field_name,
        rect=rect,
    )

    # Children first, parents last
    raw_objects: list[tuple[bytes, int, int]] = [
        (_to_bytes(sig_dict_raw), obj_nums["sig"], 0),
    ]
    ap_num = obj_nums["ap"]
    if ap_num is not None and rect is not None:
        raw_objects.append((build_blank_appearance(ap_num, w, h), ap_num, 0))
    raw_objects.append((_to_bytes(annot_raw), obj_nums["annot"], 0))
    raw_objects.append((_to_bytes(page_override), page_num, page_gen))
    raw_objects.append((_to_bytes(acroform_override), acroform_num, acroform_gen))

    full_pdf = assemble_incremental_update(
        pdf_bytes,
        raw_objects,
        obj_nums["new_size"],
        prev_xref,
        root_obj_num,
        root_gen,
        trailer_extra,
    )
    original_len = len(pdf_bytes) + (0 if pdf_bytes.endswith(b"\n") else 1)
    patched = patch_byterange(full_pdf, original_len, hex_len)
    _logger.debug(
        "Prepared field %r on page %d: ByteRange %s, %d hex chars reserved",
        sig_field_name,
        page_idx + 1,
        list(patched.byte_range),
        hex_len,
    )
    return PreparedPdf(
        patched.pdf, patched.byte_range, patched.hex_start, patched.hex_len, sig_field_name
    )


# ── Digest and CMS insertion ─────────────────────────────────────────


def signed_content(pdf_bytes: bytes, byte_range: tuple[int, ...] | list[int]) -> bytes:
    """Concatenate the two byte ranges covered by a signature.

    Raises:
        PdfStructureError: If the ByteRange is malformed or out of bounds.
    """
    if len(byte_range) != 4:
        raise PdfStructureError(f"ByteRange must have 4 entries, got {len(byte_range)}")
    off1, len1, off2, len2 = (int(v) for v in byte_range)
    if min(off1, len1, off2, len2) < 0 or off1 + len1 > off2:
        raise PdfStructureError(f"Invalid ByteRange: {list(byte_range)}")
    if off2 + len2 > len(pdf_bytes):
        raise PdfStructureError(
            f"ByteRange {list(byte_range)} exceeds PDF size ({len(pdf_bytes)} bytes)"
        )
    return pdf_bytes[off1 : off1 + len1] + pdf_bytes[off2 : off2 + len2]


def compute_byterange_hash(pdf_bytes: bytes, byte_range: tuple[int, ...] | list[int]) -> bytes:
    """SHA-256 of the ByteRange (everything except the Contents string)."""
    return hashlib.sha256(signed_content(pdf_bytes, byte_range)).digest()


def insert_cms(pdf_bytes: bytes, hex_start: int, hex_len: int, cms_der: bytes) -> bytes:
    """Insert the CMS DER bytes as uppercase hex into the reserved Contents.

    The hex is zero-padded on the right; the file length never changes.

    Raises:
        PlaceholderTooSmall: If the DER does not fit the placeholder.
        PdfStructureError: If ``hex_start`` does not point into a ``<...>`` string.
    """
    cms_hex = cms_der.hex().upper()
    if len(cms_hex) > hex_len:
        raise PlaceholderTooSmall(required=len(cms_der), available=hex_len // 2)
    if pdf_bytes[hex_start - 1 : hex_start] != b"<":
        raise PdfStructureError("Malformed Contents field: expected '<' before hex data")
    if pdf_bytes[hex_start + hex_len : hex_start + hex_len + 1] != b">":
        raise PdfStructureError("Malformed Contents field: expected '>' after hex data")
    cms_hex_padded = cms_hex + "0" * (hex_len - len(cms_hex))

    result = bytearray(pdf_bytes)
    result[hex_start : hex_start + hex_len] = cms_hex_padded.encode("ascii")
    return bytes(result)
