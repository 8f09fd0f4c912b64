"""Raw incremental updates.

Reads just enough of the existing file (catalog reference, last xref
offset, trailer entries) to append new and overridden objects after the
final ``%%EOF``, followed by an xref section and trailer that chain back
to the previous revision.  The original bytes are never rewritten.

Object construction is in objects.py; the signing-field flow that drives
this module is in builder.py.
"""

from __future__ import annotations

import io
import itertools
import re
from typing import NamedTuple

from ...errors import PdfStructureError
from .. import require_pikepdf as _require_pikepdf
from .objects import BYTERANGE_PLACEHOLDER

_ROOT_RE = re.compile(rb"/Root\s+(\d+)\s+(\d+)\s+R")
_STARTXREF_RE = re.compile(rb"startxref\s+(\d+)\s+%%EOF")
_TRAILER_RE = re.compile(rb"trailer\s*<<(.*?)>>", re.DOTALL)
_INFO_RE = re.compile(rb"/Info\s+\d+\s+\d+\s+R")
_ID_RE = re.compile(rb"/ID\s*\[.*?\]", re.DOTALL)

# "nnnnnnnnnn ggggg n" + CRLF is exactly 20 bytes
_XREF_ENTRY = "{:010d} {:05d} n\r\n"


class PatchedPdf(NamedTuple):
    """A prepared PDF whose ByteRange is final and whose /Contents is still zeros."""

    pdf: bytes
    byte_range: tuple[int, int, int, int]
    hex_start: int
    hex_len: int


# ── Reading the previous revision ───────────────────────────────────


def find_root_obj_num(pdf_bytes: bytes) -> tuple[int, int]:
    """``(number, generation)`` of the catalog named by the newest trailer."""
    refs = _ROOT_RE.findall(pdf_bytes)
    if not refs:
        raise PdfStructureError("Cannot find /Root reference in PDF trailer.")
    num, gen = refs[-1]
    return int(num), int(gen)


def find_prev_startxref(pdf_bytes: bytes) -> tuple[int, int, list[str]]:
    """
    Where the newest xref section starts, the current /Size, and the
    trailer entries (/Info, /ID) the next trailer has to repeat.

    Raises:
        PdfStructureError: No ``startxref ... %%EOF`` footer, or a file
            pikepdf cannot size.
    """
    footers = _STARTXREF_RE.findall(pdf_bytes)
    if not footers:
        raise PdfStructureError("Cannot find startxref in PDF.")

    # Handles xref streams and hybrid files that a regex over trailers would misread
    pikepdf = _require_pikepdf()
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            size = int(pdf.trailer["/Size"])
    except (pikepdf.PdfError, KeyError) as e:
        raise PdfStructureError(f"Cannot determine /Size from PDF trailer: {e}") from e

    return int(footers[-1]), size, _extract_trailer_entries(pdf_bytes)


def _trailer_entries_from_pikepdf(pdf_bytes: bytes) -> list[str]:
    pikepdf = _require_pikepdf()
    entries: list[str] = []
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        info = pdf.trailer.get("/Info")
        if info is not None and info.is_indirect:
            entries.append("/Info {} {} R".format(*info.objgen))
        doc_id = pdf.trailer.get("/ID")
        if doc_id is not None:
            entries.append("/ID " + doc_id.unparse(resolved=True).decode("latin-1"))
    return entries


def _extract_trailer_entries(pdf_bytes: bytes) -> list[str]:
    """/Info and /ID of the newest trailer, as raw entries.

    Cross-reference-stream files have no ``trailer`` keyword; their
    entries are read through pikepdf instead.
    """
    trailers = _TRAILER_RE.findall(pdf_bytes)
    if trailers:
        body = trailers[-1]
        found = [m.group(0) for m in (_INFO_RE.search(body), _ID_RE.search(body)) if m]
        if found:
            return [raw.decode("latin-1") for raw in found]
    return _trailer_entries_from_pikepdf(pdf_bytes)


# ── Writing the update ──────────────────────────────────────────────


def assemble_incremental_update(
    pdf_bytes: bytes,
    raw_objects: list[tuple[bytes, int, int]],
    new_size: int,
    prev_xref: int,
    root_obj_num: int,
    root_gen: int,
    trailer_extra: list[str],
) -> bytes:
    """Append *raw_objects* plus an xref section and trailer to the file.

    Args:
        raw_objects: ``(raw_bytes, obj_num, gen)`` for every new or
            overridden object, in write order.
    """
    base = pdf_bytes if pdf_bytes.endswith(b"\n") else pdf_bytes + b"\n"
    bodies = [raw for raw, _, _ in raw_objects]
    offsets = itertools.accumulate((len(b) for b in bodies), initial=len(base))
    xref_entries = {
        obj_num: (offset, gen) for (_, obj_num, gen), offset in zip(raw_objects, offsets)
    }
    update = b"".join(bodies)
    tail = build_xref_and_trailer(
        xref_entries=xref_entries,
        new_size=new_size,
        prev_xref=prev_xref,
        root_obj_num=root_obj_num,
        root_gen=root_gen,
        trailer_extra=trailer_extra,
        xref_offset=len(base) + len(update),
    )
    return base + update + tail


def patch_byterange(full_pdf: bytes, original_len: int, hex_len: int) -> PatchedPdf:
    """Write the final ByteRange over its placeholder.

    The covered ranges are everything before ``<`` and everything after
    ``>`` of the zeroed /Contents string, so both delimiters fall in the
    gap as ISO 32000-1 12.8.1 prescribes.  The extractor also accepts
    files written with ``<`` inside the first range.  Each offset is
    written as a zero-padded 10-digit integer.  Only the appended update
    is searched, so placeholders of earlier signatures are never touched.

    Raises:
        PdfStructureError: If either placeholder cannot be found.
    """
    marker = b"/Contents <" + b"0" * hex_len + b">"
    found = full_pdf.find(marker, original_len)
    if found < 0:
        raise PdfStructureError("Cannot find Contents placeholder in prepared PDF.")

    lt_pos = found + len(b"/Contents ")
    after = lt_pos + hex_len + 2
    byte_range = (0, lt_pos, after, len(full_pdf) - after)

    value = ("/ByteRange [" + " ".join(f"{n:010d}" for n in byte_range) + "]").encode("latin-1")
    if len(value) != len(BYTERANGE_PLACEHOLDER):
        raise PdfStructureError(f"ByteRange value does not fit the placeholder: {byte_range}")

    at = full_pdf.find(BYTERANGE_PLACEHOLDER, original_len)
    if at < 0:
        raise PdfStructureError("Cannot find ByteRange placeholder in incremental update.")
    patched = full_pdf[:at] + value + full_pdf[at + len(value) :]

    if patched[lt_pos : lt_pos + 1] != b"<" or patched[after - 1 : after] != b">":
        raise PdfStructureError("Contents placeholder moved while patching ByteRange.")
    return PatchedPdf(patched, byte_range, lt_pos + 1, hex_len)


def build_xref_and_trailer(
    xref_entries: dict[int, tuple[int, int]],
    new_size: int,
    prev_xref: int,
    root_obj_num: int,
    root_gen: int,
    trailer_extra: list[str],
    xref_offset: int,
) -> bytes:
    """
    Xref section, trailer, ``startxref`` and ``%%EOF`` for an update.

    Consecutive object numbers share one subsection.

    Args:
        xref_entries: Object number -> (byte offset, generation).
        new_size: /Size of the new trailer.
        prev_xref: /Prev, the offset of the previous xref section.
        trailer_extra: Raw entries carried over (/Info, /ID).
        xref_offset: Byte offset this section will be written at.
    """
    if not xref_entries:
        raise PdfStructureError("Cannot build xref table: no objects to reference.")

    out = ["xref\n"]
    numbered = enumerate(sorted(xref_entries))
    for _, run in itertools.groupby(numbered, key=lambda pair: pair[1] - pair[0]):
        nums = [num for _, num in run]
        out.append(f"{nums[0]} {len(nums)}\n")
        out.extend(_XREF_ENTRY.format(*xref_entries[num]) for num in nums)

    trailer = [f"/Size {new_size}", f"/Prev {prev_xref}", f"/Root {root_obj_num} {root_gen} R"]
    trailer.extend(trailer_extra)
    out.append("trailer\n<<\n")
    out.extend(f"  {entry}\n" for entry in trailer)
    out.append(f">>\nstartxref\n{xref_offset}\n%%EOF\n")
    return "".join(out).encode("latin-1")
