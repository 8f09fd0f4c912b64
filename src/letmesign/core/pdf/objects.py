"""Raw PDF objects for a signature update.

Builds the text of every object a signing revision appends: the
signature value dictionary, the widget annotation that is also the
AcroForm field, its blank appearance stream, and overridden copies of
the page, catalog and AcroForm.  Where they go in the file is decided by
incremental.py; builder.py drives both.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, TypedDict

from ...constants import __version__
from .. import require_pikepdf as _require_pikepdf

if TYPE_CHECKING:
    from collections.abc import Iterable

    import pikepdf

_logger = logging.getLogger(__name__)


class SigObjectNums(TypedDict):
    """New object numbers for one signature; ``ap`` is None when invisible."""

    sig: int
    annot: int
    ap: int | None
    new_size: int


# ── Constants ────────────────────────────────────────────────────────

# Four zero-padded 10-digit slots, overwritten in place once offsets are known
BYTERANGE_PLACEHOLDER = b"/ByteRange [" + b" ".join([b"%010d" % 0] * 4) + b"]"
BYTERANGE_PLACEHOLDER_STR = BYTERANGE_PLACEHOLDER.decode("ascii")

# Widget /F: Print (bit 3) | Locked (bit 8)
ANNOT_FLAGS_SIG_WIDGET = (1 << 2) | (1 << 7)

# AcroForm /SigFlags: SignaturesExist | AppendOnly
SIG_FLAGS = 3

_ESCAPES = {
    ord("\\"): "\\\\",
    ord("("): "\\(",
    ord(")"): "\\)",
    ord("\n"): "\\n",
    ord("\r"): "\\r",
    ord("\t"): "\\t",
}
_ESCAPES.update({code: f"\\{code:03o}" for code in [*range(0x20), 0x7F] if code not in _ESCAPES})


# ── Literal strings and dates ────────────────────────────────────────


def pdf_string(text: str) -> str:
    """Body of a PDF literal string ``(...)`` holding *text*.

    Delimiters and control characters are escaped.  Characters outside
    Latin-1 cannot be written in PDFDocEncoding and become ``?``; that
    loss is logged as a warning.
    """
    lossy = sum(1 for char in text if ord(char) > 0xFF)
    if lossy:
        _logger.warning(
            "pdf_string: %d non-Latin1 character(s) replaced with '?' in: %r", lossy, text
        )
        text = "".join(char if ord(char) <= 0xFF else "?" for char in text)
    return text.translate(_ESCAPES)


def format_pdf_date(dt: datetime | None = None) -> str:
    """``D:YYYYMMDDHHmmSS+00'00'`` for *dt* (default now), always in UTC."""
    moment = dt or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("D:%Y%m%d%H%M%S+00'00'")


def serialize_object(obj: None | bool | int | float | pikepdf.Object) -> str:
    """PDF syntax for a value copied into a rewritten dictionary.

    Indirect objects stay ``N G R`` references, including ones nested in
    direct arrays and dictionaries.
    """
    if obj is None:
        return "null"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, float):
        return f"{obj:.6f}".rstrip("0").rstrip(".") or "0"
    pikepdf = _require_pikepdf()
    if isinstance(obj, pikepdf.Object) and obj.is_indirect:
        num, gen = obj.objgen
        return f"{num} {gen} R"
    return obj.unparse(resolved=False).decode("latin-1")


def _dict_entries(obj: pikepdf.Dictionary, skip_keys: Iterable[str]) -> list[str]:
    skip = set(skip_keys)
    # Iterating a pikepdf.Dictionary yields values
    return [f"  {key} {serialize_object(obj[key])}" for key in obj.keys() if key not in skip]


def _wrap_object(obj_num: int, gen: int, entries: list[str]) -> str:
    body = "\n".join(entries)
    return f"{obj_num} {gen} obj\n<<\n{body}\n>>\nendobj\n"


# ── Object override builders ─────────────────────────────────────────


def build_object_override(
    obj: pikepdf.Dictionary,
    skip_keys: Iterable[str],
    new_entries: list[str],
) -> str:
    """Build a raw override of an indirect dictionary with replaced entries.

    Args:
        obj: The existing indirect object, read from an open pikepdf.Pdf.
        skip_keys: Keys to omit from the original object (e.g. ``"/Annots"``).
        new_entries: Entries to append (e.g. ``"  /Annots [5 0 R]"``).

    Returns:
        str -- Raw PDF object definition reusing the object's number and
        generation.
    """
    obj_num, gen = obj.objgen
    return _wrap_object(obj_num, gen, _dict_entries(obj, skip_keys) + new_entries)


def build_page_override(page_obj: pikepdf.Dictionary, annot_obj_num: int) -> str:
    """Build a raw override of the page object with the widget appended to /Annots."""
    refs: list[str] = []
    annots = page_obj.get("/Annots")
    if annots is not None:
        refs.extend(serialize_object(annots[i]) for i in range(len(annots)))
    refs.append(f"{annot_obj_num} 0 R")
    return build_object_override(
        page_obj,
        skip_keys=("/Annots",),
        new_entries=[f"  /Annots [{' '.join(refs)}]"],
    )


def build_acroform_entries(acroform: pikepdf.Dictionary | None, annot_obj_num: int) -> list[str]:
    """AcroForm entries with the new field appended and /SigFlags set.

    Existing fields and every other AcroForm entry (/DR, /DA, ...) are kept.
    """
    fields: list[str] = []
    entries: list[str] = []
    if acroform is not None:
        existing = acroform.get("/Fields")
        if existing is not None:
            fields.extend(serialize_object(existing[i]) for i in range(len(existing)))
        entries = _dict_entries(acroform, ("/Fields", "/SigFlags"))
    fields.append(f"{annot_obj_num} 0 R")
    entries.append(f"  /Fields [{' '.join(fields)}]")
    entries.append(f"  /SigFlags {SIG_FLAGS}")
    return entries


def build_acroform_override(catalog: pikepdf.Dictionary, annot_obj_num: int) -> str:
    """Raw object registering the new field in the document's AcroForm.

    An indirect /AcroForm is overridden in place; otherwise the catalog is
    overridden with a direct, merged /AcroForm dictionary.
    """
    acroform = catalog.get("/AcroForm")
    if acroform is not None and acroform.is_indirect:
        return build_object_override(
            acroform,
            skip_keys=("/Fields", "/SigFlags"),
            new_entries=build_acroform_entries(acroform, annot_obj_num)[-2:],
        )
    merged = "\n".join("  " + e for e in build_acroform_entries(acroform, annot_obj_num))
    return build_object_override(
        catalog,
        skip_keys=("/AcroForm",),
        new_entries=[f"  /AcroForm <<\n{merged}\n  >>"],
    )


# ── New signature objects ────────────────────────────────────────────


def build_sig_dict(
    obj_num: int,
    *,
    hex_len: int,
    reason: str,
    name: str | None,
    location: str | None,
    contact_info: str | None,
    signing_time: datetime | None = None,
) -> str:
    """Build the /Type /Sig dictionary object with ByteRange and Contents placeholders."""
    contents_zeros = "0" * hex_len
    optional = [
        ("/Name", name),
        ("/Location", location),
        ("/ContactInfo", contact_info),
    ]
    optional_entries = "".join(
        f"  {key} ({pdf_string(value)})\n" for key, value in optional if value
    )
    prop_build = (
        f"  /Prop_Build << /App << /Name /Letmesign /REx ({__version__}) >> "
        f"/Filter << /Name /Adobe.PPKLite >> >>\n"
    )
    return (
        f"{obj_num} 0 obj\n"
        f"<<\n"
        f"  /Type /Sig\n"
        f"  /Filter /Adobe.PPKLite\n"
        f"  /SubFilter /adbe.pkcs7.detached\n"
        f"  {BYTERANGE_PLACEHOLDER_STR}\n"
        f"  /Contents <{contents_zeros}>\n"
        f"  /M ({format_pdf_date(signing_time)})\n"
        f"  /Reason ({pdf_string(reason)})\n"
        f"{optional_entries}"
        f"{prop_build}"
        f">>\n"
        f"endobj\n"
    )


def build_annot_widget(
    obj_nums: SigObjectNums,
    *,
    page_ref: str,
    field_name: str,
    rect: tuple[float, float, float, float] | None,
) -> str:
    """Merged field/widget dictionary for the signature.

    Args:
        page_ref: Raw reference to the hosting page (``"N G R"``).
        rect: (x1, y1, x2, y2) in PDF points; None for an invisible signature.
    """
    if rect is None or obj_nums["ap"] is None:
        rect_str = "0 0 0 0"
        ap_entry = ""
    else:
        rect_str = " ".join(f"{v:.2f}" for v in rect)
        ap_entry = f"  /AP << /N {obj_nums['ap']} 0 R >>\n"
    return (
        f"{obj_nums['annot']} 0 obj\n"
        f"<<\n"
        f"  /Type /Annot\n"
        f"  /Subtype /Widget\n"
        f"  /FT /Sig\n"
        f"  /T ({pdf_string(field_name)})\n"
        f"  /V {obj_nums['sig']} 0 R\n"
        f"  /Rect [{rect_str}]\n"
        f"  /P {page_ref}\n"
        f"  /F {ANNOT_FLAGS_SIG_WIDGET}\n"
        f"{ap_entry}"
        f">>\n"
        f"endobj\n"
    )


def build_blank_appearance(obj_num: int, width: float, height: float) -> bytes:
    """Empty form XObject used as the widget's normal appearance.

    The visible signature itself is already part of the page content.
    """
    content = b"% blank\n"
    header = (
        f"{obj_num} 0 obj\n"
        f"<< /Type /XObject /Subtype /Form /BBox [0 0 {width:.2f} {height:.2f}] "
        f"/Resources << >> /Length {len(content)} >>\n"
        f"stream\n"
    ).encode("latin-1")
    return header + content + b"\nendstream\nendobj\n"


# ── Object number allocation ────────────────────────────────────────


def allocate_sig_objects(prev_size: int, visible: bool = True) -> SigObjectNums:
    """Allocate object numbers for the new signature objects.

    The sig dict and widget are always allocated; the blank appearance
    stream only for visible signatures.
    """
    sig_obj_num = prev_size
    annot_obj_num = prev_size + 1
    ap_obj_num = prev_size + 2 if visible else None
    return {
        "sig": sig_obj_num,
        "annot": annot_obj_num,
        "ap": ap_obj_num,
        "new_size": prev_size + (3 if visible else 2),
    }
