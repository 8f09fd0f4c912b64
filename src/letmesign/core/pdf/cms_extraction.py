"""ByteRange and CMS extraction from signed PDFs."""

from __future__ import annotations

import re
from typing import NamedTuple

from ...errors import PdfStructureError
from .asn1 import extract_der_from_padded_hex

# Regex pattern to find ByteRange arrays in PDF
BYTERANGE_PATTERN = rb"/ByteRange\s*\[\s*(\d+)\s+(\d+)\s+(\d+)\s+(\d+)\s*\]"


class SignatureData(NamedTuple):
    """The bytes a signature covers and its CMS container."""

    byte_range: tuple[int, int, int, int]
    signed_data: bytes
    cms_der: bytes


def validate_byterange(pdf_bytes: bytes, byte_range: tuple[int, int, int, int]) -> None:
    """Check the ``[0 len1 off2 len2]`` shape against the file size.

    Raises:
        PdfStructureError: If any bound is violated.
    """
    off1, len1, off2, len2 = byte_range
    if off1 != 0:
        raise PdfStructureError(f"ByteRange offset1 should be 0, got {off1}")
    if len1 <= 0:
        raise PdfStructureError(f"Invalid ByteRange: len1 must be positive, got {len1}")
    if off2 <= len1:
        raise PdfStructureError(f"ByteRange offset2 ({off2}) <= len1 ({len1})")
    if off2 + len2 > len(pdf_bytes):
        raise PdfStructureError(
            f"ByteRange extends beyond EOF: {off2}+{len2} > {len(pdf_bytes)}"
        )


def extract_cms_from_byterange(pdf_bytes: bytes, len1: int, off2: int) -> bytes:
    """
    Extract the CMS DER blob from the gap between the two ByteRange chunks.

    The gap normally holds the whole ``<hex>`` string; a gap that starts
    after ``<`` (delimiter counted in the first chunk) is accepted too.

    Raises:
        PdfStructureError: If the CMS blob cannot be located or parsed.
    """
    if len1 <= 0 or off2 <= len1 or off2 > len(pdf_bytes):
        raise PdfStructureError(
            f"Invalid ByteRange gap: len1={len1}, off2={off2}, pdf_size={len(pdf_bytes)}"
        )

    gap = pdf_bytes[len1:off2]
    if gap.startswith(b"<"):
        gap = gap[1:]
    elif pdf_bytes[len1 - 1 : len1] != b"<":
        raise PdfStructureError(f"Expected '<' at offset {len1}, got {gap[:1]!r}")
    if not gap.endswith(b">"):
        raise PdfStructureError(f"Expected '>' at offset {off2 - 1}, got {gap[-1:]!r}")

    try:
        return extract_der_from_padded_hex(gap[:-1].decode("ascii"))
    except (UnicodeDecodeError, ValueError) as e:
        raise PdfStructureError(f"Invalid hex in CMS blob: {e}") from e


def extract_cms_from_byterange_match(pdf_bytes: bytes, br_match: re.Match[bytes]) -> bytes:
    """CMS DER blob for a regex match of BYTERANGE_PATTERN."""
    return extract_cms_from_byterange(pdf_bytes, int(br_match.group(2)), int(br_match.group(3)))


def extract_signature_data_from_match(
    pdf_bytes: bytes, br_match: re.Match[bytes]
) -> SignatureData:
    """Extract ByteRange data and CMS blob from a specific ByteRange match.

    Raises:
        PdfStructureError: If the ByteRange is invalid or CMS extraction fails.
    """
    byte_range = (
        int(br_match.group(1)),
        int(br_match.group(2)),
        int(br_match.group(3)),
        int(br_match.group(4)),
    )
    validate_byterange(pdf_bytes, byte_range)
    _, len1, off2, len2 = byte_range
    signed_data = pdf_bytes[:len1] + pdf_bytes[off2 : off2 + len2]
    cms_der = extract_cms_from_byterange(pdf_bytes, len1, off2)
    return SignatureData(byte_range, signed_data, cms_der)


def find_byterange_matches(pdf_bytes: bytes) -> list[re.Match[bytes]]:
    """Every ``/ByteRange [...]`` array in file order."""
    return list(re.finditer(BYTERANGE_PATTERN, pdf_bytes))


def extract_signature_data(pdf_bytes: bytes) -> SignatureData:
    """
    ByteRange data and CMS blob of the last signature in a signed PDF.

    Raises:
        PdfStructureError: If the PDF has no valid embedded signature.
    """
    br_matches = find_byterange_matches(pdf_bytes)
    if not br_matches:
        raise PdfStructureError("No /ByteRange found in PDF -- not a signed PDF?")
    return extract_signature_data_from_match(pdf_bytes, br_matches[-1])
