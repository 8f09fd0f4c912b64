"""ASN.1/DER framing helpers for CMS blobs stored in zero-padded /Contents."""

from __future__ import annotations

# ASN.1 SEQUENCE tag -- first byte of any valid CMS/PKCS#7 blob
ASN1_SEQUENCE_TAG = 0x30

# 16 MB; protects against malformed length fields claiming absurd sizes
_MAX_DER_BYTES = 16 * 1024 * 1024

# Minimum plausible CMS blob size in bytes (header + basic content)
MIN_CMS_SIZE = 100


def der_length(data: bytes) -> int:
    """Total length (header + content) of the DER SEQUENCE at the start of *data*.

    Raises:
        ValueError: If the header is not a definite-length SEQUENCE or
            claims more bytes than are available.
    """
    if len(data) < 2:
        raise ValueError("Data too short for ASN.1 TLV header")
    if data[0] != ASN1_SEQUENCE_TAG:
        raise ValueError(f"Expected ASN.1 SEQUENCE (0x30), got 0x{data[0]:02x}")

    length_byte = data[1]
    header = 2
    if length_byte < 0x80:
        content_len = length_byte
    elif length_byte == 0x80:
        raise ValueError("Indefinite length encoding is not valid in DER")
    else:
        num_len_bytes = length_byte & 0x7F
        if num_len_bytes > 4:
            raise ValueError(f"ASN.1 length field too large: {num_len_bytes} bytes")
        if len(data) < 2 + num_len_bytes:
            raise ValueError("Data too short for ASN.1 length field")
        header += num_len_bytes
        content_len = int.from_bytes(data[2:header], "big")

    total = header + content_len
    if total > _MAX_DER_BYTES:
        raise ValueError(f"ASN.1 claims {total} bytes, exceeds maximum ({_MAX_DER_BYTES} bytes)")
    if total > len(data):
        raise ValueError(
            f"ASN.1 length ({total} bytes) exceeds available data ({len(data)} bytes)"
        )
    return total


def strip_der_padding(data: bytes) -> bytes:
    """Cut trailing placeholder zeros using the DER length, not ``rstrip``.

    ``rstrip(b"\\0")`` would corrupt blobs that legitimately end in 0x00.
    """
    return data[: der_length(data)]


def extract_der_from_padded_hex(hex_str: str) -> bytes:
    """Exact DER blob from a zero-padded hex string.

    Raises:
        ValueError: If the hex is invalid or the ASN.1 header is malformed.
    """
    cleaned = "".join(hex_str.split())
    if len(cleaned) % 2:
        cleaned += "0"
    return strip_der_padding(bytes.fromhex(cleaned))
