# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""Read-only accessors for a CMS SignedData and its first SignerInfo."""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from asn1crypto import cms as asn1_cms

_logger = logging.getLogger(__name__)

OID_MESSAGE_DIGEST = "1.2.840.113549.1.9.4"
OID_SIGNING_TIME = "1.2.840.113549.1.9.5"

# PKCS#1 signature algorithms that some signers write where a plain
# digest algorithm belongs, by asn1crypto name and by OID
_RSA_SIGNATURE_DIGESTS = {
    "sha1": ("sha1_rsa", "1.2.840.113549.1.1.5"),
    "sha256": ("sha256_rsa", "1.2.840.113549.1.1.11"),
    "sha384": ("sha384_rsa", "1.2.840.113549.1.1.12"),
    "sha512": ("sha512_rsa", "1.2.840.113549.1.1.13"),
}
_DIGEST_ALIASES = {
    alias: digest for digest, aliases in _RSA_SIGNATURE_DIGESTS.items() for alias in aliases
}


def signer_digest_algorithm(signer_info: asn1_cms.SignerInfo) -> str | None:
    """hashlib name of the SignerInfo's digest algorithm, or None if unknown."""
    algorithm = signer_info["digest_algorithm"]["algorithm"]
    for candidate in (algorithm.native, algorithm.dotted):
        if candidate in hashlib.algorithms_available:
            return candidate
        if candidate in _DIGEST_ALIASES:
            return _DIGEST_ALIASES[candidate]
    return None


def signed_attribute(signer_info: asn1_cms.SignerInfo, oid: str) -> Any:
    """Native first value of the signed attribute *oid*, or None."""
    for attr in signer_info["signed_attrs"] or ():
        if attr["type"].dotted == oid:
            values = attr["values"]
            return values[0].native if len(values) else None
    return None


def load_signed_data(cms_der: bytes) -> asn1_cms.SignedData:
    """SignedData of a ContentInfo blob.

    Raises:
        ValueError: Not signed-data, or no SignerInfo.
    """
    content_info = asn1_cms.ContentInfo.load(cms_der)
    content_type = content_info["content_type"].native
    if content_type != "signed_data":
        raise ValueError(f"Unexpected CMS content type: {content_type}")
    signed_data = content_info["content"]
    if not len(signed_data["signer_infos"]):
        raise ValueError("CMS SignedData has no SignerInfo")
    return signed_data


def extract_digest_info(cms_der: bytes) -> tuple[str, bytes] | None:
    """``(hashlib name, messageDigest)`` of the first signer, or None.

    Used as a post-signing self check, so parse problems are logged at
    debug level and reported as None rather than raised.
    """
    try:
        signer_info = load_signed_data(cms_der)["signer_infos"][0]
        algo = signer_digest_algorithm(signer_info)
        digest = signed_attribute(signer_info, OID_MESSAGE_DIGEST)
    except (ValueError, TypeError, KeyError, IndexError):
        _logger.debug("Could not extract digest info from CMS", exc_info=True)
        return None
    if algo is None or digest is None:
        _logger.debug("CMS lacks a usable digest algorithm or messageDigest")
        return None
    return algo, digest
