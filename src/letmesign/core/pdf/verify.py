# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Verification of embedded PDF signatures.

For every signature field: recompute the ByteRange digest, check it
against the CMS messageDigest, verify the signer's signature over the
signed attributes, rebuild the certificate chain from the embedded
certificates, and look for a trust anchor.  Every problem is reported in
the per-signature result; nothing is raised to the caller.
"""

from __future__ import annotations

__all__ = ["SignatureVerification", "build_chain", "find_trust_anchor", "verify_pdf_signatures"]

import hashlib
import io
import logging
from typing import TYPE_CHECKING, NamedTuple, TypedDict

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.x509.oid import NameOID

from ...errors import LetmesignError, VerificationError, VerificationErrorKind
from .. import require_pikepdf as _require_pikepdf
from .builder import iter_form_fields, signed_content
from .cms_extraction import extract_cms_from_byterange, find_byterange_matches, validate_byterange
from .cms_info import (
    OID_MESSAGE_DIGEST,
    OID_SIGNING_TIME,
    load_signed_data,
    signed_attribute,
    signer_digest_algorithm,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    import pikepdf
    from asn1crypto import cms as asn1_cms

    from ..ca import TrustAnchor

_logger = logging.getLogger(__name__)

# Longest issuer chain followed from the signer certificate
_MAX_CHAIN_LENGTH = 10

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


class SignatureVerification(TypedDict):
    """Verification result for one signature."""

    field_name: str | None
    signer_name: str | None
    signer_email: str | None
    signing_time: datetime | None
    reason: str | None
    location: str | None
    issuer: str | None
    issuer_name: str | None
    subject: str | None
    serial: str | None
    not_before: datetime | None
    not_after: datetime | None
    chain_length: int
    digest_algorithm: str | None
    is_valid: bool
    is_trusted: bool
    trusted_anchor_name: str | None
    errors: list[VerificationErrorKind]
    details: list[str]


class _SignatureSource(NamedTuple):
    field_name: str | None
    byte_range: tuple[int, int, int, int] | None
    reason: str | None
    location: str | None
    signed_at: datetime | None


# ── Locating signatures ──────────────────────────────────────────────


def _optional_text(obj: pikepdf.Dictionary, key: str) -> str | None:
    value = obj.get(key)
    return str(value) if value is not None else None


def _source_from_field(fld: pikepdf.Dictionary, sig: pikepdf.Dictionary) -> _SignatureSource:
    from ..cert_info import parse_pdf_date

    pikepdf = _require_pikepdf()
    byte_range = None
    raw = sig.get("/ByteRange")
    # Anything but a four-element array is left as None and reported as a parse failure
    if isinstance(raw, pikepdf.Array) and len(raw) == 4:
        try:
            byte_range = (int(raw[0]), int(raw[1]), int(raw[2]), int(raw[3]))
        except (TypeError, ValueError):
            byte_range = None
    return _SignatureSource(
        field_name=_optional_text(fld, "/T"),
        byte_range=byte_range,
        reason=_optional_text(sig, "/Reason"),
        location=_optional_text(sig, "/Location"),
        signed_at=parse_pdf_date(_optional_text(sig, "/M")),
    )


def _collect_from_acroform(pdf_bytes: bytes) -> list[_SignatureSource] | None:
    """Signature sources from the AcroForm, or None if pikepdf cannot read the file."""
    pikepdf = _require_pikepdf()
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            acroform = pdf.Root.get("/AcroForm")
            if acroform is None:
                return []
            sources: list[_SignatureSource] = []
            for fld in iter_form_fields(acroform.get("/Fields")):
                if fld.get("/FT") != "/Sig":
                    continue
                sig = fld.get("/V")
                if sig is None:
                    _logger.debug("Skipping unsigned signature field %s", fld.get("/T"))
                    continue
                sources.append(_source_from_field(fld, sig))
            return sources
    except (ValueError, RuntimeError, OSError, pikepdf.PdfError) as e:
        _logger.warning("pikepdf structural check failed, scanning raw ByteRange arrays: %s", e)
        return None


def _collect_from_raw_bytes(pdf_bytes: bytes) -> list[_SignatureSource]:
    return [
        _SignatureSource(
            field_name=None,
            byte_range=(int(m.group(1)), int(m.group(2)), int(m.group(3)), int(m.group(4))),
            reason=None,
            location=None,
            signed_at=None,
        )
        for m in find_byterange_matches(pdf_bytes)
    ]


# ── Chain and trust ──────────────────────────────────────────────────


def _common_name(name: x509.Name) -> str | None:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else None


def build_chain(
    leaf: x509.Certificate, pool: list[x509.Certificate]
) -> tuple[list[x509.Certificate], list[str]]:
    """
    Follow issuer links from *leaf* through *pool*.

    Each link is accepted only if the child verifies as directly issued
    by the parent.  Returns the chain (leaf first) and any link problems.
    """
    chain = [leaf]
    problems: list[str] = []
    current = leaf
    while current.issuer != current.subject and len(chain) < _MAX_CHAIN_LENGTH:
        parent = next((c for c in pool if c.subject == current.issuer and c not in chain), None)
        if parent is None:
            break
        try:
            current.verify_directly_issued_by(parent)
        except (ValueError, TypeError, InvalidSignature) as e:
            problems.append(f"Chain link to {parent.subject.rfc4514_string()} is broken: {e!r}")
            break
        chain.append(parent)
        current = parent
    return chain, problems


def find_trust_anchor(
    chain: list[x509.Certificate], anchors: Iterable[TrustAnchor]
) -> str | None:
    """Name of the anchor that makes *chain* trusted, or None.

    A chain is trusted when one of its certificates is an anchor, or when
    its top certificate verifies as directly issued by an anchor.
    """
    anchors = list(anchors)
    fingerprints = {c.fingerprint(hashes.SHA256()) for c in chain}
    for anchor in anchors:
        if anchor.certificate.fingerprint(hashes.SHA256()) in fingerprints:
            return anchor.name
    top = chain[-1]
    for anchor in anchors:
        if top.issuer != anchor.certificate.subject:
            continue
        try:
            top.verify_directly_issued_by(anchor.certificate)
        except (ValueError, TypeError, InvalidSignature):
            continue
        return anchor.name
    return None


# ── Per-signature checks ─────────────────────────────────────────────


def _blank_result(source: _SignatureSource) -> SignatureVerification:
    return {
        "field_name": source.field_name,
        "signer_name": None,
        "signer_email": None,
        "signing_time": source.signed_at,
        "reason": source.reason,
        "location": source.location,
        "issuer": None,
        "issuer_name": None,
        "subject": None,
        "serial": None,
        "not_before": None,
        "not_after": None,
        "chain_length": 0,
        "digest_algorithm": None,
        "is_valid": False,
        "is_trusted": False,
        "trusted_anchor_name": None,
        "errors": [],
        "details": [],
    }


def _verify_signer_signature(
    cert: x509.Certificate, signer_info: asn1_cms.SignerInfo, data: bytes, hash_name: str
) -> None:
    """Check the SignerInfo signature over *data* with the signer's public key."""
    public_key = cert.public_key()
    signature = signer_info["signature"].native
    sig_algo = signer_info["signature_algorithm"]["algorithm"].native
    hash_alg = _HASHES[hash_name]()
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            if sig_algo == "rsassa_pss":
                pad: padding.AsymmetricPadding = padding.PSS(
                    mgf=padding.MGF1(hash_alg), salt_length=padding.PSS.AUTO
                )
            else:
                pad = padding.PKCS1v15()
            public_key.verify(signature, data, pad, hash_alg)
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, data, ec.ECDSA(hash_alg))
        else:
            raise VerificationError(
                f"Unsupported signer key type: {type(public_key).__name__}",
                kind=VerificationErrorKind.INVALID_SIGNATURE,
            )
    except InvalidSignature as e:
        raise VerificationError(
            "Signature value does not verify with the signer certificate",
            kind=VerificationErrorKind.INVALID_SIGNATURE,
        ) from e


def _check_signature(
    pdf_bytes: bytes,
    source: _SignatureSource,
    anchors: list[TrustAnchor],
    result: SignatureVerification,
) -> None:
    """Fill *result* in place; raises VerificationError on the first fatal problem."""
    from ..cert_info import extract_cert_info_from_x509, signer_certificate

    details = result["details"]
    if source.byte_range is None:
        raise VerificationError("Signature dictionary has no usable /ByteRange")

    # ── 1. Locate bytes and CMS ──────────────────────────────────
    try:
        validate_byterange(pdf_bytes, source.byte_range)
        content = signed_content(pdf_bytes, source.byte_range)
        cms_der = extract_cms_from_byterange(pdf_bytes, source.byte_range[1], source.byte_range[2])
        signed_data = load_signed_data(cms_der)
        signer_info = signed_data["signer_infos"][0]
        signer_asn1 = signer_certificate(signed_data)
        pool = [
            x509.load_der_x509_certificate(c.chosen.dump())
            for c in (signed_data["certificates"] or [])
            if c.name == "certificate"
        ]
    except (LetmesignError, ValueError, TypeError, KeyError) as e:
        raise VerificationError(f"Cannot parse signature: {e}") from e
    if signer_asn1 is None:
        raise VerificationError("CMS carries no signer certificate")
    signer_cert = x509.load_der_x509_certificate(signer_asn1.dump())
    details.append(f"ByteRange OK -- signed data: {len(content)} bytes, CMS: {len(cms_der)} bytes")

    # ── 2. Signer metadata ───────────────────────────────────────
    info = extract_cert_info_from_x509(signer_cert)
    result.update(
        signer_name=info["name"],
        signer_email=info["email"],
        issuer=info["issuer"],
        issuer_name=_common_name(signer_cert.issuer),
        subject=info["subject"],
        serial=info["serial"],
        not_before=info["not_before"],
        not_after=info["not_after"],
    )
    signing_time = signed_attribute(signer_info, OID_SIGNING_TIME)
    if signing_time is not None:
        result["signing_time"] = signing_time

    # ── 3. Digest ────────────────────────────────────────────────
    algo = signer_digest_algorithm(signer_info)
    if algo is None or algo not in _HASHES:
        raise VerificationError("Unsupported digest algorithm in CMS")
    result["digest_algorithm"] = algo
    actual = hashlib.new(algo, content).digest()

    signed_attrs = signer_info["signed_attrs"]
    if signed_attrs:
        expected = signed_attribute(signer_info, OID_MESSAGE_DIGEST)
        if expected is None:
            raise VerificationError("CMS signed attributes lack messageDigest")
        if actual != expected:
            raise VerificationError(
                f"{algo.upper()} of ByteRange {actual.hex()} != messageDigest {expected.hex()}",
                kind=VerificationErrorKind.DIGEST_MISMATCH,
            )
        details.append(f"Digest OK -- {algo.upper()} matches messageDigest")
        # Signature covers the DER SET OF, not the [0] IMPLICIT encoding
        _verify_signer_signature(signer_cert, signer_info, signed_attrs.untag().dump(), algo)
    else:
        _verify_signer_signature(signer_cert, signer_info, content, algo)
    details.append("Signature value OK")
    result["is_valid"] = True

    # ── 4. Chain and trust ───────────────────────────────────────
    chain, problems = build_chain(signer_cert, pool)
    result["chain_length"] = len(chain)
    details.extend(problems)
    anchor_name = None if problems else find_trust_anchor(chain, anchors)
    if anchor_name is None:
        result["errors"].append(VerificationErrorKind.UNTRUSTED_CHAIN)
        details.append("No trust anchor found for the signer chain")
    else:
        result["is_trusted"] = True
        result["trusted_anchor_name"] = anchor_name
        details.append(f"Trusted via {anchor_name}")


def _verify_source(
    pdf_bytes: bytes, source: _SignatureSource, anchors: list[TrustAnchor]
) -> SignatureVerification:
    result = _blank_result(source)
    try:
        _check_signature(pdf_bytes, source, anchors, result)
    except VerificationError as e:
        result["is_valid"] = False
        result["errors"].append(e.kind)
        result["details"].append(str(e))
        _logger.debug("Signature %r failed verification: %s", source.field_name, e)
    return result


def _as_anchor(anchor: TrustAnchor | x509.Certificate) -> TrustAnchor:
    from ..ca import TrustAnchor

    if isinstance(anchor, x509.Certificate):
        return TrustAnchor(_common_name(anchor.subject) or anchor.subject.rfc4514_string(), anchor)
    return anchor


def verify_pdf_signatures(
    pdf_bytes: bytes,
    trust_anchors: Iterable[TrustAnchor | x509.Certificate] | None = None,
) -> list[SignatureVerification]:
    """
    Verify every signature in a PDF.

    Signature fields are found through the AcroForm; when pikepdf cannot
    open the document, raw ``/ByteRange`` arrays are scanned instead.

    Args:
        pdf_bytes: The signed PDF.
        trust_anchors: TrustAnchor tuples or bare certificates.

    Returns:
        One SignatureVerification per signature, in document order; an
        empty list for a PDF without signatures.
    """
    anchors = [_as_anchor(a) for a in (trust_anchors or [])]
    sources = _collect_from_acroform(pdf_bytes)
    if sources is None:
        sources = _collect_from_raw_bytes(pdf_bytes)

    results = [_verify_source(pdf_bytes, source, anchors) for source in sources]
    _logger.info(
        "Verified %d signature(s): %d valid, %d trusted",
        len(results),
        sum(r["is_valid"] for r in results),
        sum(r["is_trusted"] for r in results),
    )
    return results
