"""
Core signing functions: embedded CMS signatures in PDFs.

Signatures are produced with an ephemeral certificate minted by the
private CA (:func:`sign_pdf`) or with an uploaded PKCS#12 identity
(:func:`sign_pdf_with_pkcs12`).  Both share the same pipeline: prepare
the field by incremental update, digest the ByteRange, build a detached
CMS, embed it, and verify the result before returning it.
"""

from __future__ import annotations

__all__ = [
    "SignatureOptions",
    "sign_pdf",
    "sign_pdf_with_pkcs12",
]

import logging
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from cryptography.x509.oid import NameOID

from ..config import get_signature_location, get_signature_size
from ..constants import DEFAULT_SIGNATURE_REASON, PDF_MAGIC
from ..errors import CertificateError, CmsError, PdfStructureError
from .cert_info import load_pkcs12
from .cms import build_detached_cms
from .pdf import (
    SIG_HEIGHT,
    SIG_WIDTH,
    compute_byterange_hash,
    extract_digest_info,
    insert_cms,
    prepare_pdf_with_sig_field,
    signed_content,
    verify_pdf_signatures,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from .ca import CAService, TrustAnchor

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureOptions:
    """Options for signature field placement and signature dictionary entries.

    Attributes:
        page: Page for the signature -- 0-based int, "first", or "last".
        position: Preset position name ("bottom-right", "br", etc.).
            Ignored when x/y are provided explicitly.
        x: Manual x-coordinate (PDF points, origin = bottom-left).
        y: Manual y-coordinate (PDF points, origin = bottom-left).
        w: Widget width in PDF points.
        h: Widget height in PDF points.
        visible: If False, create an invisible signature.
        reason: /Reason entry.
        location: /Location entry; None means the configured location.
        contact_info: /ContactInfo entry; None means the signer email.
        signature_size: Bytes reserved for the CMS; None means the
            configured size.
        field_name: AcroForm field name; None means ``Signature_N``.
    """

    page: int | str = "last"
    position: str = "bottom-right"
    x: float | None = None
    y: float | None = None
    w: float = SIG_WIDTH
    h: float = SIG_HEIGHT
    visible: bool = True
    reason: str = DEFAULT_SIGNATURE_REASON
    location: str | None = None
    contact_info: str | None = None
    signature_size: int | None = None
    field_name: str | None = None


_OPTIONS_FIELDS = frozenset(f.name for f in fields(SignatureOptions))


def _resolve_options(
    options: SignatureOptions | None,
    kwargs: dict[str, object],
) -> SignatureOptions:
    """Merge explicit keyword arguments into an options instance.

    Keyword arguments override the corresponding fields in *options*.
    Unknown keys raise TypeError.
    """
    unknown = set(kwargs) - _OPTIONS_FIELDS
    if unknown:
        raise TypeError(f"Unexpected keyword arguments: {', '.join(sorted(unknown))}")

    if options is None:
        options = SignatureOptions()

    if not kwargs:
        return options
    return replace(options, **kwargs)  # type: ignore[arg-type]


def _validate_pdf(pdf_bytes: bytes) -> None:
    """Raise PdfStructureError if bytes don't look like a PDF."""
    if not pdf_bytes or not pdf_bytes.startswith(PDF_MAGIC):
        raise PdfStructureError("Input does not appear to be a PDF file.")


def _validate_geometry(opts: SignatureOptions) -> None:
    if opts.w <= 0 or opts.h <= 0:
        raise PdfStructureError(
            f"Signature dimensions must be positive, got w={opts.w}, h={opts.h}"
        )
    if opts.x is not None and opts.x < 0:
        raise PdfStructureError(f"Signature x-coordinate must be non-negative, got {opts.x}")
    if opts.y is not None and opts.y < 0:
        raise PdfStructureError(f"Signature y-coordinate must be non-negative, got {opts.y}")
    if opts.signature_size is not None and opts.signature_size <= 0:
        raise CmsError(f"signature_size must be positive, got {opts.signature_size}")


def _embed_signature(
    pdf_bytes: bytes,
    opts: SignatureOptions,
    *,
    signer_name: str | None,
    contact_info: str | None,
    certificate: x509.Certificate,
    private_key: PrivateKeyTypes,
    chain: Sequence[x509.Certificate],
    trust_anchors: Sequence[TrustAnchor] = (),
) -> bytes:
    """Run the prepare / digest / sign / embed / self-check pipeline."""
    signature_size = opts.signature_size or get_signature_size()

    # Steps 1-4: field, signature dictionary, placeholders, ByteRange
    _logger.debug("Step 1: Appending signature field and signature dictionary")
    prepared = prepare_pdf_with_sig_field(
        pdf_bytes,
        page=opts.page,
        x=opts.x,
        y=opts.y,
        w=opts.w,
        h=opts.h,
        position=opts.position,
        reason=opts.reason,
        name=signer_name,
        location=opts.location or get_signature_location(),
        contact_info=opts.contact_info or contact_info,
        field_name=opts.field_name,
        visible=opts.visible,
        signature_size=signature_size,
    )
    _logger.debug("Step 3: Located /Contents placeholder at offset %d", prepared.hex_start)
    _logger.debug("Step 4: ByteRange patched to %s", list(prepared.byte_range))

    # Step 5: digest everything outside /Contents
    content = signed_content(prepared.pdf, prepared.byte_range)
    digest = compute_byterange_hash(prepared.pdf, prepared.byte_range)
    _logger.debug("Step 5: ByteRange SHA-256 %s over %d bytes", digest.hex(), len(content))

    # Step 6: detached CMS
    _logger.debug("Step 6: Building CMS SignedData")
    cms_der = build_detached_cms(content, certificate, private_key, chain)

    # Step 7: embed
    _logger.debug(
        "Step 7: Embedding %d-byte CMS into %d reserved bytes", len(cms_der), signature_size
    )
    signed_pdf = insert_cms(prepared.pdf, prepared.hex_start, prepared.hex_len, cms_der)
    if len(signed_pdf) != len(prepared.pdf):
        raise PdfStructureError(
            f"insert_cms changed PDF size: {len(prepared.pdf)} -> {len(signed_pdf)}"
        )

    # Step 8: self-check before emitting
    _logger.debug("Step 8: Verifying the embedded signature")
    _self_check(signed_pdf, prepared.field_name, digest, cms_der, trust_anchors)
    return signed_pdf


def _self_check(
    signed_pdf: bytes,
    field_name: str,
    digest: bytes,
    cms_der: bytes,
    trust_anchors: Sequence[TrustAnchor],
) -> None:
    problems: list[str] = []
    digest_info = extract_digest_info(cms_der)
    if digest_info is None or digest_info[1] != digest:
        problems.append("CMS messageDigest does not match the ByteRange digest")

    results = [
        r for r in verify_pdf_signatures(signed_pdf, trust_anchors) if r["field_name"] == field_name
    ]
    if not results:
        problems.append(f"Signature field {field_name!r} not found after signing")
    elif not results[0]["is_valid"]:
        problems.extend(results[0]["details"])
    elif trust_anchors and not results[0]["is_trusted"]:
        _logger.warning("Signature %r is valid but not trusted by the local anchors", field_name)

    if problems:
        detail_str = "\n  ".join(problems)
        _logger.error("Post-sign verification failed: %s", detail_str)
        raise CmsError(
            f"Post-sign verification FAILED:\n  {detail_str}\n"
            "The signed PDF may be corrupt -- not returned."
        )


def sign_pdf(
    pdf_bytes: bytes,
    *,
    signer_email: str,
    signer_name: str | None = None,
    ca: CAService,
    options: SignatureOptions | None = None,
    **kwargs: object,
) -> bytes:
    """
    Sign a PDF with a fresh certificate issued by the private CA.

    Args:
        pdf_bytes: Raw PDF file content.
        signer_email: Subject email of the signing certificate; also the
            default /ContactInfo.
        signer_name: Subject CN and /Name; defaults to the email.
        ca: Initialized CA service.
        options: Placement and dictionary options.  Individual keyword
            arguments override the corresponding fields.

    Returns:
        The original bytes followed by one incremental update carrying
        the signature.

    Raises:
        PdfStructureError: Input is not a usable PDF.
        CaNotInitialized, CertIssuanceError: The CA cannot issue a certificate.
        CmsError: CMS construction, placeholder overflow, or failed self-check.
    """
    _validate_pdf(pdf_bytes)
    opts = _resolve_options(options, kwargs)
    _validate_geometry(opts)

    _logger.info(
        "Signing PDF (%s): %d bytes, page=%s, position=%s",
        "visible" if opts.visible else "invisible",
        len(pdf_bytes),
        opts.page,
        opts.position,
    )

    cn = (signer_name or "").strip() or signer_email
    creds = ca.issue_signing_cert(signer_email, cn)
    signed_pdf = _embed_signature(
        pdf_bytes,
        opts,
        signer_name=cn,
        contact_info=signer_email,
        certificate=creds.certificate,
        private_key=creds.private_key,
        chain=creds.chain,
        trust_anchors=ca.trust_anchors(),
    )
    _logger.info("Signed PDF complete: %d bytes", len(signed_pdf))
    return signed_pdf


def sign_pdf_with_pkcs12(
    pdf_bytes: bytes,
    p12_data: bytes,
    password: str | bytes | None,
    *,
    options: SignatureOptions | None = None,
    **kwargs: object,
) -> bytes:
    """
    Sign a PDF with an uploaded PKCS#12 identity.

    The bundle's extra certificates are embedded as the chain.

    Raises:
        CertificateError: Unreadable bundle, or a certificate outside its
            validity period.
    """
    _validate_pdf(pdf_bytes)
    opts = _resolve_options(options, kwargs)
    _validate_geometry(opts)

    identity = load_pkcs12(p12_data, password)
    cert = identity.certificate
    now = datetime.now(timezone.utc)
    if cert.not_valid_after_utc < now:
        raise CertificateError(f"Certificate expired on {cert.not_valid_after_utc:%Y-%m-%d}")
    if cert.not_valid_before_utc > now:
        raise CertificateError(
            f"Certificate is not valid before {cert.not_valid_before_utc:%Y-%m-%d}"
        )

    cn_attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    email_attrs = cert.subject.get_attributes_for_oid(NameOID.EMAIL_ADDRESS)
    _logger.info("Signing PDF with PKCS#12 identity: %d bytes", len(pdf_bytes))
    signed_pdf = _embed_signature(
        pdf_bytes,
        opts,
        signer_name=str(cn_attrs[0].value) if cn_attrs else None,
        contact_info=str(email_attrs[0].value) if email_attrs else None,
        certificate=cert,
        private_key=identity.private_key,
        chain=identity.additional_certificates,
    )
    _logger.info("Signed PDF complete: %d bytes", len(signed_pdf))
    return signed_pdf
