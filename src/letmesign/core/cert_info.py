# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Certificate information extraction from CMS/PKCS#7 blobs, X.509 certs, and signed PDFs.

Also home to the PDF date helpers and PKCS#12 loading used when signing
with an uploaded identity.  Parsing goes through ``asn1crypto``, which is
lenient with oddly encoded DNs (BMPString CN/O fields and the like).
"""

from __future__ import annotations

__all__ = [
    "CertificateInfo",
    "Pkcs12Identity",
    "extract_all_cert_info_from_pdf",
    "extract_cert_info_from_cms",
    "extract_cert_info_from_pdf",
    "extract_cert_info_from_x509",
    "extract_email_from_subject",
    "format_distinguished_name",
    "format_pdf_date",
    "load_pkcs12",
    "parse_pdf_date",
]

import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, NamedTuple, TypedDict

from asn1crypto import cms as asn1_cms
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from ..errors import CertificateError, LetmesignError
from .pdf import extract_cms_from_byterange_match, find_byterange_matches, format_pdf_date

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

_logger = logging.getLogger(__name__)

# asn1crypto attribute names -> short DN labels
_DN_LABELS = {
    "common_name": "CN",
    "organization_name": "O",
    "organizational_unit_name": "OU",
    "locality_name": "L",
    "state_or_province_name": "ST",
    "country_name": "C",
    "email_address": "emailAddress",
    "serial_number": "serialNumber",
    "given_name": "GN",
    "surname": "SN",
}


class CertificateInfo(TypedDict):
    """Display metadata of one X.509 certificate."""

    name: str | None
    email: str | None
    organization: str | None
    issuer: str
    subject: str
    serial: str
    fingerprint_sha256: str
    not_before: datetime | None
    not_after: datetime | None
    status: str


class Pkcs12Identity(NamedTuple):
    private_key: PrivateKeyTypes
    certificate: x509.Certificate
    additional_certificates: list[x509.Certificate]


# ── Distinguished names ──────────────────────────────────────────────


def format_distinguished_name(name: asn1_x509.Name) -> str:
    """``CN=..., O=...`` in the order the RDNs appear in the certificate."""
    parts: list[str] = []
    for rdn in name.chosen:
        for attr in rdn:
            key = attr["type"].native
            parts.append(f"{_DN_LABELS.get(key, key)}={attr['value'].native}")
    return ", ".join(parts)


def _name_attribute(name: asn1_x509.Name, key: str) -> str | None:
    value = name.native.get(key)
    if isinstance(value, list):
        value = value[0] if value else None
    return str(value) if value is not None else None


_EMAIL_RE = re.compile(r"(?:^|[,/+]\s*)(?:emailAddress|E)=([^,/+]+)", re.IGNORECASE)


def extract_email_from_subject(subject: str) -> str | None:
    """Pull ``emailAddress=`` (or ``E=``) out of a DN string."""
    m = _EMAIL_RE.search(subject or "")
    return m.group(1).strip() if m else None


# ── Certificate info ─────────────────────────────────────────────────


def _extract_info_from_cert_object(cert: asn1_x509.Certificate) -> CertificateInfo:
    """Build a CertificateInfo from an asn1crypto certificate.

    Logs a warning for certificates outside their validity window.
    """
    now = datetime.now(timezone.utc)
    not_before: datetime | None = None
    not_after: datetime | None = None
    try:
        not_before = cert.not_valid_before
        not_after = cert.not_valid_after
    except (KeyError, TypeError, ValueError) as e:
        _logger.debug("Cannot read certificate validity dates: %s", e)

    status = "active"
    if not_after is not None and now > not_after:
        status = "expired"
        _logger.warning("Certificate has expired (notAfter: %s)", not_after)
    elif not_before is not None and now < not_before:
        _logger.warning("Certificate is not yet valid (notBefore: %s)", not_before)

    subject = cert.subject
    email = _name_attribute(subject, "email_address")
    if email is None:
        emails = [
            gn.native for gn in (cert.subject_alt_name_value or []) if gn.name == "rfc822_name"
        ]
        email = emails[0] if emails else None

    return {
        "name": _name_attribute(subject, "common_name"),
        "email": email,
        "organization": _name_attribute(subject, "organization_name"),
        "issuer": format_distinguished_name(cert.issuer),
        "subject": format_distinguished_name(subject),
        "serial": format(cert.serial_number, "x"),
        "fingerprint_sha256": hashlib.sha256(cert.dump()).hexdigest().upper(),
        "not_before": not_before,
        "not_after": not_after,
        "status": status,
    }


def extract_cert_info_from_x509(cert: bytes | x509.Certificate) -> CertificateInfo:
    """
    Extract info from an X.509 certificate (DER/PEM bytes or a cryptography object).

    Raises:
        CertificateError: If parsing fails.
    """
    if isinstance(cert, x509.Certificate):
        der = cert.public_bytes(serialization.Encoding.DER)
    else:
        der = cert
        if der.lstrip().startswith(b"-----BEGIN"):
            try:
                der = x509.load_pem_x509_certificate(der).public_bytes(serialization.Encoding.DER)
            except ValueError as e:
                raise CertificateError(f"Failed to parse PEM certificate: {e}") from e
    try:
        parsed = asn1_x509.Certificate.load(der)
        return _extract_info_from_cert_object(parsed)
    except (ValueError, TypeError, KeyError, OSError) as e:
        raise CertificateError(f"Failed to parse X.509 certificate: {e}") from e


def signer_certificate(signed_data: asn1_cms.SignedData) -> asn1_x509.Certificate | None:
    """The certificate matching the first SignerInfo's sid, else the first certificate."""
    certs = [c.chosen for c in (signed_data["certificates"] or []) if c.name == "certificate"]
    if not certs:
        return None
    signer_infos = signed_data["signer_infos"]
    if signer_infos:
        sid = signer_infos[0]["sid"]
        if sid.name == "issuer_and_serial_number":
            issuer = sid.chosen["issuer"]
            serial = sid.chosen["serial_number"].native
            for cert in certs:
                if cert.serial_number == serial and cert.issuer == issuer:
                    return cert
        elif sid.name == "subject_key_identifier":
            for cert in certs:
                if cert.key_identifier == sid.chosen.native:
                    return cert
    return certs[0]


def extract_cert_info_from_cms(cms_der: bytes) -> CertificateInfo:
    """
    Extract signer certificate info from a CMS/PKCS#7 DER blob.

    Raises:
        CertificateError: If parsing fails or no certificate is embedded.
    """
    try:
        content_info = asn1_cms.ContentInfo.load(cms_der)
        signed_data = content_info["content"]
        cert = signer_certificate(signed_data)
    except (ValueError, TypeError, KeyError, OSError) as e:
        raise CertificateError(f"Failed to parse CMS/PKCS#7 blob: {e}") from e

    if cert is None:
        raise CertificateError("No certificate found in CMS blob.")
    return _extract_info_from_cert_object(cert)


def extract_all_cert_info_from_pdf(pdf_bytes: bytes) -> list[CertificateInfo]:
    """
    Signer certificate info from every signature in a signed PDF, deduplicated by subject.

    Raises:
        CertificateError: If the PDF has no signatures or nothing could be extracted.
    """
    br_matches = find_byterange_matches(pdf_bytes)
    if not br_matches:
        raise CertificateError("No embedded signature found in this PDF.")

    results: list[CertificateInfo] = []
    seen: set[str] = set()
    for br in br_matches:
        try:
            cms_der = extract_cms_from_byterange_match(pdf_bytes, br)
            info = extract_cert_info_from_cms(cms_der)
        except LetmesignError as exc:  # noqa: PERF203 -- each signature is parsed independently
            _logger.debug("Skipping signature (extraction failed): %s", exc)
            continue
        if info["subject"] not in seen:
            seen.add(info["subject"])
            results.append(info)

    if not results:
        raise CertificateError("Could not extract any certificate info from PDF signatures.")
    return results


def extract_cert_info_from_pdf(pdf_bytes: bytes) -> CertificateInfo:
    """Signer certificate info of the last signature in a signed PDF."""
    return extract_all_cert_info_from_pdf(pdf_bytes)[-1]


# ── PDF dates ────────────────────────────────────────────────────────

_PDF_DATE_RE = re.compile(
    r"^D:(?P<y>\d{4})(?P<mo>\d{2})?(?P<d>\d{2})?(?P<h>\d{2})?(?P<mi>\d{2})?(?P<s>\d{2})?"
    r"(?:(?P<z>Z)|(?P<sign>[+-])(?P<oh>\d{2})'?(?P<om>\d{2})?'?)?"
)


def parse_pdf_date(value: str | None) -> datetime | None:
    """Parse ``D:YYYYMMDDHHmmSS+HH'mm'`` into an aware datetime.

    Missing trailing fields default to their minimum; a missing offset
    means UTC.  Returns None for anything unparseable.
    """
    if not value:
        return None
    m = _PDF_DATE_RE.match(value.strip())
    if not m:
        return None
    tz = timezone.utc
    if m.group("sign"):
        offset = timedelta(hours=int(m.group("oh")), minutes=int(m.group("om") or 0))
        tz = timezone(offset if m.group("sign") == "+" else -offset)
    try:
        return datetime(
            int(m.group("y")),
            int(m.group("mo") or 1),
            int(m.group("d") or 1),
            int(m.group("h") or 0),
            int(m.group("mi") or 0),
            int(m.group("s") or 0),
            tzinfo=tz,
        )
    except ValueError:
        return None


# ── PKCS#12 ──────────────────────────────────────────────────────────


def load_pkcs12(data: bytes, password: str | bytes | None) -> Pkcs12Identity:
    """
    Load a private key, its certificate and bundled extra certificates.

    Raises:
        CertificateError: On a wrong password, malformed data, or a bundle
            without a key or certificate.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")
    try:
        key, cert, extra = pkcs12.load_key_and_certificates(data, password or None)
    except (ValueError, TypeError) as e:
        raise CertificateError(f"Cannot load PKCS#12 bundle: {e}") from e
    if key is None or cert is None:
        raise CertificateError("PKCS#12 bundle must contain a private key and a certificate")
    return Pkcs12Identity(key, cert, list(extra or []))
