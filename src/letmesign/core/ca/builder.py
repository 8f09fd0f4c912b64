"""
X.509 certificate builders for the two-tier private CA.

Root (self-signed) -> Intermediate (pathlen 0) -> end-entity signing
certificate.  All certificates are signed over SHA-256.
"""

from __future__ import annotations

__all__ = [
    "build_intermediate_ca",
    "build_root_ca",
    "build_signing_cert",
    "ca_subject",
    "random_serial",
]

import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

from ...constants import (
    INTERMEDIATE_CA_SERIAL,
    INTERMEDIATE_CA_VALIDITY_DAYS,
    ROOT_CA_SERIAL,
    ROOT_CA_VALIDITY_DAYS,
    SIGNING_CERT_VALIDITY_DAYS,
)

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric import rsa

    from ...config import OrgConfig


def random_serial() -> int:
    """Cryptographically random, non-zero 32-bit serial."""
    return secrets.randbits(32) or 1


def _org_attributes(org: OrgConfig) -> list[x509.NameAttribute]:
    return [
        x509.NameAttribute(NameOID.COUNTRY_NAME, org.country),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, org.state),
        x509.NameAttribute(NameOID.LOCALITY_NAME, org.locality),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, org.name),
    ]


def ca_subject(org: OrgConfig, tier: str) -> x509.Name:
    """Subject for a CA tier: ``C, ST, L, O, CN="<Org> <tier> CA"``."""
    return x509.Name(
        [*_org_attributes(org), x509.NameAttribute(NameOID.COMMON_NAME, f"{org.name} {tier} CA")]
    )


def _ca_key_usage() -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=False,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=True,
        crl_sign=True,
        encipher_only=False,
        decipher_only=False,
    )


def build_root_ca(
    key: rsa.RSAPrivateKey, org: OrgConfig, *, now: datetime | None = None
) -> x509.Certificate:
    """Self-signed Root CA, valid for ten years."""
    now = now or datetime.now(timezone.utc)
    name = ca_subject(org, "Root")
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(ROOT_CA_SERIAL)
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=ROOT_CA_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_ca_key_usage(), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )


def build_intermediate_ca(
    key: rsa.RSAPrivateKey,
    root_cert: x509.Certificate,
    root_key: rsa.RSAPrivateKey,
    org: OrgConfig,
    *,
    now: datetime | None = None,
) -> x509.Certificate:
    """Intermediate CA signed by the root, path length 0, valid for five years."""
    now = now or datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(ca_subject(org, "Intermediate"))
        .issuer_name(root_cert.subject)
        .public_key(key.public_key())
        .serial_number(INTERMEDIATE_CA_SERIAL)
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=INTERMEDIATE_CA_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(_ca_key_usage(), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(root_key.public_key()),
            critical=False,
        )
        .sign(root_key, hashes.SHA256())
    )


def build_signing_cert(
    key: rsa.RSAPrivateKey,
    subject_email: str,
    subject_cn: str,
    issuer_cert: x509.Certificate,
    issuer_key: rsa.RSAPrivateKey,
    org: OrgConfig,
    *,
    now: datetime | None = None,
) -> x509.Certificate:
    """
    End-entity signing certificate for one signature operation.

    Subject order is ``emailAddress, C, ST, L, O, CN``.
    """
    now = now or datetime.now(timezone.utc)
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.EMAIL_ADDRESS, subject_email),
            *_org_attributes(org),
            x509.NameAttribute(NameOID.COMMON_NAME, subject_cn),
        ]
    )
    key_usage = x509.KeyUsage(
        digital_signature=True,
        content_commitment=True,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_cert.subject)
        .public_key(key.public_key())
        .serial_number(random_serial())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=SIGNING_CERT_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(key_usage, critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
            critical=False,
        )
        .sign(issuer_key, hashes.SHA256())
    )
