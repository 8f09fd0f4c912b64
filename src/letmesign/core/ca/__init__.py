"""Private two-tier certificate authority."""

from __future__ import annotations

from .keys import decrypt_private_key, encrypt_private_key, generate_master_key, load_certificate
from .repository import (
    CertificateRepository,
    CertificateRole,
    CertificateRow,
    CertificateStatus,
    InMemoryCertificateRepository,
    JsonFileCertificateRepository,
)
from .service import CAService, CASnapshot, SigningCredentials, TrustAnchor

__all__ = [
    "CAService",
    "CASnapshot",
    "CertificateRepository",
    "CertificateRole",
    "CertificateRow",
    "CertificateStatus",
    "InMemoryCertificateRepository",
    "JsonFileCertificateRepository",
    "SigningCredentials",
    "TrustAnchor",
    "decrypt_private_key",
    "encrypt_private_key",
    "generate_master_key",
    "load_certificate",
]
