"""
Private certificate authority service.

Bootstraps a Root -> Intermediate hierarchy on first use, keeps the
loaded CA material in an immutable snapshot, and mints a fresh
end-entity certificate for every signature operation.

Snapshot publication is a single attribute assignment made under
``_lock``; readers take the current reference without locking and
therefore always see a complete snapshot.
"""

from __future__ import annotations

__all__ = ["CASnapshot", "CAService", "SigningCredentials", "TrustAnchor"]

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, NamedTuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from ...config import OrgConfig, get_ca_mode, get_master_key, get_org_config
from ...constants import ENV_MASTER_KEY
from ...errors import CaNotInitialized, CertificateError, CertIssuanceError
from .builder import build_intermediate_ca, build_root_ca, build_signing_cert
from .keys import decrypt_private_key, encrypt_private_key, generate_key, load_certificate
from .repository import CertificateRole, CertificateRow, CertificateStatus

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric import rsa

    from .repository import CertificateRepository

_logger = logging.getLogger(__name__)


class SigningCredentials(NamedTuple):
    """Ephemeral end-entity identity for one signature; never persisted."""

    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey
    chain: list[x509.Certificate]


class TrustAnchor(NamedTuple):
    name: str
    certificate: x509.Certificate


@dataclass(frozen=True)
class CASnapshot:
    """Loaded CA material.  Replaced wholesale, never mutated."""

    root_cert: x509.Certificate
    root_key: rsa.RSAPrivateKey = field(repr=False)
    intermediate_cert: x509.Certificate
    intermediate_key: rsa.RSAPrivateKey = field(repr=False)
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def chain(self) -> list[x509.Certificate]:
        """Issuer chain for end-entity certificates: ``[intermediate, root]``."""
        return [self.intermediate_cert, self.root_cert]


def _common_name(name: x509.Name) -> str:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else name.rfc4514_string()


def _to_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


class CAService:
    """
    Two-tier private CA over a pluggable certificate repository.

    Args:
        repository: Row storage (see ``CertificateRepository``).
        master_key: 32-byte AES key sealing CA private keys.  Resolved
            from MASTER_ENCRYPTION_KEY when omitted.
        org: Organization identity for subjects.  Resolved from config
            when omitted.
        strict: Fail hard on bootstrap errors.  Resolved from the
            configured CA mode when omitted.
    """

    def __init__(
        self,
        repository: CertificateRepository,
        *,
        master_key: bytes | None = None,
        org: OrgConfig | None = None,
        strict: bool | None = None,
    ) -> None:
        self._repository = repository
        self._master_key = master_key
        self._org = org
        self._strict = strict
        self._lock = threading.Lock()
        self._snapshot: CASnapshot | None = None
        self._available = True

    @property
    def repository(self) -> CertificateRepository:
        return self._repository

    @property
    def org(self) -> OrgConfig:
        if self._org is None:
            self._org = get_org_config()
        return self._org

    @property
    def strict(self) -> bool:
        if self._strict is None:
            self._strict = get_ca_mode() == "strict"
        return self._strict

    @property
    def is_available(self) -> bool:
        """False after a failed bootstrap in lax mode."""
        return self._available

    def _require_master_key(self) -> bytes:
        if self._master_key is None:
            self._master_key = get_master_key()
        if self._master_key is None:
            raise CaNotInitialized(f"{ENV_MASTER_KEY} is not set; cannot unlock CA keys")
        return self._master_key

    # ── Bootstrap ────────────────────────────────────────────────────

    def _open_key(self, row: CertificateRow, master_key: bytes) -> rsa.RSAPrivateKey:
        if not row.private_key:
            raise CaNotInitialized(f"CA row {row.name!r} has no private key")
        return decrypt_private_key(row.private_key, master_key)

    def _store_ca(
        self,
        cert: x509.Certificate,
        key: rsa.RSAPrivateKey,
        role: CertificateRole,
        master_key: bytes,
    ) -> None:
        self._repository.upsert_by_name_and_role(
            CertificateRow(
                name=_common_name(cert.subject),
                certificate_data=_to_pem(cert),
                private_key=encrypt_private_key(key, master_key),
                role=role,
                is_default=True,
            )
        )

    def _bootstrap(self) -> CASnapshot:
        master_key = self._require_master_key()
        org = self.org
        created_root = False

        root_row = self._repository.find_by_role(CertificateRole.ROOT_CA)
        if root_row is None:
            _logger.info("No root CA found, generating %s Root CA", org.name)
            root_key = generate_key()
            root_cert = build_root_ca(root_key, org)
            self._store_ca(root_cert, root_key, CertificateRole.ROOT_CA, master_key)
            created_root = True
        else:
            root_cert = load_certificate(root_row.certificate_data)
            root_key = self._open_key(root_row, master_key)

        inter_row = self._repository.find_by_role(CertificateRole.INTERMEDIATE_CA)
        if inter_row is None or created_root:
            # A new root invalidates any intermediate left from an earlier one
            _logger.info("Issuing intermediate CA under %s", _common_name(root_cert.subject))
            inter_key = generate_key()
            inter_cert = build_intermediate_ca(inter_key, root_cert, root_key, org)
            self._store_ca(inter_cert, inter_key, CertificateRole.INTERMEDIATE_CA, master_key)
        else:
            inter_cert = load_certificate(inter_row.certificate_data)
            if inter_cert.issuer != root_cert.subject:
                raise CaNotInitialized(
                    f"Intermediate CA issuer {inter_cert.issuer.rfc4514_string()!r} does not "
                    f"match root subject {root_cert.subject.rfc4514_string()!r}"
                )
            inter_key = self._open_key(inter_row, master_key)

        if created_root or inter_row is None:
            _logger.info("CA infrastructure initialized")
        else:
            _logger.info("CA infrastructure already initialized")
        return CASnapshot(
            root_cert=root_cert,
            root_key=root_key,
            intermediate_cert=inter_cert,
            intermediate_key=inter_key,
        )

    def initialize(self) -> CASnapshot | None:
        """
        Load or create the CA hierarchy and publish a fresh snapshot.

        Idempotent: existing rows are reused; only a missing intermediate
        is re-issued.

        Returns:
            The published snapshot, or None in lax mode after a failure.

        Raises:
            CaNotInitialized: In strict mode, when CA material cannot be
                loaded or created.
        """
        try:
            with self._lock:
                try:
                    snapshot = self._bootstrap()
                except CaNotInitialized:
                    raise
                except (CertificateError, ValueError, TypeError, OSError) as e:
                    raise CaNotInitialized(f"CA bootstrap failed: {e}") from e
                self._snapshot = snapshot
                self._available = True
        except CaNotInitialized as e:
            if self.strict:
                raise
            _logger.error("CA bootstrap failed, signing disabled: %s", e)
            self._available = False
            return None
        return snapshot

    def snapshot(self) -> CASnapshot:
        """Return the current CA snapshot, loading it on first use."""
        current = self._snapshot
        if current is not None:
            return current
        loaded = self.initialize()
        if loaded is None:
            raise CaNotInitialized("CA is unavailable; signing is disabled")
        return loaded

    def reload(self) -> CASnapshot | None:
        """Drop the cached snapshot and re-read the repository."""
        with self._lock:
            self._snapshot = None
        return self.initialize()

    # ── Issuance ─────────────────────────────────────────────────────

    def issue_signing_cert(self, subject_email: str, subject_cn: str) -> SigningCredentials:
        """
        Mint a one-year end-entity certificate signed by the intermediate.

        Raises:
            CaNotInitialized: If the CA is unavailable.
            CertIssuanceError: If key generation or the certificate build fails.
        """
        snap = self.snapshot()
        if not subject_email or not subject_email.strip():
            raise CertIssuanceError("Signer email is required for a signing certificate")
        cn = (subject_cn or "").strip() or subject_email
        try:
            key = generate_key()
            cert = build_signing_cert(
                key,
                subject_email.strip(),
                cn,
                snap.intermediate_cert,
                snap.intermediate_key,
                self.org,
            )
        except (ValueError, TypeError) as e:
            raise CertIssuanceError(f"Failed to issue signing certificate: {e}") from e
        _logger.debug("Issued signing certificate serial=%x", cert.serial_number)
        return SigningCredentials(certificate=cert, private_key=key, chain=snap.chain)

    # ── Trust store ──────────────────────────────────────────────────

    def add_trusted_certificate(self, cert_bytes: bytes, name: str | None = None) -> CertificateRow:
        """Store an external certificate (PEM or DER) as a trust anchor."""
        cert = load_certificate(cert_bytes)
        expired = cert.not_valid_after_utc < datetime.now(timezone.utc)
        row = self._repository.upsert_by_name_and_role(
            CertificateRow(
                name=name or _common_name(cert.subject),
                certificate_data=_to_pem(cert),
                role=CertificateRole.TRUSTED_EXTERNAL,
                status=CertificateStatus.EXPIRED if expired else CertificateStatus.ACTIVE,
            )
        )
        _logger.info("Added trusted certificate %r (id=%s)", row.name, row.id)
        return row

    def revoke_certificate(self, row_id: int) -> CertificateRow:
        """Mark a stored certificate as revoked."""
        row = self._repository.set_status(row_id, CertificateStatus.REVOKED)
        if row.role in (CertificateRole.ROOT_CA, CertificateRole.INTERMEDIATE_CA):
            with self._lock:
                self._snapshot = None
        _logger.info("Revoked certificate %r (id=%s)", row.name, row_id)
        return row

    def trust_anchors(self) -> list[TrustAnchor]:
        """The local root plus every active external trusted certificate."""
        snap = self.snapshot()
        anchors = [TrustAnchor(_common_name(snap.root_cert.subject), snap.root_cert)]
        for row in self._repository.list_by_role(CertificateRole.TRUSTED_EXTERNAL):
            if row.status != CertificateStatus.ACTIVE:
                continue
            try:
                anchors.append(TrustAnchor(row.name, load_certificate(row.certificate_data)))
            except CertificateError as e:
                _logger.warning("Skipping unreadable trusted certificate %r: %s", row.name, e)
        return anchors
