"""
Certificate row storage used by the CA service.

The service depends only on the ``CertificateRepository`` protocol, so
any relational or key-value backend can be plugged in.  Two backends
ship with the package: a thread-safe in-memory store and a JSON file
written atomically next to the config file.
"""

from __future__ import annotations

__all__ = [
    "CertificateRepository",
    "CertificateRole",
    "CertificateRow",
    "CertificateStatus",
    "InMemoryCertificateRepository",
    "JsonFileCertificateRepository",
]

import base64
import binascii
import dataclasses
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from ...config._storage import write_json_atomic
from ...errors import CaNotInitialized, CertificateError

if TYPE_CHECKING:
    from pathlib import Path

_logger = logging.getLogger(__name__)


class CertificateRole(str, Enum):
    ROOT_CA = "ROOT_CA"
    INTERMEDIATE_CA = "INTERMEDIATE_CA"
    SIGNING = "SIGNING"
    TRUSTED_EXTERNAL = "TRUSTED_EXTERNAL"


class CertificateStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class CertificateRow:
    """One stored certificate.

    ``certificate_data`` is PEM; ``private_key`` is the sealed key blob
    (CA roles only).  ``id`` and timestamps are assigned by the repository.
    """

    name: str
    certificate_data: bytes
    role: CertificateRole
    private_key: bytes | None = None
    status: CertificateStatus = CertificateStatus.ACTIVE
    is_default: bool = False
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CertificateRepository(Protocol):
    """Storage contract consumed by ``CAService``.  ``name`` is unique per role."""

    def find_by_role(self, role: CertificateRole) -> CertificateRow | None: ...

    def list_by_role(self, role: CertificateRole) -> list[CertificateRow]: ...

    def upsert_by_name_and_role(self, row: CertificateRow) -> CertificateRow: ...

    def set_status(self, row_id: int, status: CertificateStatus) -> CertificateRow: ...


# ── In-memory backend ────────────────────────────────────────────────


class InMemoryCertificateRepository:
    """Dict-backed repository guarded by a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[int, CertificateRow] = {}
        self._next_id = 1

    def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held after writes."""

    def find_by_role(self, role: CertificateRole) -> CertificateRow | None:
        """Return the active row for *role*, preferring the default one."""
        with self._lock:
            active = [
                r
                for r in self._rows.values()
                if r.role == role and r.status == CertificateStatus.ACTIVE
            ]
        if not active:
            return None
        active.sort(key=lambda r: (not r.is_default, r.id or 0))
        return active[0]

    def list_by_role(self, role: CertificateRole) -> list[CertificateRow]:
        with self._lock:
            return sorted(
                (r for r in self._rows.values() if r.role == role), key=lambda r: r.id or 0
            )

    def upsert_by_name_and_role(self, row: CertificateRow) -> CertificateRow:
        """Insert *row*, or replace the row with the same name and role."""
        now = datetime.now(timezone.utc)
        with self._lock:
            existing = next(
                (r for r in self._rows.values() if r.name == row.name and r.role == row.role),
                None,
            )
            if existing is not None:
                stored = dataclasses.replace(
                    row, id=existing.id, created_at=existing.created_at, updated_at=now
                )
            else:
                stored = dataclasses.replace(row, id=self._next_id, created_at=now, updated_at=now)
                self._next_id += 1
            assert stored.id is not None
            self._rows[stored.id] = stored
            self._persist()
        return stored

    def set_status(self, row_id: int, status: CertificateStatus) -> CertificateRow:
        with self._lock:
            row = self._rows.get(row_id)
            if row is None:
                raise CertificateError(f"No certificate row with id {row_id}")
            updated = dataclasses.replace(
                row, status=status, updated_at=datetime.now(timezone.utc)
            )
            self._rows[row_id] = updated
            self._persist()
        return updated


# ── JSON file backend ────────────────────────────────────────────────


def _row_to_json(row: CertificateRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "certificate_data": base64.b64encode(row.certificate_data).decode("ascii"),
        "private_key": (
            base64.b64encode(row.private_key).decode("ascii") if row.private_key else None
        ),
        "role": row.role.value,
        "status": row.status.value,
        "is_default": row.is_default,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def _row_from_json(data: dict[str, Any]) -> CertificateRow:
    key = data.get("private_key")
    created = data.get("created_at")
    updated = data.get("updated_at")
    return CertificateRow(
        id=int(data["id"]),
        name=str(data["name"]),
        certificate_data=base64.b64decode(data["certificate_data"]),
        private_key=base64.b64decode(key) if key else None,
        role=CertificateRole(data["role"]),
        status=CertificateStatus(data.get("status", "active")),
        is_default=bool(data.get("is_default", False)),
        created_at=datetime.fromisoformat(created) if created else None,
        updated_at=datetime.fromisoformat(updated) if updated else None,
    )


class JsonFileCertificateRepository(InMemoryCertificateRepository):
    """
    Repository persisted to a single JSON document.

    The file is read once on construction and rewritten atomically (0600)
    after every change.  Blobs are base64-encoded.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = path
        self._load()

    def _load(self) -> None:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as e:
            raise CaNotInitialized(f"Cannot read certificate store {self.path}: {e}") from e
        try:
            rows = [_row_from_json(item) for item in document.get("certificates", [])]
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise CaNotInitialized(f"Certificate store {self.path} is malformed: {e}") from e
        for row in rows:
            assert row.id is not None
            self._rows[row.id] = row
        self._next_id = max(self._rows, default=0) + 1
        _logger.debug("Loaded %d certificate rows from %s", len(rows), self.path)

    def _persist(self) -> None:
        rows = sorted(self._rows.values(), key=lambda r: r.id or 0)
        document = {"version": 1, "certificates": [_row_to_json(r) for r in rows]}
        write_json_atomic(self.path, document)
