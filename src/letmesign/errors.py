"""Letmesign error types."""

from __future__ import annotations

from enum import Enum
from typing import Any

__all__ = [
    "CaNotInitialized",
    "CertIssuanceError",
    "CertificateError",
    "CmsError",
    "ConfigError",
    "LetmesignError",
    "PdfStructureError",
    "PlaceholderTooSmall",
    "UnsupportedFieldType",
    "VerificationError",
    "VerificationErrorKind",
]


class LetmesignError(Exception):
    """Base error for Letmesign operations."""


class PdfStructureError(LetmesignError):
    """PDF structure, parsing, or incremental-update error."""


class UnsupportedFieldType(LetmesignError):
    """A field carries a semantic type the renderer does not handle."""

    def __init__(self, field_type: str) -> None:
        super().__init__(f"Unsupported field type: {field_type!r}")
        self.field_type = field_type

    def __reduce__(self) -> tuple[type[UnsupportedFieldType], tuple[str]]:
        return (type(self), (self.field_type,))


class CaNotInitialized(LetmesignError):
    """CA material cannot be loaded or created."""


class CertIssuanceError(LetmesignError):
    """Key generation or certificate build failed for a signing certificate."""


class CmsError(LetmesignError):
    """CMS/PKCS#7 generation or encoding error."""


class PlaceholderTooSmall(CmsError):
    """The reserved /Contents placeholder cannot hold the generated CMS.

    Args:
        required: DER size of the generated CMS in bytes.
        available: Reserved placeholder size in bytes.
    """

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"CMS too large: {required} bytes > {available} reserved. "
            "Retry with a larger signature_size."
        )
        self.required = required
        self.available = available

    def __reduce__(self) -> tuple[type[PlaceholderTooSmall], tuple[int, int]]:
        """Preserve sizes across pickle/unpickle."""
        return (type(self), (self.required, self.available))


class ConfigError(LetmesignError):
    """Configuration validation error."""


class CertificateError(LetmesignError):
    """Certificate parsing or extraction error."""


class VerificationErrorKind(str, Enum):
    """Per-signature verification failure categories."""

    PARSE_FAILED = "ParseFailed"
    DIGEST_MISMATCH = "DigestMismatch"
    INVALID_SIGNATURE = "InvalidSignature"
    UNTRUSTED_CHAIN = "UntrustedChain"


class VerificationError(LetmesignError):
    """Verification failure for a single signature.

    Used inside the verifier to short-circuit a check; results are always
    returned as data, never raised to callers.

    Args:
        message: Human-readable error description.
        kind: Failure category.
    """

    def __init__(
        self, message: str, *, kind: VerificationErrorKind = VerificationErrorKind.PARSE_FAILED
    ) -> None:
        super().__init__(message)
        self.kind = kind

    def __reduce__(
        self,
    ) -> tuple[type[VerificationError], tuple[str], dict[str, VerificationErrorKind]]:
        """Preserve kind across pickle/unpickle."""
        return (type(self), (str(self),), {"kind": self.kind})

    def __setstate__(self, state: dict[str, Any] | None) -> None:
        if state is None:
            return
        self.kind = state.get("kind", VerificationErrorKind.PARSE_FAILED)
