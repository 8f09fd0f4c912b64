"""
letmesign -- document-signing core of an e-signature platform.

Renders submitted field values onto PDFs, seals them with detached CMS
signatures issued by a private two-tier CA, and verifies signed PDFs.
"""

from __future__ import annotations

from .api import (
    get_ca_service,
    render_and_sign,
    render_document,
    set_ca_service,
    sign_document,
    verify_document,
)
from .constants import __version__
from .core.ca import CAService, InMemoryCertificateRepository, JsonFileCertificateRepository
from .core.pdf import (
    POSITION_PRESETS,
    SignatureVerification,
    resolve_position,
    verify_pdf_signatures,
)
from .core.render import (
    FieldDescriptor,
    RenderItem,
    RenderSettings,
    SignerContext,
    render_signatures,
)
from .core.signing import SignatureOptions, sign_pdf, sign_pdf_with_pkcs12
from .errors import (
    CaNotInitialized,
    CertificateError,
    CertIssuanceError,
    CmsError,
    ConfigError,
    LetmesignError,
    PdfStructureError,
    PlaceholderTooSmall,
    UnsupportedFieldType,
    VerificationError,
    VerificationErrorKind,
)

__all__ = [
    "POSITION_PRESETS",
    "CAService",
    "CaNotInitialized",
    "CertIssuanceError",
    "CertificateError",
    "CmsError",
    "ConfigError",
    "FieldDescriptor",
    "InMemoryCertificateRepository",
    "JsonFileCertificateRepository",
    "LetmesignError",
    "PdfStructureError",
    "PlaceholderTooSmall",
    "RenderItem",
    "RenderSettings",
    "SignatureOptions",
    "SignatureVerification",
    "SignerContext",
    "UnsupportedFieldType",
    "VerificationError",
    "VerificationErrorKind",
    "__version__",
    "get_ca_service",
    "render_and_sign",
    "render_document",
    "render_signatures",
    "resolve_position",
    "set_ca_service",
    "sign_document",
    "sign_pdf",
    "sign_pdf_with_pkcs12",
    "verify_document",
    "verify_pdf_signatures",
]
