"""High-level convenience API for rendering, signing and verifying documents.

Provides :func:`render_document`, :func:`sign_document`,
:func:`render_and_sign` and :func:`verify_document`, which fall back to a
process-wide :class:`~letmesign.core.ca.CAService` built from
configuration when no CA is passed explicitly.

For lower-level control, use :func:`~letmesign.core.render.render_signatures`,
:func:`~letmesign.core.signing.sign_pdf` and
:func:`~letmesign.core.pdf.verify_pdf_signatures` directly.
"""

from __future__ import annotations

__all__ = [
    "get_ca_service",
    "render_and_sign",
    "render_document",
    "set_ca_service",
    "sign_document",
    "verify_document",
]

import logging
import threading
from typing import TYPE_CHECKING

from .config import CONFIG_DIR
from .core.ca import CAService, JsonFileCertificateRepository, TrustAnchor
from .core.pdf import verify_pdf_signatures
from .core.render import render_signatures
from .core.signing import sign_pdf

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cryptography import x509

    from .core.pdf import SignatureVerification
    from .core.render import RenderItem, RenderSettings
    from .core.signing import SignatureOptions

_logger = logging.getLogger(__name__)

CA_STORE_NAME = "ca.json"

_default_ca: CAService | None = None
_default_ca_lock = threading.Lock()


# ---------------------------------------------------------------------------
# Process-wide CA
# ---------------------------------------------------------------------------


def get_ca_service() -> CAService:
    """The process-wide CA service, created on first use.

    Backed by a JSON certificate store under the config directory; org,
    CA mode and master key come from configuration.
    """
    global _default_ca
    with _default_ca_lock:
        if _default_ca is None:
            path = CONFIG_DIR / CA_STORE_NAME
            _logger.debug("Creating default CA service over %s", path)
            _default_ca = CAService(JsonFileCertificateRepository(path))
        return _default_ca


def set_ca_service(ca: CAService | None) -> None:
    """Replace (or with None, forget) the process-wide CA service."""
    global _default_ca
    with _default_ca_lock:
        _default_ca = ca


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def render_document(
    pdf_bytes: bytes,
    items: Iterable[RenderItem],
    settings: RenderSettings | None = None,
) -> bytes:
    """Draw submitted field values onto the document."""
    return render_signatures(pdf_bytes, items, settings)


def sign_document(
    pdf_bytes: bytes,
    *,
    signer_email: str,
    signer_name: str | None = None,
    ca: CAService | None = None,
    options: SignatureOptions | None = None,
    **kwargs: object,
) -> bytes:
    """Embed a CMS signature made with a freshly issued certificate.

    Keyword arguments override fields of *options* (see
    :class:`~letmesign.core.signing.SignatureOptions`).
    """
    return sign_pdf(
        pdf_bytes,
        signer_email=signer_email,
        signer_name=signer_name,
        ca=ca or get_ca_service(),
        options=options,
        **kwargs,
    )


def render_and_sign(
    pdf_bytes: bytes,
    items: Iterable[RenderItem],
    *,
    signer_email: str,
    signer_name: str | None = None,
    settings: RenderSettings | None = None,
    ca: CAService | None = None,
    options: SignatureOptions | None = None,
) -> bytes:
    """Render the visible signatures, then seal the result with one CMS signature."""
    rendered = render_signatures(pdf_bytes, items, settings)
    return sign_document(
        rendered,
        signer_email=signer_email,
        signer_name=signer_name,
        ca=ca,
        options=options,
    )


def verify_document(
    pdf_bytes: bytes,
    *,
    ca: CAService | None = None,
    extra_anchors: Iterable[TrustAnchor | x509.Certificate] | None = None,
) -> list[SignatureVerification]:
    """Verify every signature against the CA's trust anchors plus *extra_anchors*."""
    anchors: list[TrustAnchor | x509.Certificate] = list(
        (ca or get_ca_service()).trust_anchors()
    )
    anchors.extend(extra_anchors or [])
    return verify_pdf_signatures(pdf_bytes, anchors)
