"""Detached CMS/PKCS#7 SignedData construction."""

from __future__ import annotations

__all__ = ["build_detached_cms"]

import logging
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from ..errors import CmsError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

_logger = logging.getLogger(__name__)

_DETACHED_OPTIONS = [
    pkcs7.PKCS7Options.DetachedSignature,
    pkcs7.PKCS7Options.Binary,
    pkcs7.PKCS7Options.NoCapabilities,
]


def build_detached_cms(
    content: bytes,
    certificate: x509.Certificate,
    private_key: PrivateKeyTypes,
    chain: Iterable[x509.Certificate] = (),
) -> bytes:
    """
    Sign *content* and return a detached, DER-encoded CMS SignedData.

    The signed attributes carry contentType, signingTime (now, UTC) and the
    SHA-256 messageDigest of *content*.  The signer certificate and every
    certificate in *chain* are embedded.

    Raises:
        CmsError: If the key type is unsupported or signing fails.
    """
    try:
        builder = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(content)
            .add_signer(certificate, private_key, hashes.SHA256())  # type: ignore[arg-type]
        )
        for cert in chain:
            builder = builder.add_certificate(cert)
        cms_der = builder.sign(serialization.Encoding.DER, _DETACHED_OPTIONS)
    except (TypeError, ValueError) as e:
        raise CmsError(f"Cannot build CMS signature: {e}") from e
    _logger.debug("Built detached CMS: %d bytes", len(cms_der))
    return cms_der
