"""
RSA key generation and at-rest protection of CA private keys.

Stored keys are ``nonce(12) || AES-256-GCM(PKCS#8 DER)``; the GCM tag is
the trailing 16 bytes of the ciphertext as produced by ``AESGCM``.
"""

from __future__ import annotations

__all__ = [
    "decrypt_private_key",
    "encrypt_private_key",
    "generate_key",
    "generate_master_key",
    "load_certificate",
]

import logging
import os

from cryptography import x509
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ...constants import AES_KEY_SIZE, AES_NONCE_SIZE, RSA_KEY_SIZE, RSA_PUBLIC_EXPONENT
from ...errors import CaNotInitialized, CertificateError

_logger = logging.getLogger(__name__)


def generate_key() -> rsa.RSAPrivateKey:
    """Generate a fresh RSA-2048 key pair with exponent 65537."""
    return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE)


def generate_master_key() -> bytes:
    """Return 32 random bytes suitable for MASTER_ENCRYPTION_KEY (before base64)."""
    return AESGCM.generate_key(bit_length=AES_KEY_SIZE * 8)


def encrypt_private_key(key: rsa.RSAPrivateKey, master_key: bytes) -> bytes:
    """Serialize *key* to PKCS#8 DER and seal it with AES-256-GCM."""
    der = key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    nonce = os.urandom(AES_NONCE_SIZE)
    return nonce + AESGCM(master_key).encrypt(nonce, der, None)


def decrypt_private_key(blob: bytes, master_key: bytes) -> rsa.RSAPrivateKey:
    """
    Open a sealed CA key.

    Raises:
        CaNotInitialized: If the blob is truncated, the master key is wrong,
            or the plaintext is not an RSA private key.
    """
    if len(blob) <= AES_NONCE_SIZE:
        raise CaNotInitialized("Stored CA private key is truncated")
    nonce, ciphertext = blob[:AES_NONCE_SIZE], blob[AES_NONCE_SIZE:]
    try:
        der = AESGCM(master_key).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise CaNotInitialized(
            "Cannot decrypt CA private key: wrong master key or corrupted data"
        ) from e
    try:
        key = serialization.load_der_private_key(der, password=None)
    except ValueError as e:
        raise CaNotInitialized(f"Stored CA private key is malformed: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CaNotInitialized(f"Stored CA key is {type(key).__name__}, expected RSA")
    return key


def load_certificate(data: bytes) -> x509.Certificate:
    """Load an X.509 certificate from PEM or DER bytes."""
    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise CertificateError(f"Failed to parse certificate: {e}") from e
