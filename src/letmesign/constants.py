"""
Application-wide constants for Letmesign.

Certificate lifetimes, placeholder sizes, layout metrics and environment
variable names are centralized here for easy maintenance and configuration.
"""

from __future__ import annotations

import importlib.metadata

try:
    __version__ = importlib.metadata.version("letmesign")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.3.0"

__all__ = [
    "AES_KEY_SIZE",
    "AES_NONCE_SIZE",
    "CAPTION_BOTTOM_PADDING",
    "CAPTION_FONT_SIZE",
    "CAPTION_LEFT_PADDING",
    "CAPTION_LINE_HEIGHT",
    "CAPTION_SIGNATURE_GAP",
    "CA_MODES",
    "DEFAULT_CA_MODE",
    "DEFAULT_LOCALE",
    "DEFAULT_ORG_COUNTRY",
    "DEFAULT_ORG_LOCALITY",
    "DEFAULT_ORG_NAME",
    "DEFAULT_ORG_STATE",
    "DEFAULT_PAGE_HEIGHT",
    "DEFAULT_PAGE_WIDTH",
    "DEFAULT_SIGNATURE_LOCATION",
    "DEFAULT_SIGNATURE_REASON",
    "DEFAULT_SIGNATURE_SIZE",
    "DEFAULT_TIMEZONE",
    "ENV_CA_MODE",
    "ENV_MASTER_KEY",
    "ENV_ORG_COUNTRY",
    "ENV_ORG_LOCALITY",
    "ENV_ORG_NAME",
    "ENV_ORG_STATE",
    "ENV_SIGNATURE_LOCATION",
    "ENV_SIGNATURE_SIZE",
    "INTERMEDIATE_CA_SERIAL",
    "INTERMEDIATE_CA_VALIDITY_DAYS",
    "MAX_SIGNATURE_SIZE",
    "MIN_SIGNATURE_SIZE",
    "PDF_MAGIC",
    "ROOT_CA_SERIAL",
    "ROOT_CA_VALIDITY_DAYS",
    "RSA_KEY_SIZE",
    "RSA_PUBLIC_EXPONENT",
    "SIGNING_CERT_VALIDITY_DAYS",
    "VIEWER_HEIGHT",
    "VIEWER_WIDTH",
    "__version__",
]

# ── Certificate authority ───────────────────────────────────────────

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537

ROOT_CA_SERIAL = 1
INTERMEDIATE_CA_SERIAL = 2

ROOT_CA_VALIDITY_DAYS = 3650  # 10 years
INTERMEDIATE_CA_VALIDITY_DAYS = 1825  # 5 years
SIGNING_CERT_VALIDITY_DAYS = 365

DEFAULT_ORG_NAME = "Letmesign LLC"
DEFAULT_ORG_COUNTRY = "US"
DEFAULT_ORG_STATE = "California"
DEFAULT_ORG_LOCALITY = "San Francisco"

# "strict" refuses to start without CA material; "lax" disables signing instead
CA_MODES = ("strict", "lax")
DEFAULT_CA_MODE = "strict"

# AES-256-GCM protection of stored CA private keys
AES_KEY_SIZE = 32
AES_NONCE_SIZE = 12


# ── CMS signature placeholder ───────────────────────────────────────

# Reserved /Contents size in bytes (hex placeholder is twice as long).
# A 2048-bit CMS with a three-certificate chain is ~3.5 KB.
DEFAULT_SIGNATURE_SIZE = 16384
MIN_SIGNATURE_SIZE = 4096
MAX_SIGNATURE_SIZE = 1024 * 1024

DEFAULT_SIGNATURE_LOCATION = "Letmesign Platform"
DEFAULT_SIGNATURE_REASON = "Digitally signed with Letmesign"


# ── Rendering ───────────────────────────────────────────────────────

# Size of the web previewer the "viewer-pixel" coordinate mode refers to
VIEWER_WIDTH = 600.0
VIEWER_HEIGHT = 800.0

# US Letter, used when a page carries no usable MediaBox
DEFAULT_PAGE_WIDTH = 612.0
DEFAULT_PAGE_HEIGHT = 792.0

# Metadata caption block beneath signature fields (PDF points)
CAPTION_FONT_SIZE = 10.0
CAPTION_LINE_HEIGHT = 14.0
CAPTION_LEFT_PADDING = 5.0
CAPTION_BOTTOM_PADDING = 3.0
CAPTION_SIGNATURE_GAP = 5.0

DEFAULT_TIMEZONE = "Asia/Ho_Chi_Minh"
DEFAULT_LOCALE = "vi-VN"


# ── Environment variable names ──────────────────────────────────────

ENV_MASTER_KEY = "MASTER_ENCRYPTION_KEY"
ENV_ORG_NAME = "LETMESIGN_ORG_NAME"
ENV_ORG_COUNTRY = "LETMESIGN_ORG_COUNTRY"
ENV_ORG_STATE = "LETMESIGN_ORG_STATE"
ENV_ORG_LOCALITY = "LETMESIGN_ORG_LOCALITY"
ENV_CA_MODE = "LETMESIGN_CA_MODE"
ENV_SIGNATURE_SIZE = "LETMESIGN_SIGNATURE_SIZE"
ENV_SIGNATURE_LOCATION = "LETMESIGN_SIGNATURE_LOCATION"


# PDF file magic bytes
PDF_MAGIC = b"%PDF-"
