"""
Configuration management for Letmesign.

Stores organization identity and signing preferences in
~/.letmesign/config.json.  Every setting resolves as
explicit argument > environment variable > config file > default.
The CA master key is read from the environment only.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "OrgConfig",
    "get_ca_mode",
    "get_master_key",
    "get_org_config",
    "get_signature_location",
    "get_signature_size",
    "reset_all",
    "save_org_config",
]

import base64
import binascii
import logging
import os
from dataclasses import dataclass

from ..constants import (
    AES_KEY_SIZE,
    CA_MODES,
    DEFAULT_CA_MODE,
    DEFAULT_ORG_COUNTRY,
    DEFAULT_ORG_LOCALITY,
    DEFAULT_ORG_NAME,
    DEFAULT_ORG_STATE,
    DEFAULT_SIGNATURE_LOCATION,
    DEFAULT_SIGNATURE_SIZE,
    ENV_CA_MODE,
    ENV_MASTER_KEY,
    ENV_ORG_COUNTRY,
    ENV_ORG_LOCALITY,
    ENV_ORG_NAME,
    ENV_ORG_STATE,
    ENV_SIGNATURE_LOCATION,
    ENV_SIGNATURE_SIZE,
    MAX_SIGNATURE_SIZE,
    MIN_SIGNATURE_SIZE,
)
from ..errors import ConfigError
from ._storage import CONFIG_DIR, CONFIG_FILE, load_config, load_raw_config, save_config

_logger = logging.getLogger(__name__)


def _env(name: str) -> str:
    return os.environ.get(name, "").strip()


# ── Organization identity ────────────────────────────────────────────


@dataclass(frozen=True)
class OrgConfig:
    """Distinguished-name attributes shared by every certificate the CA issues."""

    name: str = DEFAULT_ORG_NAME
    country: str = DEFAULT_ORG_COUNTRY
    state: str = DEFAULT_ORG_STATE
    locality: str = DEFAULT_ORG_LOCALITY


_ORG_FIELDS = (
    ("name", ENV_ORG_NAME, "org_name", DEFAULT_ORG_NAME),
    ("country", ENV_ORG_COUNTRY, "org_country", DEFAULT_ORG_COUNTRY),
    ("state", ENV_ORG_STATE, "org_state", DEFAULT_ORG_STATE),
    ("locality", ENV_ORG_LOCALITY, "org_locality", DEFAULT_ORG_LOCALITY),
)


def get_org_config() -> OrgConfig:
    """
    Resolve the organization identity used in CA subjects.

    Priority: env vars > config file > built-in defaults.
    """
    config = load_config()
    values: dict[str, str] = {}
    for attr, env_name, key, default in _ORG_FIELDS:
        values[attr] = _env(env_name) or config.get(key) or default  # type: ignore[assignment]
    if len(values["country"]) != 2:
        raise ConfigError(
            f"Organization country must be a two-letter code, got {values['country']!r}"
        )
    return OrgConfig(**values)


def save_org_config(org: OrgConfig) -> None:
    """Persist organization identity, preserving unrelated config keys."""
    config = load_raw_config()
    for attr, _env_name, key, _default in _ORG_FIELDS:
        config[key] = getattr(org, attr)
    save_config(config)


# ── CA settings ──────────────────────────────────────────────────────


def get_ca_mode() -> str:
    """
    Resolve the CA failure mode.

    Returns:
        "strict" (refuse to run without CA material) or "lax"
        (log and disable signing).
    """
    mode = _env(ENV_CA_MODE).lower()
    if mode:
        if mode in CA_MODES:
            return mode
        _logger.warning("Invalid %s value %r, using default", ENV_CA_MODE, mode)
    return load_config().get("ca_mode", DEFAULT_CA_MODE)


def get_master_key() -> bytes | None:
    """
    Decode the AES-256 key that protects stored CA private keys.

    Returns:
        32 raw key bytes, or None if the variable is unset.

    Raises:
        ConfigError: If the variable is set but is not base64 of 32 bytes.
    """
    raw = _env(ENV_MASTER_KEY)
    if not raw:
        return None
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigError(f"{ENV_MASTER_KEY} is not valid base64") from e
    if len(key) != AES_KEY_SIZE:
        raise ConfigError(
            f"{ENV_MASTER_KEY} must decode to {AES_KEY_SIZE} bytes, got {len(key)}"
        )
    return key


# ── Signature settings ───────────────────────────────────────────────


def get_signature_size() -> int:
    """
    Resolve the reserved /Contents size in bytes.

    Priority: env var > config file > default.  Out-of-range values are
    logged and replaced by the default.
    """
    size_str = _env(ENV_SIGNATURE_SIZE)
    if size_str:
        try:
            size = int(size_str)
        except ValueError:
            _logger.warning(
                "Invalid %s value %r, using default", ENV_SIGNATURE_SIZE, size_str
            )
            return DEFAULT_SIGNATURE_SIZE
        if size < MIN_SIGNATURE_SIZE or size > MAX_SIGNATURE_SIZE:
            _logger.warning(
                "%s=%d out of range [%d, %d], using default",
                ENV_SIGNATURE_SIZE,
                size,
                MIN_SIGNATURE_SIZE,
                MAX_SIGNATURE_SIZE,
            )
            return DEFAULT_SIGNATURE_SIZE
        return size
    return load_config().get("signature_size", DEFAULT_SIGNATURE_SIZE)


def get_signature_location() -> str:
    """Resolve the /Location entry written into signature dictionaries."""
    return (
        _env(ENV_SIGNATURE_LOCATION)
        or load_config().get("signature_location")
        or DEFAULT_SIGNATURE_LOCATION
    )


def reset_all() -> None:
    """Clear the config file back to an empty document."""
    save_config({})
