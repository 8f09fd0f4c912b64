"""
Configuration management.

Unified API for all config-related functionality. Import from this
package directly instead of from the individual submodules.
"""

from __future__ import annotations

from .config import (
    CONFIG_DIR,
    CONFIG_FILE,
    OrgConfig,
    get_ca_mode,
    get_master_key,
    get_org_config,
    get_signature_location,
    get_signature_size,
    reset_all,
    save_org_config,
)

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
