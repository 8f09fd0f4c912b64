"""
On-disk settings: ``~/.letmesign/config.json``.

Everything read from the file is filtered through a per-key validator, so
a hand-edited or partially written file never leaks wrong types into the
rest of the package.  Keys this version does not know are kept on disk
and survive a save.

:func:`write_json_atomic` is also what the file-backed certificate
repository persists CA rows with.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "load_config",
    "load_raw_config",
    "save_config",
    "write_json_atomic",
]

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, TypedDict

from ..constants import CA_MODES, MAX_SIGNATURE_SIZE, MIN_SIGNATURE_SIZE

_logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".letmesign"
CONFIG_FILE = CONFIG_DIR / "config.json"

_DIR_MODE = 0o700
_FILE_MODE = 0o600


class ConfigDict(TypedDict, total=False):
    """Known, validated keys of config.json."""

    org_name: str
    org_country: str
    org_state: str
    org_locality: str
    ca_mode: str
    signature_size: int
    signature_location: str


# ── Validators ──────────────────────────────────────────────────────
# Each returns the cleaned value, or None to drop the key.


def _text(key: str, value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _ca_mode(key: str, value: object) -> str | None:
    mode = _text(key, value)
    if mode is None:
        return None
    if mode.lower() not in CA_MODES:
        _logger.warning("Config ca_mode=%r is not one of %s, ignoring", mode, CA_MODES)
        return None
    return mode.lower()


def _signature_size(key: str, value: object) -> int | None:
    # bool is an int subclass; "true" is not a size
    if not isinstance(value, int) or isinstance(value, bool):
        return None
    if not MIN_SIGNATURE_SIZE <= value <= MAX_SIGNATURE_SIZE:
        _logger.warning(
            "Config %s=%d out of range [%d, %d], ignoring",
            key,
            value,
            MIN_SIGNATURE_SIZE,
            MAX_SIGNATURE_SIZE,
        )
        return None
    return value


_VALIDATORS: dict[str, Callable[[str, object], object]] = {
    "org_name": _text,
    "org_country": _text,
    "org_state": _text,
    "org_locality": _text,
    "signature_location": _text,
    "ca_mode": _ca_mode,
    "signature_size": _signature_size,
}


# ── Reading ─────────────────────────────────────────────────────────


def load_raw_config() -> dict[str, object]:
    """Everything in config.json, unknown keys included.

    A missing, unreadable or non-object file reads as ``{}``; the latter
    two are logged.
    """
    try:
        text = CONFIG_FILE.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        _logger.warning("Cannot read config file: %s", e)
        return {}

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        _logger.warning("Config file corrupted, ignoring: %s", e)
        return {}
    if not isinstance(data, dict):
        _logger.warning("Config file is not a JSON object, ignoring")
        return {}
    return data


def load_config() -> ConfigDict:
    """Only the known keys of config.json whose values pass validation."""
    raw = load_raw_config()
    cleaned: dict[str, object] = {}
    for key, validate in _VALIDATORS.items():
        if key not in raw:
            continue
        value = validate(key, raw[key])
        if value is not None:
            cleaned[key] = value
    return ConfigDict(**cleaned)  # type: ignore[typeddict-item]  # keys come from _VALIDATORS


# ── Writing ─────────────────────────────────────────────────────────


def _restrict(path: Path, mode: int) -> None:
    if os.name == "nt":
        return
    try:
        path.chmod(mode)
    except OSError:
        _logger.warning("Failed to set mode %o on %s; it may be readable by others", mode, path)


def write_json_atomic(path: Path, data: object) -> None:
    """Replace *path* with *data* as indented JSON, mode 0600.

    The content goes to a temp file in the same directory and is renamed
    over *path*, so readers see the old file or the new one, never a
    partial write.  The temp file is removed if anything fails.
    """
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True, mode=_DIR_MODE)
    # mkdir's mode is ignored for an existing directory
    _restrict(directory, _DIR_MODE)

    payload = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    fd, name = tempfile.mkstemp(dir=directory, suffix=".tmp")
    tmp = Path(name)
    try:
        try:
            handle = os.fdopen(fd, "w", encoding="utf-8")
        except BaseException:
            os.close(fd)
            raise
        with handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        _restrict(tmp, _FILE_MODE)
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def save_config(config: dict[str, object]) -> None:
    """Write *config* to config.json as given (no validation on write)."""
    write_json_atomic(CONFIG_FILE, config)
