"""Tests for letmesign.config -- config file and environment resolution."""

from __future__ import annotations

import base64
import json
import os
from unittest.mock import patch

import pytest

from letmesign.config import (
    OrgConfig,
    get_ca_mode,
    get_master_key,
    get_org_config,
    get_signature_location,
    get_signature_size,
    reset_all,
    save_org_config,
)
from letmesign.config._storage import load_config, load_raw_config, save_config, write_json_atomic
from letmesign.constants import DEFAULT_SIGNATURE_LOCATION, DEFAULT_SIGNATURE_SIZE
from letmesign.errors import ConfigError

# ── load_config / save_config ─────────────────────────────────────


def test_load_empty(config_dir):
    """Loading when no config file exists should return empty dict."""
    assert load_config() == {}


def test_save_and_load(config_dir):
    _, config_file = config_dir
    save_config({"org_name": "Acme", "signature_size": 8192})
    assert config_file.exists()

    loaded = load_config()
    assert loaded.get("org_name") == "Acme"
    assert loaded.get("signature_size") == 8192


def test_corrupt_file_is_ignored(config_dir):
    _, config_file = config_dir
    config_file.write_text("{not json", encoding="utf-8")
    assert load_raw_config() == {}


def test_non_dict_file_is_ignored(config_dir):
    _, config_file = config_dir
    config_file.write_text("[1, 2, 3]", encoding="utf-8")
    assert load_config() == {}


def test_wrong_types_dropped_on_load(config_dir):
    save_config({"org_name": 5, "signature_size": "big", "ca_mode": "maybe"})
    assert load_config() == {}


def test_out_of_range_size_dropped_on_load(config_dir):
    save_config({"signature_size": 100})
    assert "signature_size" not in load_config()


def test_unknown_keys_preserved(config_dir):
    _, config_file = config_dir
    save_config({"future_key": {"nested": True}})
    save_org_config(OrgConfig(name="Acme"))

    data = json.loads(config_file.read_text(encoding="utf-8"))
    assert data["future_key"] == {"nested": True}
    assert data["org_name"] == "Acme"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_saved_file_permissions(config_dir):
    _, config_file = config_dir
    save_config({"org_name": "Acme"})
    assert config_file.stat().st_mode & 0o777 == 0o600


def test_write_json_atomic_cleans_up_on_failure(tmp_path):
    target = tmp_path / "out.json"

    def failing_fdopen(*args, **kwargs):
        raise OSError("disk full")

    with patch("os.fdopen", failing_fdopen), pytest.raises(OSError, match="disk full"):
        write_json_atomic(target, {"a": 1})
    assert not target.exists()
    assert list(tmp_path.glob("*.tmp")) == []


def test_reset_all(config_dir):
    save_config({"org_name": "Acme"})
    reset_all()
    assert load_raw_config() == {}


# ── Organization ──────────────────────────────────────────────────


def test_org_defaults(config_dir):
    org = get_org_config()
    assert org == OrgConfig()
    assert org.name == "Letmesign LLC"
    assert org.country == "US"


def test_org_file_then_env_priority(config_dir, monkeypatch):
    save_org_config(OrgConfig(name="File Org", country="DE", state="Berlin", locality="Berlin"))
    assert get_org_config().name == "File Org"

    monkeypatch.setenv("LETMESIGN_ORG_NAME", "Env Org")
    org = get_org_config()
    assert org.name == "Env Org"
    assert org.country == "DE"


def test_org_bad_country(config_dir, monkeypatch):
    monkeypatch.setenv("LETMESIGN_ORG_COUNTRY", "USA")
    with pytest.raises(ConfigError, match="two-letter"):
        get_org_config()


# ── CA settings ───────────────────────────────────────────────────


def test_ca_mode_default(config_dir):
    assert get_ca_mode() == "strict"


def test_ca_mode_from_file(config_dir):
    save_config({"ca_mode": "LAX"})
    assert get_ca_mode() == "lax"


def test_ca_mode_env_wins(config_dir, monkeypatch):
    save_config({"ca_mode": "lax"})
    monkeypatch.setenv("LETMESIGN_CA_MODE", "strict")
    assert get_ca_mode() == "strict"


def test_ca_mode_invalid_env_falls_through(config_dir, monkeypatch):
    save_config({"ca_mode": "lax"})
    monkeypatch.setenv("LETMESIGN_CA_MODE", "paranoid")
    assert get_ca_mode() == "lax"


def test_master_key_unset(config_dir):
    assert get_master_key() is None


def test_master_key_valid(config_dir, monkeypatch):
    raw = bytes(range(32))
    monkeypatch.setenv("MASTER_ENCRYPTION_KEY", base64.b64encode(raw).decode())
    assert get_master_key() == raw


def test_master_key_wrong_length(config_dir, monkeypatch):
    monkeypatch.setenv("MASTER_ENCRYPTION_KEY", base64.b64encode(b"short").decode())
    with pytest.raises(ConfigError, match="32 bytes"):
        get_master_key()


def test_master_key_not_base64(config_dir, monkeypatch):
    monkeypatch.setenv("MASTER_ENCRYPTION_KEY", "not*base64!")
    with pytest.raises(ConfigError, match="base64"):
        get_master_key()


# ── Signature settings ────────────────────────────────────────────


def test_signature_size_default(config_dir):
    assert get_signature_size() == DEFAULT_SIGNATURE_SIZE


def test_signature_size_priority(config_dir, monkeypatch):
    save_config({"signature_size": 8192})
    assert get_signature_size() == 8192
    monkeypatch.setenv("LETMESIGN_SIGNATURE_SIZE", "32768")
    assert get_signature_size() == 32768


@pytest.mark.parametrize("value", ["abc", "10", "99999999"])
def test_signature_size_bad_env(config_dir, monkeypatch, value):
    monkeypatch.setenv("LETMESIGN_SIGNATURE_SIZE", value)
    assert get_signature_size() == DEFAULT_SIGNATURE_SIZE


def test_signature_location_priority(config_dir, monkeypatch):
    assert get_signature_location() == DEFAULT_SIGNATURE_LOCATION
    save_config({"signature_location": "Office"})
    assert get_signature_location() == "Office"
    monkeypatch.setenv("LETMESIGN_SIGNATURE_LOCATION", "Remote")
    assert get_signature_location() == "Remote"
