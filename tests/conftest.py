"""Shared test fixtures for the Letmesign test suite."""

from __future__ import annotations

import io
from unittest.mock import patch

import pytest


def _make_pdf(pages: int = 1, page_size: tuple[float, float] = (612, 792), **docinfo: str) -> bytes:
    """Build a small uncompressed PDF with blank pages."""
    import pikepdf

    pdf = pikepdf.Pdf.new()
    for _ in range(pages):
        pdf.add_blank_page(page_size=page_size)
    for key, value in docinfo.items():
        pdf.docinfo[f"/{key}"] = value
    buf = io.BytesIO()
    pdf.save(buf, compress_streams=False)
    return buf.getvalue()


@pytest.fixture
def valid_pdf_bytes():
    """A one-page US Letter PDF."""
    return _make_pdf()


@pytest.fixture
def three_page_pdf():
    return _make_pdf(pages=3)


@pytest.fixture
def make_pdf():
    """Factory for in-memory test PDFs."""
    return _make_pdf


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Redirect config to a temp directory and clear config env vars."""
    for name in (
        "MASTER_ENCRYPTION_KEY",
        "LETMESIGN_ORG_NAME",
        "LETMESIGN_ORG_COUNTRY",
        "LETMESIGN_ORG_STATE",
        "LETMESIGN_ORG_LOCALITY",
        "LETMESIGN_CA_MODE",
        "LETMESIGN_SIGNATURE_SIZE",
        "LETMESIGN_SIGNATURE_LOCATION",
    ):
        monkeypatch.delenv(name, raising=False)
    config_file = tmp_path / "config.json"
    with (
        patch("letmesign.config._storage.CONFIG_DIR", tmp_path),
        patch("letmesign.config._storage.CONFIG_FILE", config_file),
    ):
        yield tmp_path, config_file


@pytest.fixture(scope="session")
def ca_service():
    """An initialized in-memory CA shared across the session.

    Root and intermediate key generation is the slow part, so the CA is
    built once.  Tests that mutate CA state build their own.
    """
    from letmesign.config import OrgConfig
    from letmesign.core.ca import CAService, InMemoryCertificateRepository, generate_master_key

    ca = CAService(
        InMemoryCertificateRepository(),
        master_key=generate_master_key(),
        org=OrgConfig(name="Test Org", country="US", state="CA", locality="Test City"),
        strict=True,
    )
    ca.initialize()
    return ca
