"""Tests for letmesign.core.pdf.verify -- signature verification and tamper detection."""

from __future__ import annotations

import pytest

from letmesign.core.ca import TrustAnchor
from letmesign.core.pdf import (
    build_chain,
    extract_signature_data,
    find_trust_anchor,
    verify_pdf_signatures,
)
from letmesign.core.signing import sign_pdf
from letmesign.errors import VerificationErrorKind


@pytest.fixture
def signed(config_dir, ca_service, make_pdf):
    source = make_pdf(Title="ORIGINAL-TITLE")
    return sign_pdf(source, signer_email="jane@example.com", ca=ca_service)


def _flip(data: bytes, index: int) -> bytes:
    out = bytearray(data)
    out[index] = ord("1") if out[index] != ord("1") else ord("2")
    return bytes(out)


# ── Valid signatures ──────────────────────────────────────────────


def test_verify_valid_signature(signed, ca_service):
    (result,) = verify_pdf_signatures(signed, ca_service.trust_anchors())
    assert result["is_valid"] is True
    assert result["is_trusted"] is True
    assert result["trusted_anchor_name"] is not None
    assert result["signing_time"] is not None
    assert result["signing_time"].tzinfo is not None
    assert result["subject"].startswith("emailAddress=jane@example.com")
    assert "CN=jane@example.com" in result["subject"]
    assert result["serial"]
    assert result["not_before"] < result["not_after"]
    assert any("Digest OK" in d for d in result["details"])


def test_verify_untrusted_without_anchors(signed):
    (result,) = verify_pdf_signatures(signed)
    assert result["is_valid"] is True
    assert result["is_trusted"] is False
    assert result["errors"] == [VerificationErrorKind.UNTRUSTED_CHAIN]


def test_verify_accepts_bare_certificates(signed, ca_service):
    root = ca_service.snapshot().root_cert
    (result,) = verify_pdf_signatures(signed, [root])
    assert result["is_trusted"] is True
    assert result["trusted_anchor_name"] == "Test Org Root CA"


def test_verify_trusted_by_foreign_anchor_is_not_trusted(signed):
    from letmesign.config import OrgConfig
    from letmesign.core.ca import CAService, InMemoryCertificateRepository, generate_master_key

    other = CAService(
        InMemoryCertificateRepository(),
        master_key=generate_master_key(),
        org=OrgConfig(name="Other Org", country="US", state="NY", locality="Other City"),
        strict=True,
    )
    other.initialize()
    (result,) = verify_pdf_signatures(signed, other.trust_anchors())
    assert result["is_valid"] is True
    assert result["is_trusted"] is False


def test_verify_unsigned_pdf(valid_pdf_bytes):
    assert verify_pdf_signatures(valid_pdf_bytes) == []


# ── Tampering ─────────────────────────────────────────────────────


def test_tamper_outside_contents_is_digest_mismatch(signed, ca_service):
    index = signed.index(b"ORIGINAL-TITLE") + len("ORIGINAL-TITL")
    assert index < extract_signature_data(signed).byte_range[1]
    tampered = signed[:index] + b"X" + signed[index + 1 :]

    (result,) = verify_pdf_signatures(tampered, ca_service.trust_anchors())
    assert result["is_valid"] is False
    assert result["is_trusted"] is False
    assert result["errors"] == [VerificationErrorKind.DIGEST_MISMATCH]


def test_tamper_inside_contents(signed, ca_service):
    data = extract_signature_data(signed)
    _, len1, _, _ = data.byte_range
    # Last bytes of the DER are the signature value
    index = len1 + 1 + len(data.cms_der) * 2 - 10
    tampered = _flip(signed, index)

    (result,) = verify_pdf_signatures(tampered, ca_service.trust_anchors())
    assert result["is_valid"] is False
    assert result["errors"][0] in {
        VerificationErrorKind.INVALID_SIGNATURE,
        VerificationErrorKind.PARSE_FAILED,
    }


def test_tamper_der_header_is_parse_failure(signed, ca_service):
    data = extract_signature_data(signed)
    hex_start = data.byte_range[1] + 1
    tampered = signed[:hex_start] + b"31" + signed[hex_start + 2 :]

    (result,) = verify_pdf_signatures(tampered, ca_service.trust_anchors())
    assert result["is_valid"] is False
    assert result["errors"] == [VerificationErrorKind.PARSE_FAILED]


def test_appended_bytes_do_not_break_signature(signed, ca_service):
    """Data after the signed revision is outside the ByteRange."""
    extended = signed + b"% trailing comment\n"
    (result,) = verify_pdf_signatures(extended, ca_service.trust_anchors())
    assert result["is_valid"] is True


@pytest.mark.parametrize("byte_range", [5, "0 10 20 30", [0, 10, 20]])
def test_malformed_byterange_is_reported(byte_range):
    import io

    import pikepdf

    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page(page_size=(612, 792))
    sig = pikepdf.Dictionary(Type=pikepdf.Name.Sig, ByteRange=byte_range)
    field = pdf.make_indirect(
        pikepdf.Dictionary(FT=pikepdf.Name.Sig, T=pikepdf.String("Broken"), V=sig)
    )
    pdf.Root.AcroForm = pikepdf.Dictionary(Fields=pikepdf.Array([field]))
    buf = io.BytesIO()
    pdf.save(buf)

    (result,) = verify_pdf_signatures(buf.getvalue(), [])
    assert result["field_name"] == "Broken"
    assert result["is_valid"] is False
    assert result["errors"] == [VerificationErrorKind.PARSE_FAILED]


# ── Raw ByteRange fallback ────────────────────────────────────────


def test_raw_scan_when_pikepdf_cannot_open(signed, ca_service, caplog, monkeypatch):
    import pikepdf

    def refuse(*args, **kwargs):
        raise pikepdf.PdfError("damaged")

    monkeypatch.setattr(pikepdf, "open", refuse)
    with caplog.at_level("WARNING", logger="letmesign.core.pdf.verify"):
        results = verify_pdf_signatures(signed, ca_service.trust_anchors())
    assert len(results) == 1
    assert results[0]["field_name"] is None
    assert "scanning raw ByteRange" in caplog.text


# ── Chain helpers ─────────────────────────────────────────────────


def test_build_chain_follows_issuers(ca_service):
    creds = ca_service.issue_signing_cert("chain@example.com", "Chain")
    chain, problems = build_chain(creds.certificate, list(reversed(creds.chain)))
    assert problems == []
    assert chain == [creds.certificate, *creds.chain]


def test_build_chain_stops_without_parent(ca_service):
    creds = ca_service.issue_signing_cert("chain@example.com", "Chain")
    chain, problems = build_chain(creds.certificate, [])
    assert chain == [creds.certificate]
    assert problems == []


def test_find_trust_anchor(ca_service):
    creds = ca_service.issue_signing_cert("chain@example.com", "Chain")
    snap = ca_service.snapshot()
    root_anchor = TrustAnchor("root", snap.root_cert)
    intermediate_anchor = TrustAnchor("intermediate", snap.intermediate_cert)

    assert find_trust_anchor([creds.certificate, *creds.chain], [root_anchor]) == "root"
    # Top of a partial chain issued by an anchor
    assert find_trust_anchor([creds.certificate], [intermediate_anchor]) == "intermediate"
    assert find_trust_anchor([creds.certificate], [root_anchor]) is None
    assert find_trust_anchor([creds.certificate], []) is None
