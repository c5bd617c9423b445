"""Tests for clinisign.api -- high-level convenience API."""

from __future__ import annotations

import datetime
import io
from unittest.mock import patch

import pikepdf
import pytest

from clinisign import (
    SignatureResult,
    SigningOptions,
    inspect_bundle,
    sign_document,
)
from clinisign.constants import ENV_DIGEST, ENV_RESERVED_CAPACITY, ENV_UTC_OFFSET
from clinisign.core.cms import read_signer_attributes
from clinisign.core.finisher import INTEGRITY_RISK_MESSAGE, find_signature_widget
from clinisign.core.pdf import (
    extract_cms,
    locate_signature_slot,
    verify_all_embedded_signatures,
    verify_embedded_signature,
)
from clinisign.errors import (
    CertificateChainError,
    ClinisignError,
    ConfigError,
    DocumentFormatError,
    IntegrityRiskWarning,
    InvalidCredentialsError,
    ReservedSpaceExceededError,
)

from conftest import SIGNING_TIME, append_xref_stream_revision, make_pdf


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (ENV_RESERVED_CAPACITY, ENV_DIGEST, ENV_UTC_OFFSET):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def _sig_dict(data: bytes) -> dict[str, str]:
    with pikepdf.open(io.BytesIO(data)) as pdf:
        _idx, widget = find_signature_widget(pdf)
        return {str(k): str(v) for k, v in widget.V.items() if k != "/Contents"}


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_sign_defaults(pdf_bytes, bundle):
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)
    assert isinstance(result, SignatureResult)
    assert result.data.startswith(pdf_bytes)
    assert len(result.data) == result.placeholder_length
    assert result.digest_algorithm == "sha256"
    assert result.signing_time == SIGNING_TIME
    assert result.verifiable
    assert result.warnings == ()
    assert verify_embedded_signature(result.data, expected_digest=result.digest)["valid"]


def test_byte_range_covers_file(pdf_bytes, bundle):
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)
    off1, len1, off2, len2 = result.byte_range
    assert off1 == 0
    assert off2 + len2 == len(result.data)
    assert result.data[len1 : len1 + 1] == b"<"
    assert result.data[off2 - 1 : off2] == b">"


def test_name_and_contact_from_certificate(pdf_bytes, bundle):
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)
    sig = _sig_dict(result.data)
    assert sig["/Name"] == "Dra. Ana Souza"
    assert sig["/ContactInfo"] == "ana.souza@clinica.example"
    assert "/Reason" not in sig


def test_explicit_stamp_values(pdf_bytes, bundle):
    result = sign_document(
        pdf_bytes,
        bundle,
        signing_time=SIGNING_TIME,
        name="Ana Souza",
        contact="recepcao@clinica.example",
        reason="Receita",
        location="Campinas",
        registry_id="CRM-SP 123456",
    )
    sig = _sig_dict(result.data)
    assert sig["/Name"] == "Ana Souza"
    assert sig["/ContactInfo"] == "recepcao@clinica.example"
    assert sig["/Reason"] == "Receita"
    assert sig["/Location"] == "Campinas"
    assert sig["/M"].startswith("D:20250305173000")


def test_naive_signing_time_is_utc(pdf_bytes, bundle):
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME.replace(tzinfo=None))
    assert result.signing_time == SIGNING_TIME


def test_default_signing_time_is_now(pdf_bytes, bundle):
    before = datetime.datetime.now(datetime.timezone.utc)
    result = sign_document(pdf_bytes, bundle)
    assert result.signing_time >= before
    assert result.signing_time.tzinfo is not None


def test_signing_time_in_cms(pdf_bytes, bundle):
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)
    cms_der = extract_cms(result.data, locate_signature_slot(result.data))
    assert read_signer_attributes(cms_der).signing_time == SIGNING_TIME


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def test_options_object(bundle):
    opts = SigningOptions(page="first", rect=(40, 40, 320, 120), signing_time=SIGNING_TIME)
    result = sign_document(make_pdf(pages=3), bundle, options=opts)
    assert result.rect == (40.0, 40.0, 320.0, 120.0)
    with pikepdf.open(io.BytesIO(result.data)) as pdf:
        assert find_signature_widget(pdf)[0] == 0


def test_keyword_overrides_options(pdf_bytes, bundle):
    opts = SigningOptions(digest_algorithm="sha256", signing_time=SIGNING_TIME)
    result = sign_document(pdf_bytes, bundle, options=opts, digest_algorithm="sha512")
    assert result.digest_algorithm == "sha512"
    assert len(result.digest) == 64
    # The options object itself is untouched
    assert opts.digest_algorithm == "sha256"


def test_unknown_keyword(pdf_bytes, bundle):
    with pytest.raises(TypeError, match="colour"):
        sign_document(pdf_bytes, bundle, colour="blue")


def test_invalid_redraw_mode(pdf_bytes, bundle):
    with pytest.raises(ConfigError, match="redraw"):
        sign_document(pdf_bytes, bundle, redraw="sometimes")


def test_reserved_capacity_too_small(pdf_bytes, bundle):
    with pytest.raises(ReservedSpaceExceededError):
        sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME, reserved_capacity=1024)


@pytest.mark.parametrize("capacity", [0, 10])
def test_reserved_capacity_out_of_range(pdf_bytes, bundle, capacity):
    with pytest.raises(DocumentFormatError, match="out of range"):
        sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME, reserved_capacity=capacity)


def test_reserved_capacity_sets_slot(pdf_bytes, bundle):
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME, reserved_capacity=8192)
    slot = locate_signature_slot(result.data)
    assert slot.hex_length == 2 * 8192


# ---------------------------------------------------------------------------
# Environment defaults
# ---------------------------------------------------------------------------


def test_env_defaults_apply(pdf_bytes, bundle, clean_env):
    clean_env.setenv(ENV_RESERVED_CAPACITY, "20000")
    clean_env.setenv(ENV_DIGEST, "sha384")
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)
    assert result.digest_algorithm == "sha384"
    assert locate_signature_slot(result.data).hex_length == 40000


def test_explicit_options_beat_env(pdf_bytes, bundle, clean_env):
    clean_env.setenv(ENV_DIGEST, "sha384")
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME, digest_algorithm="sha256")
    assert result.digest_algorithm == "sha256"


# ---------------------------------------------------------------------------
# Credentials and documents
# ---------------------------------------------------------------------------


def test_wrong_passphrase_before_parsing(wrong_passphrase_bundle):
    with patch("clinisign.api.prepare_signature_placeholder") as mock_prepare:
        with pytest.raises(InvalidCredentialsError):
            sign_document(b"not a pdf", wrong_passphrase_bundle)
    mock_prepare.assert_not_called()


def test_expired_certificate(pdf_bytes, bundle):
    later = datetime.datetime(2040, 1, 1, tzinfo=datetime.timezone.utc)
    with pytest.raises(CertificateChainError):
        sign_document(pdf_bytes, bundle, signing_time=later)


def test_not_a_pdf(bundle):
    with pytest.raises(DocumentFormatError):
        sign_document(b"hello world", bundle, signing_time=SIGNING_TIME)


def test_chain_bundle(pdf_bytes, chain_bundle):
    result = sign_document(pdf_bytes, chain_bundle, signing_time=SIGNING_TIME)
    assert _sig_dict(result.data)["/Name"] == "Dr. Carlos Dias"
    assert verify_embedded_signature(result.data)["valid"]


def test_xref_stream_source(xref_stream_pdf_bytes, bundle):
    result = sign_document(xref_stream_pdf_bytes, bundle, signing_time=SIGNING_TIME)
    assert verify_embedded_signature(result.data)["valid"]


def test_signed_xref_stream_source_is_refused(pdf_bytes, bundle, chain_bundle):
    first = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)
    presigned = append_xref_stream_revision(first.data)
    assert [r["valid"] for r in verify_all_embedded_signatures(presigned)] == [True]

    with pytest.raises(DocumentFormatError, match="already signed"):
        sign_document(presigned, chain_bundle, signing_time=SIGNING_TIME)


def test_second_signature_keeps_first(pdf_bytes, bundle, chain_bundle):
    first = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)
    second = sign_document(first.data, chain_bundle, signing_time=SIGNING_TIME)
    assert second.verifiable
    assert [r["valid"] for r in verify_all_embedded_signatures(second.data)] == [True, True]


def test_post_sign_verification_failure(pdf_bytes, bundle):
    failed = {
        "valid": False,
        "structure_ok": True,
        "hash_ok": False,
        "signature_ok": True,
        "details": ["Hash MISMATCH!"],
        "signer": None,
    }
    with patch("clinisign.api.verify_embedded_signature", return_value=failed):
        with pytest.raises(ClinisignError, match="Post-sign verification FAILED"):
            sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME)


# ---------------------------------------------------------------------------
# Redraw modes
# ---------------------------------------------------------------------------


def test_redraw_incremental(pdf_bytes, bundle):
    result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME, redraw="incremental")
    assert result.verifiable
    assert result.warnings == ()
    assert len(result.data) > result.placeholder_length
    assert verify_embedded_signature(result.data[: result.placeholder_length])["valid"]
    assert verify_embedded_signature(result.data, expected_digest=result.digest)["valid"]


def test_redraw_resave(pdf_bytes, bundle):
    with pytest.warns(IntegrityRiskWarning):
        result = sign_document(pdf_bytes, bundle, signing_time=SIGNING_TIME, redraw="resave")
    assert not result.verifiable
    assert result.warnings == (INTEGRITY_RISK_MESSAGE,)
    assert not verify_embedded_signature(result.data)["valid"]


# ---------------------------------------------------------------------------
# inspect_bundle
# ---------------------------------------------------------------------------


def test_inspect_bundle(bundle, rsa_cert):
    summary = inspect_bundle(bundle)
    assert summary.common_name == "Dra. Ana Souza"
    assert summary.email == "ana.souza@clinica.example"
    assert summary.serial_number == rsa_cert.serial_number


def test_inspect_bundle_wrong_passphrase(wrong_passphrase_bundle):
    with pytest.raises(InvalidCredentialsError):
        inspect_bundle(wrong_passphrase_bundle)
