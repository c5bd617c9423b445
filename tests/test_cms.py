"""Tests for clinisign.core.cms -- detached SignedData build and read-back."""

from __future__ import annotations

import datetime
import hashlib

import pytest
from asn1crypto import cms

from clinisign.core.cms import build_signed_data, read_signer_attributes, verify_signer_signature
from clinisign.errors import ClinisignError

from conftest import SIGNING_TIME

DIGEST = hashlib.sha256(b"clinic document bytes").digest()


@pytest.fixture(scope="module")
def rsa_cms(bundle):
    return build_signed_data(DIGEST, "sha256", bundle.unlock(), SIGNING_TIME)


def _signer_info(der: bytes) -> cms.SignerInfo:
    return cms.ContentInfo.load(der)["content"]["signer_infos"][0]


def test_content_info_is_signed_data(rsa_cms):
    info = cms.ContentInfo.load(rsa_cms)
    assert info["content_type"].native == "signed_data"
    signed_data = info["content"]
    assert signed_data["encap_content_info"]["content_type"].native == "data"
    # Detached: no encapsulated content
    assert signed_data["encap_content_info"]["content"].native is None


def test_signed_attribute_types(rsa_cms):
    names = [attr["type"].native for attr in _signer_info(rsa_cms)["signed_attrs"]]
    assert names == ["content_type", "signing_time", "message_digest", "signing_certificate_v2"]


def test_signing_certificate_v2_hash(rsa_cms, rsa_cert):
    from cryptography.hazmat.primitives import serialization

    attrs = {a["type"].native: a for a in _signer_info(rsa_cms)["signed_attrs"]}
    ess = attrs["signing_certificate_v2"]["values"][0]["certs"][0]
    expected = hashlib.sha256(rsa_cert.public_bytes(serialization.Encoding.DER)).digest()
    assert ess["cert_hash"].native == expected


def test_read_attributes(rsa_cms, rsa_cert):
    attrs = read_signer_attributes(rsa_cms)
    assert attrs.digest_algorithm == "sha256"
    assert attrs.message_digest == DIGEST
    assert attrs.signing_time == SIGNING_TIME
    assert attrs.certificate.serial_number == rsa_cert.serial_number


def test_signature_algorithm_rsa(rsa_cms):
    algo = _signer_info(rsa_cms)["signature_algorithm"]
    assert algo["algorithm"].native == "sha256_rsa"


def test_verify_rsa(rsa_cms):
    assert verify_signer_signature(rsa_cms) is True


def test_verify_ecdsa(ec_bundle):
    der = build_signed_data(DIGEST, "sha256", ec_bundle.unlock(), SIGNING_TIME)
    assert _signer_info(der)["signature_algorithm"]["algorithm"].native == "sha256_ecdsa"
    assert verify_signer_signature(der) is True


@pytest.mark.parametrize("algorithm", ["sha384", "sha512"])
def test_other_digests(bundle, algorithm):
    digest = hashlib.new(algorithm, b"x").digest()
    der = build_signed_data(digest, algorithm, bundle.unlock(), SIGNING_TIME)
    attrs = read_signer_attributes(der)
    assert attrs.digest_algorithm == algorithm
    assert attrs.message_digest == digest
    assert verify_signer_signature(der) is True


def test_chain_certificates_embedded(chain_bundle, chain_material):
    _ca_key, ca_cert, _leaf_key, leaf_cert = chain_material
    der = build_signed_data(DIGEST, "sha256", chain_bundle.unlock(), SIGNING_TIME)
    certs = cms.ContentInfo.load(der)["content"]["certificates"]
    assert [c.chosen.serial_number for c in certs] == [leaf_cert.serial_number, ca_cert.serial_number]
    # The signer is identified by issuer and serial, not by position
    assert read_signer_attributes(der).certificate.serial_number == leaf_cert.serial_number
    assert verify_signer_signature(der) is True


def test_far_future_signing_time_uses_generalized_time(bundle):
    when = datetime.datetime(2051, 6, 1, 12, 0, tzinfo=datetime.timezone.utc)
    der = build_signed_data(DIGEST, "sha256", bundle.unlock(), when)
    attrs = {a["type"].native: a for a in _signer_info(der)["signed_attrs"]}
    assert attrs["signing_time"]["values"][0].name == "generalized_time"
    assert read_signer_attributes(der).signing_time == when


def test_naive_signing_time_is_utc(bundle):
    der = build_signed_data(DIGEST, "sha256", bundle.unlock(), SIGNING_TIME.replace(tzinfo=None))
    assert read_signer_attributes(der).signing_time == SIGNING_TIME


def test_unsupported_digest(bundle):
    with pytest.raises(ClinisignError, match="Unsupported digest"):
        build_signed_data(DIGEST, "md5", bundle.unlock(), SIGNING_TIME)


def test_tampered_signature_is_invalid(rsa_cms):
    # The RSA signature value is the last element of the DER encoding
    tampered = bytearray(rsa_cms)
    tampered[-10] ^= 0xFF
    assert verify_signer_signature(bytes(tampered)) is False


def test_tampered_message_digest_is_invalid(rsa_cms):
    tampered = rsa_cms.replace(DIGEST, b"\x00" * len(DIGEST))
    assert read_signer_attributes(tampered).message_digest == b"\x00" * len(DIGEST)
    assert verify_signer_signature(tampered) is False


@pytest.mark.parametrize("blob", [b"", b"\x30\x03\x02\x01\x01", b"garbage"], ids=["empty", "int", "text"])
def test_unreadable_blob(blob):
    with pytest.raises(ClinisignError):
        read_signer_attributes(blob)
