# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Detached CMS (PKCS#7) signature containers.

Builds a ``SignedData`` over a precomputed byte-range digest with
asn1crypto, signs the DER-encoded signed attributes with the
``cryptography`` key, and reads the same structures back for
verification.
"""

from __future__ import annotations

__all__ = [
    "SignerAttributes",
    "build_signed_data",
    "read_signer_attributes",
    "verify_signer_signature",
]

import datetime
import hashlib
import logging
from typing import TYPE_CHECKING, NamedTuple

# asn1crypto.tsp registers the signing_certificate_v2 attribute type
from asn1crypto import algos, cms, core, tsp
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from ..errors import ClinisignError

if TYPE_CHECKING:
    from .credentials import UnlockedIdentity

_logger = logging.getLogger(__name__)

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

# UTCTime covers 1950-2049; later dates need GeneralizedTime (RFC 5652 11.3)
_UTC_TIME_LAST_YEAR = 2049


def _simple_attribute(name: str, value: object) -> cms.CMSAttribute:
    return cms.CMSAttribute({"type": cms.CMSAttributeType(name), "values": (value,)})


def _signing_time_value(dt: datetime.datetime) -> cms.Time:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    dt = dt.astimezone(datetime.timezone.utc)
    if dt.year <= _UTC_TIME_LAST_YEAR:
        return cms.Time({"utc_time": core.UTCTime(dt)})
    return cms.Time({"generalized_time": core.GeneralizedTime(dt)})


def _signing_certificate_v2(cert: asn1_x509.Certificate, digest_algorithm: str) -> tsp.SigningCertificateV2:
    issuer_serial = tsp.IssuerSerial(
        {
            "issuer": [asn1_x509.GeneralName({"directory_name": cert.issuer})],
            "serial_number": cert["tbs_certificate"]["serial_number"],
        }
    )
    return tsp.SigningCertificateV2(
        {
            "certs": [
                tsp.ESSCertIDv2(
                    {
                        "hash_algorithm": algos.DigestAlgorithm({"algorithm": digest_algorithm}),
                        "cert_hash": hashlib.new(digest_algorithm, cert.dump()).digest(),
                        "issuer_serial": issuer_serial,
                    }
                )
            ]
        }
    )


def _signature_mechanism(identity: UnlockedIdentity, digest_algorithm: str) -> str:
    suffix = "rsa" if identity.key_type == "rsa" else "ecdsa"
    return f"{digest_algorithm}_{suffix}"


def _sign_raw(identity: UnlockedIdentity, data: bytes, digest_algorithm: str) -> bytes:
    hash_algo = _HASHES[digest_algorithm]()
    key = identity.private_key
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(data, padding.PKCS1v15(), hash_algo)
    return key.sign(data, ec.ECDSA(hash_algo))


def build_signed_data(
    digest: bytes,
    digest_algorithm: str,
    identity: UnlockedIdentity,
    signing_time: datetime.datetime,
) -> bytes:
    """Produce a detached CMS signature from a raw data digest.

    Signed attributes: content type, signing time, message digest and
    the ESS signing-certificate-v2 reference to the signer.  The signer
    certificate and the bundle's chain are embedded.

    Args:
        digest: Digest of the signed byte ranges.
        digest_algorithm: hashlib name matching ``digest``.
        identity: Unlocked key and certificates.
        signing_time: Time asserted by the signer.

    Returns:
        DER-encoded ``ContentInfo``.
    """
    if digest_algorithm not in _HASHES:
        raise ClinisignError(f"Unsupported digest algorithm: {digest_algorithm}")

    certs = identity.asn1_certificates()
    signing_cert = certs[0]

    signed_attrs = cms.CMSAttributes(
        [
            _simple_attribute("content_type", "data"),
            _simple_attribute("signing_time", _signing_time_value(signing_time)),
            _simple_attribute("message_digest", digest),
            _simple_attribute(
                "signing_certificate_v2", _signing_certificate_v2(signing_cert, digest_algorithm)
            ),
        ]
    )

    # The signature covers the DER encoding of the signed attributes
    signature = _sign_raw(identity, signed_attrs.dump(), digest_algorithm)

    digest_algorithm_obj = algos.DigestAlgorithm({"algorithm": digest_algorithm})
    signer_info = cms.SignerInfo(
        {
            "version": "v1",
            "sid": cms.SignerIdentifier(
                {
                    "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                        {
                            "issuer": signing_cert.issuer,
                            "serial_number": signing_cert.serial_number,
                        }
                    )
                }
            ),
            "digest_algorithm": digest_algorithm_obj,
            "signature_algorithm": algos.SignedDigestAlgorithm(
                {"algorithm": _signature_mechanism(identity, digest_algorithm)}
            ),
            "signed_attrs": signed_attrs,
            "signature": signature,
        }
    )

    signed_data = cms.SignedData(
        {
            "version": "v1",
            "digest_algorithms": cms.DigestAlgorithms((digest_algorithm_obj,)),
            "encap_content_info": {"content_type": "data"},
            "certificates": [
                cms.CertificateChoices(name="certificate", value=cert) for cert in certs
            ],
            "signer_infos": [signer_info],
        }
    )
    der = cms.ContentInfo(
        {"content_type": cms.ContentType("signed_data"), "content": signed_data}
    ).dump()
    _logger.debug("Built CMS SignedData: %d bytes, %d certificate(s)", len(der), len(certs))
    return der


# ── Reading ──────────────────────────────────────────────────────────


class SignerAttributes(NamedTuple):
    """Values read from the first SignerInfo of a CMS blob."""

    digest_algorithm: str
    message_digest: bytes
    signing_time: datetime.datetime | None
    certificate: asn1_x509.Certificate | None


def _load_signer_info(cms_der: bytes) -> tuple[cms.SignedData, cms.SignerInfo]:
    try:
        content_info = cms.ContentInfo.load(cms_der)
        if content_info["content_type"].native != "signed_data":
            raise ClinisignError("CMS blob is not SignedData")
        signed_data = content_info["content"]
        signer_infos = signed_data["signer_infos"]
    except (ValueError, TypeError, KeyError) as e:
        raise ClinisignError(f"Failed to parse CMS blob: {e}") from e
    if not signer_infos:
        raise ClinisignError("CMS blob has no SignerInfo")
    return signed_data, signer_infos[0]


def _signer_certificate(
    signed_data: cms.SignedData, signer_info: cms.SignerInfo
) -> asn1_x509.Certificate | None:
    sid = signer_info["sid"]
    certs = [c.chosen for c in signed_data["certificates"] or [] if c.name == "certificate"]
    if sid.name == "issuer_and_serial_number":
        issuer = sid.chosen["issuer"]
        serial = sid.chosen["serial_number"].native
        for cert in certs:
            if cert.issuer == issuer and cert.serial_number == serial:
                return cert
    elif sid.name == "subject_key_identifier":
        for cert in certs:
            if cert.key_identifier == sid.chosen.native:
                return cert
    return certs[0] if certs else None


def read_signer_attributes(cms_der: bytes) -> SignerAttributes:
    """Read digest algorithm, messageDigest, signing time and signer certificate.

    Raises:
        ClinisignError: If the blob is not a SignedData with signed attributes.
    """
    signed_data, signer_info = _load_signer_info(cms_der)
    signed_attrs = signer_info["signed_attrs"]
    if not signed_attrs:
        raise ClinisignError("CMS SignerInfo has no signed attributes")

    message_digest = None
    signing_time = None
    for attr in signed_attrs:
        name = attr["type"].native
        if name == "message_digest":
            message_digest = attr["values"][0].native
        elif name == "signing_time":
            signing_time = attr["values"][0].native
    if message_digest is None:
        raise ClinisignError("CMS signed attributes lack messageDigest")

    return SignerAttributes(
        digest_algorithm=signer_info["digest_algorithm"]["algorithm"].native,
        message_digest=message_digest,
        signing_time=signing_time,
        certificate=_signer_certificate(signed_data, signer_info),
    )


def verify_signer_signature(cms_der: bytes) -> bool:
    """Check the SignerInfo signature over the signed attributes.

    Uses the public key of the embedded signer certificate.  Returns
    False on a bad signature; raises only if the blob cannot be read.
    """
    signed_data, signer_info = _load_signer_info(cms_der)
    cert = _signer_certificate(signed_data, signer_info)
    if cert is None:
        raise ClinisignError("CMS blob embeds no signer certificate")

    digest_name = signer_info["digest_algorithm"]["algorithm"].native
    hash_cls = _HASHES.get(digest_name)
    if hash_cls is None:
        raise ClinisignError(f"Unsupported digest algorithm in CMS: {digest_name}")

    # Signed attributes are [0] IMPLICIT in SignerInfo but signed as SET OF
    signed_bytes = signer_info["signed_attrs"].untag().dump()
    signature = signer_info["signature"].native
    sig_algo = signer_info["signature_algorithm"].signature_algo
    public_key = x509.load_der_x509_certificate(cert.dump()).public_key()

    try:
        if sig_algo == "rsassa_pkcs1v15" and isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, signed_bytes, padding.PKCS1v15(), hash_cls())
        elif sig_algo == "ecdsa" and isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, signed_bytes, ec.ECDSA(hash_cls()))
        else:
            _logger.debug("Unsupported signature mechanism: %s", sig_algo)
            return False
    except InvalidSignature:
        return False
    return True
