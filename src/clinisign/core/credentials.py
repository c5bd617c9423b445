"""
Certificate bundles: unlocking, chain validation, and summaries.

A :class:`CertificateBundle` is the caller's capability to sign: the raw
PKCS#12 bytes plus the passphrase.  It is passed into every signing call
and never stored globally.  Unlocking yields an :class:`UnlockedIdentity`
that lives only as long as the call that created it.
"""

from __future__ import annotations

__all__ = [
    "CertificateBundle",
    "CertificateSummary",
    "UnlockedIdentity",
    "summarize_identity",
    "validate_identity",
]

import datetime
import logging
from dataclasses import dataclass, field

from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from ..constants import MAX_BUNDLE_SIZE
from ..errors import CertificateChainError, InvalidCredentialsError

_logger = logging.getLogger(__name__)

SigningKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey


@dataclass(frozen=True)
class UnlockedIdentity:
    """Private key and certificates recovered from a bundle.

    Attributes:
        private_key: RSA or EC private key.
        certificate: The signer's certificate.
        chain: Additional certificates shipped in the bundle.
    """

    private_key: SigningKey = field(repr=False)
    certificate: x509.Certificate
    chain: tuple[x509.Certificate, ...] = ()

    @property
    def key_type(self) -> str:
        """``"rsa"`` or ``"ecdsa"``."""
        return "rsa" if isinstance(self.private_key, rsa.RSAPrivateKey) else "ecdsa"

    def asn1_certificates(self) -> list[asn1_x509.Certificate]:
        """Signer certificate followed by the chain, as asn1crypto objects."""
        return [
            asn1_x509.Certificate.load(cert.public_bytes(serialization.Encoding.DER))
            for cert in (self.certificate, *self.chain)
        ]


@dataclass(frozen=True)
class CertificateBundle:
    """PKCS#12 bytes and the passphrase that unlocks them.

    The raw bytes may be shared read-only between concurrent calls; the
    passphrase is excluded from ``repr`` so it never reaches a log line.
    """

    data: bytes = field(repr=False)
    passphrase: str | bytes | None = field(default=None, repr=False)

    def _password_bytes(self) -> bytes | None:
        if self.passphrase is None or self.passphrase in ("", b""):
            return None
        if isinstance(self.passphrase, str):
            return self.passphrase.encode("utf-8")
        return self.passphrase

    def unlock(self) -> UnlockedIdentity:
        """Decrypt the bundle.

        Raises:
            InvalidCredentialsError: Wrong passphrase, malformed bundle,
                missing key or certificate, or an unsupported key type.
        """
        if not self.data:
            raise InvalidCredentialsError("Certificate bundle is empty.")
        if len(self.data) > MAX_BUNDLE_SIZE:
            raise InvalidCredentialsError(
                f"Certificate bundle too large: {len(self.data)} bytes "
                f"(max {MAX_BUNDLE_SIZE} bytes)"
            )

        try:
            key, cert, additional = pkcs12.load_key_and_certificates(
                self.data, self._password_bytes()
            )
        except ValueError as e:
            # cryptography uses ValueError for both a bad password and a
            # malformed container; the message is kept generic on purpose.
            raise InvalidCredentialsError(
                "Cannot unlock certificate bundle: wrong passphrase or malformed PKCS#12 data."
            ) from e

        if key is None:
            raise InvalidCredentialsError("Certificate bundle contains no private key.")
        if cert is None:
            raise InvalidCredentialsError("Certificate bundle contains no signing certificate.")
        if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
            raise InvalidCredentialsError(
                f"Unsupported key type {type(key).__name__}; only RSA and EC keys can sign."
            )

        _logger.debug(
            "Unlocked certificate bundle: %d bytes, %d chain certificate(s)",
            len(self.data),
            len(additional),
        )
        return UnlockedIdentity(private_key=key, certificate=cert, chain=tuple(additional))


# ── Validation ───────────────────────────────────────────────────────


def _check_validity_window(cert: x509.Certificate, at: datetime.datetime, role: str) -> None:
    not_before = cert.not_valid_before_utc
    not_after = cert.not_valid_after_utc
    if at < not_before:
        raise CertificateChainError(
            f"{role} certificate is not yet valid (notBefore: {not_before.isoformat()})"
        )
    if at > not_after:
        raise CertificateChainError(
            f"{role} certificate has expired (notAfter: {not_after.isoformat()})"
        )


def _public_key_der(key: object) -> bytes:
    return key.public_bytes(  # type: ignore[attr-defined]
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def validate_identity(
    identity: UnlockedIdentity, at: datetime.datetime | None = None
) -> list[x509.Certificate]:
    """Validate an unlocked identity before it signs anything.

    Checks that the private key matches the certificate, that every
    certificate is valid at ``at`` (default now), and that each link of
    the chain is directly issued by the next one.  Certificates in the
    bundle that are not part of the signer's path are ignored.  No trust
    anchor or revocation check is made.

    Returns:
        The certification path, signer first.

    Raises:
        CertificateChainError: On any failed check.
    """
    if at is None:
        at = datetime.datetime.now(datetime.timezone.utc)
    elif at.tzinfo is None:
        at = at.replace(tzinfo=datetime.timezone.utc)

    leaf = identity.certificate
    if _public_key_der(identity.private_key.public_key()) != _public_key_der(leaf.public_key()):
        raise CertificateChainError("Private key does not match the signing certificate.")
    _check_validity_window(leaf, at, "Signing")

    path = [leaf]
    remaining = list(identity.chain)
    current = leaf
    while current.issuer != current.subject:
        issuer = next((c for c in remaining if c.subject == current.issuer), None)
        if issuer is None:
            _logger.debug(
                "Chain ends at %s (issuer not in bundle)", current.subject.rfc4514_string()
            )
            break
        try:
            current.verify_directly_issued_by(issuer)
        except (ValueError, TypeError) as e:
            raise CertificateChainError(
                f"Certificate {current.subject.rfc4514_string()} is not validly issued by "
                f"{issuer.subject.rfc4514_string()}: {e}"
            ) from e
        except InvalidSignature as e:
            # InvalidSignature carries no message
            raise CertificateChainError(
                f"Invalid issuer signature on {current.subject.rfc4514_string()}"
            ) from e
        _check_validity_window(issuer, at, "Issuer")
        path.append(issuer)
        remaining.remove(issuer)
        current = issuer

    return path


# ── Summary ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CertificateSummary:
    """Human-readable facts about a signing certificate."""

    subject: str
    issuer: str
    serial_number: int
    not_valid_before: datetime.datetime
    not_valid_after: datetime.datetime
    common_name: str | None = None
    email: str | None = None


def _name_attr(name: x509.Name, oid: x509.ObjectIdentifier) -> str | None:
    attrs = name.get_attributes_for_oid(oid)
    if not attrs:
        return None
    value = attrs[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def summarize_identity(identity: UnlockedIdentity) -> CertificateSummary:
    """Summarize the signing certificate of an unlocked identity.

    Names are rendered with asn1crypto's ``human_friendly`` form, which
    copes with BMPString-encoded attributes used by some national CAs.
    """
    cert = identity.certificate
    asn1_cert = identity.asn1_certificates()[0]
    return CertificateSummary(
        subject=asn1_cert.subject.human_friendly,
        issuer=asn1_cert.issuer.human_friendly,
        serial_number=cert.serial_number,
        not_valid_before=cert.not_valid_before_utc,
        not_valid_after=cert.not_valid_after_utc,
        common_name=_name_attr(cert.subject, x509.NameOID.COMMON_NAME),
        email=_name_attr(cert.subject, x509.NameOID.EMAIL_ADDRESS),
    )
