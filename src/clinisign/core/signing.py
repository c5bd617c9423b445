"""
Core signing: digest a prepared PDF and splice in a detached CMS signature.

The bundle is unlocked and its chain validated before the document is
looked at, so a wrong passphrase never costs a PDF parse.
"""

from __future__ import annotations

__all__ = [
    "sign_prepared_document",
    "sign_with_identity",
]

import datetime
import logging
from typing import TYPE_CHECKING

from ..constants import DEFAULT_DIGEST_ALGORITHM, SUPPORTED_DIGESTS
from ..errors import ClinisignError
from .cms import build_signed_data
from .credentials import validate_identity
from .pdf.byterange import compute_byterange_digest, insert_signature, locate_signature_slot

if TYPE_CHECKING:
    from .credentials import CertificateBundle, UnlockedIdentity

_logger = logging.getLogger(__name__)


def _check_slot_empty(prepared_bytes: bytes, hex_start: int, hex_length: int) -> None:
    slot = prepared_bytes[hex_start : hex_start + hex_length]
    if slot.strip(b"0"):
        raise ClinisignError("Signature slot is not empty -- document is already signed.")


def sign_with_identity(
    prepared_bytes: bytes,
    identity: UnlockedIdentity,
    *,
    signing_time: datetime.datetime,
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM,
) -> bytes:
    """Sign a prepared document with an already unlocked and validated identity.

    Used by :func:`sign_prepared_document` and by the orchestration layer,
    which unlocks once per call.
    """
    if digest_algorithm not in SUPPORTED_DIGESTS:
        raise ClinisignError(
            f"Unsupported digest algorithm {digest_algorithm!r} "
            f"(valid: {', '.join(SUPPORTED_DIGESTS)})"
        )

    # Step 1: Locate the slot and make sure it is still empty
    slot = locate_signature_slot(prepared_bytes)
    _check_slot_empty(prepared_bytes, slot.hex_start, slot.hex_length)
    _logger.debug(
        "Signature slot: hex_start=%d, hex_length=%d, ByteRange=%s",
        slot.hex_start,
        slot.hex_length,
        list(slot.byte_range),
    )

    # Step 2: Digest everything outside the slot
    digest = compute_byterange_digest(prepared_bytes, digest_algorithm, slot)
    _logger.debug("ByteRange digest (%s): %s", digest_algorithm, digest.hex())

    # Step 3: Build the detached CMS
    cms_der = build_signed_data(digest, digest_algorithm, identity, signing_time)
    _logger.debug("CMS: %d bytes (slot holds %d)", len(cms_der), slot.hex_length // 2)

    # Step 4: Splice it in place
    signed_pdf = insert_signature(prepared_bytes, slot, cms_der)
    if len(signed_pdf) != len(prepared_bytes):
        raise ClinisignError(
            f"Signature insertion changed PDF size: {len(prepared_bytes)} -> {len(signed_pdf)}"
        )

    _logger.info("Signed PDF: %d bytes, CMS %d bytes", len(signed_pdf), len(cms_der))
    return signed_pdf


def sign_prepared_document(
    prepared_bytes: bytes,
    bundle: CertificateBundle,
    *,
    signing_time: datetime.datetime | None = None,
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM,
) -> bytes:
    """
    Sign a PDF prepared by :func:`prepare_signature_placeholder`.

    Args:
        prepared_bytes: Intermediate PDF with an empty signature slot.
        bundle: PKCS#12 bundle and passphrase.
        signing_time: Time asserted in the CMS (now if None).  The
            certificate must be valid at this time.
        digest_algorithm: sha256 (default), sha384 or sha512.

    Returns:
        Signed PDF, exactly as long as ``prepared_bytes``.

    Raises:
        InvalidCredentialsError: The bundle cannot be unlocked.
        CertificateChainError: The certificate or chain is unusable.
        DocumentFormatError: No usable /ByteRange slot.
        ReservedSpaceExceededError: The signature does not fit the slot.
    """
    if signing_time is None:
        signing_time = datetime.datetime.now(datetime.timezone.utc)

    identity = bundle.unlock()
    validate_identity(identity, at=signing_time)

    return sign_with_identity(
        prepared_bytes,
        identity,
        signing_time=signing_time,
        digest_algorithm=digest_algorithm,
    )
