# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Verification of embedded PDF signatures.

Recomputes the byte-range digest, compares it to the CMS messageDigest,
and checks the signer's signature over the signed attributes.  Supports
multi-signature PDFs.  Results are reported, never raised.
"""

from __future__ import annotations

import hashlib
import io
import logging
import re
from typing import TYPE_CHECKING, TypedDict

from ...errors import ClinisignError, DocumentFormatError
from .. import require_pikepdf as _require_pikepdf
from ..cms import read_signer_attributes, verify_signer_signature
from .byterange import (
    BYTERANGE_PATTERN,
    MIN_CMS_SIZE,
    SignatureSlot,
    extract_cms,
    signed_ranges,
    slot_from_match,
)

if TYPE_CHECKING:
    from asn1crypto import x509 as asn1_x509

_logger = logging.getLogger(__name__)


class VerificationResult(TypedDict):
    """Result of signature verification (single signature)."""

    valid: bool  # Overall result
    structure_ok: bool  # ByteRange and CMS structure valid
    hash_ok: bool  # Digest matches the CMS messageDigest
    signature_ok: bool  # Signer signature over the signed attributes
    details: list[str]  # Human-readable messages
    signer: dict[str, str | None] | None  # Certificate info (name, email, organization, dn)


def _structure_failure(message: str) -> VerificationResult:
    return {
        "valid": False,
        "structure_ok": False,
        "hash_ok": False,
        "signature_ok": False,
        "details": [f"Structure error: {message}"],
        "signer": None,
    }


def _signer_summary(cert: asn1_x509.Certificate | None) -> dict[str, str | None] | None:
    if cert is None:
        return None
    subject = cert.subject.native
    return {
        "name": subject.get("common_name"),
        "email": subject.get("email_address"),
        "organization": subject.get("organization_name"),
        "dn": cert.subject.human_friendly,
    }


def _verify_slot(
    pdf_bytes: bytes,
    slot: SignatureSlot,
    expected_digest: bytes | None = None,
) -> VerificationResult:
    """Core verification logic for a single signature slot.

    Args:
        pdf_bytes: Complete PDF file bytes.
        slot: The signature's ByteRange and hex slot.
        expected_digest: If provided, the exact digest that was signed.
    """
    details: list[str] = []

    # ── 1. Extract signature data ────────────────────────────────
    try:
        signed_data = signed_ranges(pdf_bytes, slot)
        cms_der = extract_cms(pdf_bytes, slot)
    except DocumentFormatError as e:
        return _structure_failure(str(e))
    details.append(f"ByteRange OK -- signed data: {len(signed_data)} bytes")
    details.append(f"CMS blob: {len(cms_der)} bytes")
    _off1, _len1, off2, len2 = slot.byte_range
    if off2 + len2 < len(pdf_bytes):
        details.append(
            f"Signed revision ends at {off2 + len2}; "
            f"{len(pdf_bytes) - off2 - len2} bytes appended later"
        )

    if len(cms_der) < MIN_CMS_SIZE:
        result = _structure_failure(f"CMS too small ({len(cms_der)} bytes) -- likely corrupt")
        result["details"][:0] = details
        return result

    # ── 2. Signed attributes and signer ──────────────────────────
    try:
        attrs = read_signer_attributes(cms_der)
    except ClinisignError as e:
        result = _structure_failure(str(e))
        result["details"][:0] = details
        return result

    signer = _signer_summary(attrs.certificate)
    if signer and signer.get("name"):
        details.append(f"Signer: {signer['name']}")
    if attrs.signing_time is not None:
        details.append(f"Signing time: {attrs.signing_time.isoformat()}")

    # ── 3. Digest verification ───────────────────────────────────
    hash_ok = False
    algo_upper = attrs.digest_algorithm.upper()
    try:
        actual = hashlib.new(attrs.digest_algorithm, signed_data).digest()
    except ValueError:
        details.append(f"Unsupported digest algorithm: {attrs.digest_algorithm}")
        actual = None

    if actual is not None:
        if actual != attrs.message_digest:
            details.append(
                f"Hash MISMATCH!\n"
                f"  ByteRange {algo_upper}:   {actual.hex()}\n"
                f"  CMS messageDigest:  {attrs.message_digest.hex()}"
            )
        elif expected_digest is not None and actual != expected_digest:
            details.append(
                f"Hash MISMATCH!\n"
                f"  ByteRange {algo_upper}:   {actual.hex()}\n"
                f"  Expected:           {expected_digest.hex()}"
            )
        else:
            hash_ok = True
            details.append(f"Hash OK -- {algo_upper} matches CMS messageDigest: {actual.hex()}")

    # ── 4. Signature over signed attributes ──────────────────────
    try:
        signature_ok = verify_signer_signature(cms_der)
    except ClinisignError as e:
        signature_ok = False
        details.append(f"Signature check failed: {e}")
    else:
        details.append("Signature OK" if signature_ok else "Signature INVALID")

    return {
        "valid": hash_ok and signature_ok,
        "structure_ok": True,
        "hash_ok": hash_ok,
        "signature_ok": signature_ok,
        "details": details,
        "signer": signer,
    }


def _structural_check(pdf_bytes: bytes) -> str:
    # Informational only; the authoritative checks are ByteRange + digest + signature.
    pikepdf = _require_pikepdf()
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            return f"pikepdf: valid PDF, {len(pdf.pages)} page(s)"
    except (ValueError, RuntimeError, OSError, pikepdf.PdfError) as e:
        _logger.warning("pikepdf structural check failed (non-fatal): %s", e)
        return f"pikepdf: structural warning -- {e}"


def _verify_match(
    pdf_bytes: bytes, br_match: re.Match[bytes], expected_digest: bytes | None = None
) -> VerificationResult:
    try:
        slot = slot_from_match(pdf_bytes, br_match)
    except DocumentFormatError as e:
        return _structure_failure(str(e))
    return _verify_slot(pdf_bytes, slot, expected_digest)


def verify_embedded_signature(
    pdf_bytes: bytes, expected_digest: bytes | None = None
) -> VerificationResult:
    """
    Verify the last embedded PDF signature.

    Checks:
    1. Structure -- ByteRange covers the file except the slot, CMS parses
    2. Digest -- recomputed over the byte ranges with the CMS digest
       algorithm, compared to the CMS messageDigest (and to
       ``expected_digest`` if given)
    3. Signature -- signer signature over the signed attributes, checked
       with the embedded certificate (no trust anchor)

    For multi-signature PDFs, verifies only the last (most recent) signature.
    Use verify_all_embedded_signatures() to check all signatures.

    Never raises on verification failure -- returns valid=False with details.
    """
    br_matches = list(re.finditer(BYTERANGE_PATTERN, pdf_bytes))
    if not br_matches:
        return _structure_failure("No /ByteRange found in PDF -- not a signed PDF?")

    result = _verify_match(pdf_bytes, br_matches[-1], expected_digest)
    result["details"].append(_structural_check(pdf_bytes))
    return result


def verify_all_embedded_signatures(pdf_bytes: bytes) -> list[VerificationResult]:
    """
    Verify ALL embedded signatures in a PDF.

    Returns:
        List of VerificationResult, one per signature (ordered by position in PDF).

    Raises:
        DocumentFormatError: If the PDF has no embedded signatures.
    """
    br_matches = list(re.finditer(BYTERANGE_PATTERN, pdf_bytes))
    if not br_matches:
        raise DocumentFormatError("No /ByteRange found in PDF -- not a signed PDF?")

    pikepdf_detail = _structural_check(pdf_bytes)
    results: list[VerificationResult] = []
    for br in br_matches:
        result = _verify_match(pdf_bytes, br)
        result["details"].append(pikepdf_detail)
        results.append(result)
    return results
