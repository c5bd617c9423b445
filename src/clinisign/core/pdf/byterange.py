"""ByteRange parsing, digesting, and in-place signature splicing.

A prepared document carries ``/ByteRange [0 len1 off2 len2]`` next to a
``/Contents <...>`` hex slot.  The two ranges cover the whole file except
the slot including its angle brackets.  Everything here is a pure byte
operation; nothing re-parses or re-serializes the document.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import NamedTuple

from asn1crypto import cms as asn1_cms

from ...constants import SUPPORTED_DIGESTS
from ...errors import DocumentFormatError, ReservedSpaceExceededError

_logger = logging.getLogger(__name__)

# Regex pattern to find ByteRange arrays in PDF
BYTERANGE_PATTERN = rb"/ByteRange\s*\[\s*(\d+)\s+(\d+)\s+(\d+)\s+(\d+)\s*\]"

# ASN.1 SEQUENCE tag -- first byte of any valid CMS/PKCS#7 blob
ASN1_SEQUENCE_TAG = 0x30

# Minimum plausible CMS blob size in bytes (header + basic content)
MIN_CMS_SIZE = 100


class SignatureSlot(NamedTuple):
    """Location of a signature's hex slot and its byte ranges."""

    byte_range: tuple[int, int, int, int]
    hex_start: int  # offset of the first hex digit (just after "<")
    hex_length: int  # number of hex digits between "<" and ">"


def slot_from_match(pdf_bytes: bytes, br_match: re.Match[bytes]) -> SignatureSlot:
    off1, len1, off2, len2 = (int(br_match.group(i)) for i in range(1, 5))

    if off1 != 0:
        raise DocumentFormatError(f"ByteRange offset1 should be 0, got {off1}")
    if len1 <= 0:
        raise DocumentFormatError(f"Invalid ByteRange: len1 must be positive, got {len1}")
    if off2 <= len1 + 1:
        raise DocumentFormatError(f"ByteRange offset2 ({off2}) must follow len1 ({len1})")
    if off2 + len2 > len(pdf_bytes):
        raise DocumentFormatError(
            f"ByteRange extends beyond EOF: {off2}+{len2} > {len(pdf_bytes)}"
        )

    # The excluded gap is exactly "<hex>"
    if pdf_bytes[len1 : len1 + 1] != b"<":
        raise DocumentFormatError(
            f"Expected '<' at offset {len1}, got {pdf_bytes[len1 : len1 + 1]!r}"
        )
    if pdf_bytes[off2 - 1 : off2] != b">":
        raise DocumentFormatError(
            f"Expected '>' at offset {off2 - 1}, got {pdf_bytes[off2 - 1 : off2]!r}"
        )

    return SignatureSlot((off1, len1, off2, len2), len1 + 1, off2 - len1 - 2)


def find_signature_slots(pdf_bytes: bytes) -> list[SignatureSlot]:
    """Locate every signature slot, in file order."""
    return [slot_from_match(pdf_bytes, m) for m in re.finditer(BYTERANGE_PATTERN, pdf_bytes)]


def locate_signature_slot(pdf_bytes: bytes) -> SignatureSlot:
    """Locate the last (most recent) signature slot.

    Raises:
        DocumentFormatError: If there is no /ByteRange or it is malformed.
    """
    matches = list(re.finditer(BYTERANGE_PATTERN, pdf_bytes))
    if not matches:
        raise DocumentFormatError("No /ByteRange found in PDF -- not a prepared or signed PDF?")
    return slot_from_match(pdf_bytes, matches[-1])


def signed_ranges(pdf_bytes: bytes, slot: SignatureSlot) -> bytes:
    """Concatenate the two byte ranges covered by a signature."""
    _off1, len1, off2, len2 = slot.byte_range
    return pdf_bytes[:len1] + pdf_bytes[off2 : off2 + len2]


def compute_byterange_digest(
    pdf_bytes: bytes,
    algorithm: str = "sha256",
    slot: SignatureSlot | None = None,
) -> bytes:
    """Digest exactly the bytes outside the signature slot.

    Args:
        pdf_bytes: Prepared or signed PDF.
        algorithm: hashlib name (sha256, sha384 or sha512).
        slot: Slot to digest; defaults to the last one in the file.

    Returns:
        Raw digest bytes.
    """
    if algorithm not in SUPPORTED_DIGESTS:
        raise ValueError(
            f"Unsupported digest algorithm {algorithm!r} (valid: {', '.join(SUPPORTED_DIGESTS)})"
        )
    if slot is None:
        slot = locate_signature_slot(pdf_bytes)
    _off1, len1, off2, len2 = slot.byte_range
    h = hashlib.new(algorithm)
    h.update(pdf_bytes[:len1])
    h.update(pdf_bytes[off2 : off2 + len2])
    return h.digest()


def insert_signature(pdf_bytes: bytes, slot: SignatureSlot, cms_der: bytes) -> bytes:
    """Splice DER bytes as hex into the reserved slot, zero-padding the rest.

    The output has exactly the length of the input.

    Raises:
        ReservedSpaceExceededError: If the hex encoding is longer than the slot.
    """
    cms_hex = cms_der.hex().encode("ascii")
    if len(cms_hex) > slot.hex_length:
        raise ReservedSpaceExceededError(
            f"Signature needs {len(cms_hex)} hex chars but only {slot.hex_length} are reserved "
            f"({len(cms_der)} > {slot.hex_length // 2} bytes)",
            required=len(cms_hex),
            available=slot.hex_length,
        )
    padded = cms_hex + b"0" * (slot.hex_length - len(cms_hex))

    result = bytearray(pdf_bytes)
    result[slot.hex_start : slot.hex_start + slot.hex_length] = padded
    return bytes(result)


def extract_cms(pdf_bytes: bytes, slot: SignatureSlot) -> bytes:
    """Extract the exact DER CMS blob from a signature slot.

    The slot is zero-padded after the DER; asn1crypto reads the outer
    TLV header and ignores the padding, so blobs ending in 0x00 bytes
    are recovered intact.

    Raises:
        DocumentFormatError: If the slot is empty or not a CMS structure.
    """
    hex_str = pdf_bytes[slot.hex_start : slot.hex_start + slot.hex_length]
    try:
        raw = bytes.fromhex(hex_str.decode("ascii"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DocumentFormatError(f"Invalid hex in signature slot: {e}") from e
    if not raw or raw[0] != ASN1_SEQUENCE_TAG:
        raise DocumentFormatError("Signature slot does not hold a CMS structure (empty slot?)")

    try:
        content_info = asn1_cms.ContentInfo.load(raw)
        der = content_info.dump()
    except (ValueError, TypeError) as e:
        raise DocumentFormatError(f"Cannot parse CMS in signature slot: {e}") from e
    _logger.debug("Extracted CMS: %d bytes from a %d-byte slot", len(der), len(raw))
    return der
