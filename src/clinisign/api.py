"""High-level API for signing clinic documents.

Provides :func:`sign_document`, which runs the whole pipeline (credential
check, placeholder, signature, self-verification, optional redraw), and
:func:`inspect_bundle` for certificate upload checks.

For lower-level control, use
:func:`~clinisign.core.pdf.placeholder.prepare_signature_placeholder` and
:func:`~clinisign.core.signing.sign_prepared_document` directly.
"""

from __future__ import annotations

__all__ = [
    "REDRAW_MODES",
    "SignatureResult",
    "SigningOptions",
    "inspect_bundle",
    "sign_document",
]

import logging
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Literal

from .config import get_signing_defaults
from .core.appearance import DEFAULT_STYLE, StampDescriptor, StampStyle
from .core.credentials import summarize_identity, validate_identity
from .core.finisher import (
    INTEGRITY_RISK_MESSAGE,
    append_appearance_revision,
    redraw_signed_document,
)
from .core.pdf import (
    compute_byterange_digest,
    locate_signature_slot,
    prepare_signature_placeholder,
    verify_embedded_signature,
)
from .core.signing import sign_with_identity
from .errors import ClinisignError, ConfigError

if TYPE_CHECKING:
    from .core.credentials import CertificateBundle, CertificateSummary, UnlockedIdentity
    from .core.pdf import Rect, VerificationResult

_logger = logging.getLogger(__name__)

RedrawMode = Literal["none", "incremental", "resave"]
REDRAW_MODES: tuple[str, ...] = ("none", "incremental", "resave")


@dataclass(frozen=True)
class SigningOptions:
    """Options for placement, stamp content and signing parameters.

    Attributes:
        page: Page for the signature -- 0-based int, "first", or "last".
        rect: Widget rectangle (x0, y0, x1, y1) in PDF points.  Computed
            from the page size when None.
        reason: /Reason of the signature dictionary.
        contact: Contact line on the stamp and /ContactInfo.  Falls back
            to the certificate e-mail.
        name: Signer name on the stamp and /Name.  Falls back to the
            certificate common name.
        registry_id: Professional registry id (e.g. ``"CRM-SP 123456"``).
        role: Role or specialty shown after the registry id.
        location: /Location of the signature dictionary.
        signing_time: Time asserted by the signature (now when None).
        reserved_capacity: Bytes reserved for the CMS container.  None
            uses the configured default.
        digest_algorithm: sha256, sha384 or sha512.  None uses the
            configured default.
        redraw: "none" (default), "incremental" (append a fresh
            appearance revision) or "resave" (legacy full re-save; the
            result is no longer verifiable).
        style: Stamp texts and colours.
    """

    page: int | str = "last"
    rect: Rect | None = None
    reason: str = ""
    contact: str | None = None
    name: str | None = None
    registry_id: str = ""
    role: str = ""
    location: str = ""
    signing_time: datetime | None = None
    reserved_capacity: int | None = None
    digest_algorithm: str | None = None
    redraw: RedrawMode = "none"
    style: StampStyle = DEFAULT_STYLE


_OPTIONS_FIELDS = frozenset(f.name for f in fields(SigningOptions))


@dataclass(frozen=True)
class SignatureResult:
    """Outcome of :func:`sign_document`.

    Attributes:
        data: Final PDF bytes.
        placeholder_length: Length of the prepared (unsigned) document;
            equal to the signed length before any redraw.
        byte_range: The signature's /ByteRange values.
        digest: Byte-range digest that was signed.
        digest_algorithm: Name of the digest algorithm.
        rect: Widget rectangle.
        signing_time: Time asserted by the signature.
        verifiable: False after the legacy re-save redraw.
        warnings: Integrity warnings raised along the way.
    """

    data: bytes
    placeholder_length: int
    byte_range: tuple[int, int, int, int]
    digest: bytes
    digest_algorithm: str
    rect: Rect
    signing_time: datetime
    verifiable: bool = True
    warnings: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Private resolution helpers
# ---------------------------------------------------------------------------


def _resolve_options(
    options: SigningOptions | None,
    kwargs: dict[str, object],
) -> SigningOptions:
    """Merge explicit keyword arguments into an options instance.

    Keyword arguments override the corresponding fields in *options*.
    Unknown keys raise TypeError.
    """
    unknown = set(kwargs) - _OPTIONS_FIELDS
    if unknown:
        raise TypeError(f"Unexpected keyword arguments: {', '.join(sorted(unknown))}")

    if options is None:
        options = SigningOptions()
    if not kwargs:
        return options
    return replace(options, **kwargs)  # type: ignore[arg-type]


def _resolve_signing_time(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _build_descriptor(
    opts: SigningOptions, identity: UnlockedIdentity, signing_time: datetime
) -> StampDescriptor:
    """Finalize every visual value before the placeholder is inserted."""
    summary = summarize_identity(identity)
    name = opts.name if opts.name is not None else (summary.common_name or "")
    contact = opts.contact if opts.contact is not None else (summary.email or "")
    return StampDescriptor(
        name=name,
        registry_id=opts.registry_id,
        role=opts.role,
        contact=contact,
        location=opts.location,
        reason=opts.reason,
        signing_time=signing_time,
    )


def _require_valid(result: VerificationResult, stage: str) -> None:
    if result["valid"]:
        return
    detail_str = "\n  ".join(result["details"])
    _logger.error("%s verification failed: %s", stage, detail_str)
    raise ClinisignError(
        f"{stage} verification FAILED:\n  {detail_str}\nThe signed PDF may be corrupt -- not returned."
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def sign_document(
    pdf_bytes: bytes,
    bundle: CertificateBundle,
    *,
    options: SigningOptions | None = None,
    **overrides: object,
) -> SignatureResult:
    """Sign a PDF with an embedded, visible PAdES-style signature.

    Steps:
    1. Unlock the bundle and validate the chain (before touching the PDF)
    2. Fix the signing time and every stamp value
    3. Append the signature placeholder revision
    4. Digest, sign and splice the CMS in place
    5. Verify the result
    6. Optionally redraw the stamp (see ``SigningOptions.redraw``)

    Args:
        pdf_bytes: Raw PDF file content.
        bundle: PKCS#12 bytes and passphrase.
        options: Reusable options object.  Keyword arguments override the
            corresponding fields.

    Returns:
        SignatureResult with the final bytes and signing details.

    Raises:
        InvalidCredentialsError: Wrong passphrase or malformed bundle.
        CertificateChainError: Unusable certificate or chain.
        DocumentFormatError: Unparseable, encrypted or page-less PDF.
        ReservedSpaceExceededError: The signature does not fit.
        ConfigError: Invalid option values.
        ClinisignError: Post-sign verification failed.
    """
    opts = _resolve_options(options, overrides)
    if opts.redraw not in REDRAW_MODES:
        raise ConfigError(f"Invalid redraw mode {opts.redraw!r} (valid: {', '.join(REDRAW_MODES)})")

    defaults = get_signing_defaults()
    reserved_capacity = (
        defaults.reserved_capacity if opts.reserved_capacity is None else opts.reserved_capacity
    )
    digest_algorithm = opts.digest_algorithm or defaults.digest_algorithm
    style = opts.style
    if style.display_offset is None and defaults.display_offset is not None:
        style = replace(style, display_offset=defaults.display_offset)
    signing_time = _resolve_signing_time(opts.signing_time)

    # Step 1: Credentials first, so a bad passphrase never costs a PDF parse
    identity = bundle.unlock()
    validate_identity(identity, at=signing_time)

    # Step 2: Final stamp values
    descriptor = _build_descriptor(opts, identity, signing_time)
    _logger.info(
        "Signing PDF: %d bytes, page=%s, digest=%s, capacity=%d, redraw=%s",
        len(pdf_bytes),
        opts.page,
        digest_algorithm,
        reserved_capacity,
        opts.redraw,
    )

    # Step 3: Placeholder revision
    prepared = prepare_signature_placeholder(
        pdf_bytes,
        descriptor,
        page=opts.page,
        rect=opts.rect,
        reserved_capacity=reserved_capacity,
        style=style,
    )

    # Step 4: Sign
    signed = sign_with_identity(
        prepared.data,
        identity,
        signing_time=signing_time,
        digest_algorithm=digest_algorithm,
    )
    slot = locate_signature_slot(signed)
    digest = compute_byterange_digest(signed, digest_algorithm, slot)

    # Step 5: Verify
    _require_valid(verify_embedded_signature(signed, expected_digest=digest), "Post-sign")
    _logger.debug("Signature verified successfully")

    # Step 6: Redraw
    data = signed
    verifiable = True
    warning_texts: tuple[str, ...] = ()
    if opts.redraw == "incremental":
        data = append_appearance_revision(signed, descriptor, style=style)
        _require_valid(verify_embedded_signature(data, expected_digest=digest), "Post-redraw")
    elif opts.redraw == "resave":
        data = redraw_signed_document(
            signed, descriptor, page=prepared.page_index, rect=prepared.rect, style=style
        )
        verifiable = False
        warning_texts = (INTEGRITY_RISK_MESSAGE,)

    _logger.info("Signed PDF complete: %d bytes", len(data))
    return SignatureResult(
        data=data,
        placeholder_length=len(prepared.data),
        byte_range=slot.byte_range,
        digest=digest,
        digest_algorithm=digest_algorithm,
        rect=prepared.rect,
        signing_time=signing_time,
        verifiable=verifiable,
        warnings=warning_texts,
    )


def inspect_bundle(bundle: CertificateBundle) -> CertificateSummary:
    """Unlock a bundle and summarize its signing certificate.

    Raises:
        InvalidCredentialsError: Wrong passphrase or malformed bundle.
    """
    identity = bundle.unlock()
    return summarize_identity(identity)
