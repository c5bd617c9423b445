"""
clinisign -- embedded PAdES-style signatures for clinic documents.

Signs already-rendered PDFs with a PKCS#12 certificate bundle: a
visible stamp (QR code + signer details) and a detached CMS signature
spliced into an incremental update.
"""

from __future__ import annotations

from .api import SignatureResult, SigningOptions, inspect_bundle, sign_document
from .config import get_signing_defaults
from .constants import __version__
from .core.appearance import DEFAULT_STYLE, StampDescriptor, StampStyle
from .core.credentials import CertificateBundle, CertificateSummary
from .core.finisher import append_appearance_revision, redraw_signed_document
from .core.pdf import (
    compute_byterange_digest,
    compute_signature_rect,
    locate_signature_slot,
    prepare_signature_placeholder,
    verify_all_embedded_signatures,
    verify_embedded_signature,
)
from .core.signing import sign_prepared_document
from .errors import (
    CertificateChainError,
    ClinisignError,
    ConfigError,
    DocumentFormatError,
    IntegrityRiskWarning,
    InvalidCredentialsError,
    ReservedSpaceExceededError,
)

__all__ = [
    "DEFAULT_STYLE",
    "CertificateBundle",
    "CertificateChainError",
    "CertificateSummary",
    "ClinisignError",
    "ConfigError",
    "DocumentFormatError",
    "IntegrityRiskWarning",
    "InvalidCredentialsError",
    "ReservedSpaceExceededError",
    "SignatureResult",
    "SigningOptions",
    "StampDescriptor",
    "StampStyle",
    "__version__",
    "append_appearance_revision",
    "compute_byterange_digest",
    "compute_signature_rect",
    "get_signing_defaults",
    "inspect_bundle",
    "locate_signature_slot",
    "prepare_signature_placeholder",
    "redraw_signed_document",
    "sign_document",
    "sign_prepared_document",
    "verify_all_embedded_signatures",
    "verify_embedded_signature",
]
