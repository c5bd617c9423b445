"""
Application-wide constants for Clinisign.

Size limits, geometry reference values, and other magic numbers are
centralized here for easy maintenance and configuration.
"""

from __future__ import annotations

import importlib.metadata

try:
    __version__ = importlib.metadata.version("clinisign")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.3.0"

__all__ = [
    "BOTTOM_OFFSET",
    "BOTTOM_RATIO",
    "DEFAULT_DIGEST_ALGORITHM",
    "DEFAULT_RESERVED_CAPACITY",
    "ENV_DIGEST",
    "ENV_RESERVED_CAPACITY",
    "ENV_UTC_OFFSET",
    "MAX_BUNDLE_SIZE",
    "MAX_RESERVED_CAPACITY",
    "MIN_RESERVED_CAPACITY",
    "PDF_MAGIC",
    "REFERENCE_MARGIN",
    "REFERENCE_PAGE_WIDTH",
    "SIGNATURE_BLOCK_HEIGHT",
    "SUPPORTED_DIGESTS",
    "__version__",
]

# ── Signature slot ────────────────────────────────────────────────────

# Bytes reserved for the DER-encoded CMS container. An RSA-2048 signature
# with a short chain is ~2-4 KB; 16 KB leaves room for longer chains.
DEFAULT_RESERVED_CAPACITY = 16384

# Bounds accepted from configuration (bytes)
MIN_RESERVED_CAPACITY = 1024
MAX_RESERVED_CAPACITY = 1024 * 1024


# ── Digest ────────────────────────────────────────────────────────────

DEFAULT_DIGEST_ALGORITHM = "sha256"
SUPPORTED_DIGESTS = ("sha256", "sha384", "sha512")


# ── Credentials ───────────────────────────────────────────────────────

# PKCS#12 bundles larger than this are rejected before parsing (10 MB)
MAX_BUNDLE_SIZE = 10 * 1024 * 1024


# ── Signature block geometry ──────────────────────────────────────────

# Layout was authored for an A4 page measured in millimetres.
REFERENCE_PAGE_WIDTH = 210.0

# Side margin in the same unit as REFERENCE_PAGE_WIDTH (~20 pt on A4)
REFERENCE_MARGIN = 7.0

# Block height in PDF points; never scaled with the page
SIGNATURE_BLOCK_HEIGHT = 80.0

# Bottom anchor: the block sits just above the letterhead footer line,
# which upstream templates place at ~17.8 % of the page height.
BOTTOM_RATIO = 0.178
BOTTOM_OFFSET = 50.0


# ── Environment variable names ──────────────────────────────────────

ENV_RESERVED_CAPACITY = "CLINISIGN_RESERVED_CAPACITY"
ENV_DIGEST = "CLINISIGN_DIGEST"
ENV_UTC_OFFSET = "CLINISIGN_UTC_OFFSET"


# PDF file magic bytes
PDF_MAGIC = b"%PDF-"
