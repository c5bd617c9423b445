"""
Signing defaults for Clinisign.

The engine keeps no persisted state: defaults come from built-in
constants, overridden by environment variables.  Invalid environment
values are logged and ignored rather than failing a signing call.
"""

from __future__ import annotations

__all__ = [
    "SigningDefaults",
    "get_signing_defaults",
    "parse_utc_offset",
]

import logging
import os
import re
from dataclasses import dataclass
from datetime import timedelta, timezone

from ..constants import (
    DEFAULT_DIGEST_ALGORITHM,
    DEFAULT_RESERVED_CAPACITY,
    ENV_DIGEST,
    ENV_RESERVED_CAPACITY,
    ENV_UTC_OFFSET,
    MAX_RESERVED_CAPACITY,
    MIN_RESERVED_CAPACITY,
    SUPPORTED_DIGESTS,
)
from ..errors import ConfigError

_logger = logging.getLogger(__name__)

_OFFSET_PATTERN = re.compile(r"^(?:UTC)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)

# Largest offset in use anywhere (UTC+14, Line Islands)
_MAX_OFFSET_MINUTES = 14 * 60


@dataclass(frozen=True)
class SigningDefaults:
    """Effective defaults for a signing call.

    Attributes:
        reserved_capacity: Bytes reserved for the CMS container.
        digest_algorithm: hashlib name of the byte-range digest.
        display_offset: Timezone used to render the stamp timestamp.
            None keeps the signing time's own offset.
    """

    reserved_capacity: int = DEFAULT_RESERVED_CAPACITY
    digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    display_offset: timezone | None = None


def parse_utc_offset(value: str) -> timezone:
    """Parse a UTC offset such as ``"-03:00"``, ``"+0530"`` or ``"UTC+4"``.

    ``"UTC"`` and ``"Z"`` map to :data:`datetime.timezone.utc`.

    Raises:
        ConfigError: If the value is not a valid offset.
    """
    text = value.strip()
    if text.upper() in ("UTC", "Z", "GMT"):
        return timezone.utc
    m = _OFFSET_PATTERN.match(text)
    if not m:
        raise ConfigError(f"Invalid UTC offset {value!r}. Use a form like '-03:00'.")
    sign, hours, minutes = m.group(1), int(m.group(2)), int(m.group(3) or 0)
    if minutes >= 60:
        raise ConfigError(f"Invalid UTC offset {value!r}: minutes must be below 60.")
    total = hours * 60 + minutes
    if total > _MAX_OFFSET_MINUTES:
        raise ConfigError(f"UTC offset {value!r} out of range.")
    delta = timedelta(minutes=total)
    return timezone(-delta if sign == "-" else delta)


def _resolve_capacity() -> int:
    raw = os.environ.get(ENV_RESERVED_CAPACITY, "").strip()
    if not raw:
        return DEFAULT_RESERVED_CAPACITY
    try:
        capacity = int(raw)
    except ValueError:
        _logger.warning("Invalid %s value %r, using default", ENV_RESERVED_CAPACITY, raw)
        return DEFAULT_RESERVED_CAPACITY
    if capacity < MIN_RESERVED_CAPACITY or capacity > MAX_RESERVED_CAPACITY:
        _logger.warning(
            "%s=%d out of range [%d, %d], using default",
            ENV_RESERVED_CAPACITY,
            capacity,
            MIN_RESERVED_CAPACITY,
            MAX_RESERVED_CAPACITY,
        )
        return DEFAULT_RESERVED_CAPACITY
    return capacity


def _resolve_digest() -> str:
    raw = os.environ.get(ENV_DIGEST, "").strip().lower().replace("-", "")
    if not raw:
        return DEFAULT_DIGEST_ALGORITHM
    if raw not in SUPPORTED_DIGESTS:
        _logger.warning(
            "Unsupported %s value %r (valid: %s), using default",
            ENV_DIGEST,
            raw,
            ", ".join(SUPPORTED_DIGESTS),
        )
        return DEFAULT_DIGEST_ALGORITHM
    return raw


def _resolve_offset() -> timezone | None:
    raw = os.environ.get(ENV_UTC_OFFSET, "").strip()
    if not raw:
        return None
    try:
        return parse_utc_offset(raw)
    except ConfigError as e:
        _logger.warning("%s ignored: %s", ENV_UTC_OFFSET, e)
        return None


def get_signing_defaults() -> SigningDefaults:
    """
    Resolve signing defaults.

    Priority: env vars > built-in constants.  Read on every call so that
    no configuration is cached between signing operations.

    Returns:
        SigningDefaults with capacity, digest algorithm and display offset.
    """
    return SigningDefaults(
        reserved_capacity=_resolve_capacity(),
        digest_algorithm=_resolve_digest(),
        display_offset=_resolve_offset(),
    )
