"""
Configuration for the signing engine.

Import from this package directly instead of the ``config`` submodule.
"""

from __future__ import annotations

from .config import SigningDefaults, get_signing_defaults, parse_utc_offset

__all__ = [
    "SigningDefaults",
    "get_signing_defaults",
    "parse_utc_offset",
]
