"""Clinisign error types."""

from __future__ import annotations

from typing import Any

__all__ = [
    "CertificateChainError",
    "ClinisignError",
    "ConfigError",
    "DocumentFormatError",
    "IntegrityRiskWarning",
    "InvalidCredentialsError",
    "ReservedSpaceExceededError",
]


class ClinisignError(Exception):
    """Base error for Clinisign operations."""


class DocumentFormatError(ClinisignError):
    """Source PDF is unparseable, corrupt, encrypted, or has no pages."""


class InvalidCredentialsError(ClinisignError):
    """Wrong passphrase or malformed certificate bundle."""


class CertificateChainError(ClinisignError):
    """Certificate chain validation failed."""


class ReservedSpaceExceededError(ClinisignError):
    """Encoded signature does not fit in the reserved /Contents slot.

    Args:
        message: Human-readable error description.
        required: Hex characters the signature needs.
        available: Hex characters reserved in the document.
    """

    def __init__(self, message: str, *, required: int = 0, available: int = 0) -> None:
        super().__init__(message)
        self.required = required
        self.available = available

    def __reduce__(
        self,
    ) -> tuple[type[ReservedSpaceExceededError], tuple[str], dict[str, int]]:
        """Preserve size details across pickle/unpickle."""
        return (
            type(self),
            (str(self),),
            {"required": self.required, "available": self.available},
        )

    def __setstate__(self, state: dict[str, Any] | None) -> None:
        if state is None:
            return
        self.required = state.get("required", 0)
        self.available = state.get("available", 0)


class ConfigError(ClinisignError):
    """Configuration validation error."""


class IntegrityRiskWarning(UserWarning):
    """A signed document was modified in a way that breaks its signature.

    Emitted (not raised) when the post-signature cosmetic pass re-serializes
    the whole file: the document still renders, but the byte-range digest
    no longer matches the embedded signature.
    """
