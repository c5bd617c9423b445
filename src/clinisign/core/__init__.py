"""
Signing engine internals: geometry, stamp appearance, placeholder
revision, CMS signing, post-signature finishing and verification.

pikepdf is only needed where a document is parsed or re-saved; modules
fetch it through :func:`require_pikepdf` at call time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import ClinisignError

if TYPE_CHECKING:
    import types

__all__ = ["require_pikepdf"]


def require_pikepdf() -> types.ModuleType:
    """Return the pikepdf module, importing it on first use.

    Raises:
        ClinisignError: If pikepdf is not installed.
    """
    try:
        import pikepdf
    except ImportError as exc:
        raise ClinisignError(
            "Parsing PDF documents needs pikepdf (pip install pikepdf)."
        ) from exc
    return pikepdf
