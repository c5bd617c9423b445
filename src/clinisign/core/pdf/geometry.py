"""
Signature block positioning and page geometry helpers.

Computes where the signature block sits on a PDF page.  The layout was
authored against a reference page width; every horizontal measure scales
with the actual page width so the block looks the same on A4, Letter, or
a landscape page, while the block height stays fixed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...constants import (
    BOTTOM_OFFSET,
    BOTTOM_RATIO,
    REFERENCE_MARGIN,
    REFERENCE_PAGE_WIDTH,
    SIGNATURE_BLOCK_HEIGHT,
)
from ...errors import DocumentFormatError

if TYPE_CHECKING:
    import pikepdf

Rect = tuple[float, float, float, float]

# Fallback margin when the configured one would leave no room for the block
_CLAMPED_MARGIN_RATIO = 0.05


def compute_signature_rect(
    page_width: float,
    page_height: float,
    *,
    reference_width: float = REFERENCE_PAGE_WIDTH,
    margin: float = REFERENCE_MARGIN,
    block_height: float = SIGNATURE_BLOCK_HEIGHT,
    bottom_ratio: float = BOTTOM_RATIO,
    bottom_offset: float = BOTTOM_OFFSET,
) -> Rect:
    """Compute the signature block rectangle for a page.

    The block occupies the right half of the printable width and is
    anchored near the bottom of the page.

    Args:
        page_width: Page width in PDF points.
        page_height: Page height in PDF points.
        reference_width: Width of the page the layout was designed for,
            in the same unit as ``margin``.
        margin: Side margin in reference units.
        block_height: Block height in PDF points (not scaled).
        bottom_ratio: Fraction of the page height used as the bottom anchor.
        bottom_offset: Points subtracted from the ratio-based anchor.

    Returns:
        (x0, y0, x1, y1) in PDF coordinate space (origin = bottom-left).

    Raises:
        DocumentFormatError: If page dimensions are not positive.
    """
    if page_width <= 0 or page_height <= 0:
        raise DocumentFormatError(
            f"Invalid page dimensions: {page_width:.1f} x {page_height:.1f} pt"
        )
    if reference_width <= 0:
        raise DocumentFormatError(f"Invalid reference width: {reference_width}")

    unit = page_width / reference_width
    margin_pt = max(0.0, margin * unit)
    if 2 * margin_pt >= page_width:
        margin_pt = page_width * _CLAMPED_MARGIN_RATIO

    block_width = (page_width - 2 * margin_pt) / 2
    x1 = page_width - margin_pt
    x0 = x1 - block_width

    y0 = max(margin_pt, page_height * bottom_ratio - bottom_offset)
    y1 = y0 + block_height
    return x0, y0, x1, y1


def get_page_dimensions(pdf: pikepdf.Pdf, page_index: int) -> tuple[float, float]:
    """Get effective (width, height) for a page, respecting CropBox and Rotate.

    Args:
        pdf: An open pikepdf.Pdf object.
        page_index: 0-based page index.

    Returns:
        (width, height) in PDF points.
    """
    page = pdf.pages[page_index]

    # CropBox takes priority over MediaBox for visible area
    crop_box = page.get("/CropBox")
    box = crop_box if crop_box is not None else page.MediaBox
    x0, y0, x1, y1 = float(box[0]), float(box[1]), float(box[2]), float(box[3])
    w = abs(x1 - x0)
    h = abs(y1 - y0)

    # /Rotate is clockwise degrees; 90 and 270 swap width/height
    rotate_val = page.get("/Rotate")
    rotate = (int(rotate_val) if rotate_val is not None else 0) % 360
    if rotate in (90, 270):
        w, h = h, w

    return w, h


def resolve_page_index(pdf: pikepdf.Pdf, page_spec: int | str) -> int:
    """Convert a page specifier to a 0-based index.

    Args:
        pdf: An open pikepdf.Pdf object.
        page_spec: "last", "first", or a 0-based integer / string.

    Returns:
        int -- validated 0-based page index.

    Raises:
        DocumentFormatError: If the document has no pages or the index is invalid.
    """
    total = len(pdf.pages)
    if total == 0:
        raise DocumentFormatError("PDF has no pages.")

    if isinstance(page_spec, str):
        spec = page_spec.strip().lower()
        if spec == "last":
            return total - 1
        if spec == "first":
            return 0
        try:
            page_spec = int(spec)
        except ValueError as exc:
            raise DocumentFormatError(
                f"Invalid page: {page_spec!r}. Use 'first', 'last', or a 0-based number."
            ) from exc

    idx = int(page_spec)
    if idx < 0:
        idx += total
    if idx < 0 or idx >= total:
        raise DocumentFormatError(f"Page {page_spec} out of range (PDF has {total} page(s)).")
    return idx
