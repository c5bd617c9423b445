# pyright: reportUnknownMemberType=false
"""
QR code generation for the signature stamp.

Encodes the stamp payload into a module matrix with ``qrcode`` and
rasterizes it with Pillow into deflate-compressed RGB samples ready for
embedding as a PDF image XObject.
"""

from __future__ import annotations

import logging
import zlib
from typing import TYPE_CHECKING, TypedDict

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

from .payload import DEFAULT_STYLE

if TYPE_CHECKING:
    from .payload import StampStyle

_logger = logging.getLogger(__name__)

QrMatrix = tuple[tuple[bool, ...], ...]


class QrImageData(TypedDict):
    """Data returned by render_qr_image."""

    samples: bytes  # Deflate-compressed RGB pixel data
    width: int  # Pixel width
    height: int  # Pixel height
    bpc: int  # Bits per component (always 8)


# Quiet zone in modules. The stamp background already separates the
# code from surrounding drawing, so one module is enough.
_QR_BORDER = 1

# Pixels per module. Nearest-neighbour scaling keeps edges sharp when a
# viewer ignores /Interpolate false.
_MODULE_PX = 4


def build_qr_matrix(payload: str) -> QrMatrix:
    """Encode ``payload`` into a QR module matrix (True = dark), border included.

    Version is chosen automatically at error-correction level M, so
    equal payloads always produce equal matrices.

    Raises:
        ValueError: If the payload is empty.
    """
    if not payload:
        raise ValueError("QR payload must not be empty")

    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=1,
        border=_QR_BORDER,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    matrix = tuple(tuple(bool(cell) for cell in row) for row in qr.get_matrix())
    _logger.debug("QR version %d, %d modules per side", qr.version, len(matrix))
    return matrix


def _to_rgb255(color: tuple[float, float, float]) -> tuple[int, int, int]:
    r, g, b = (max(0, min(255, round(c * 255))) for c in color)
    return r, g, b


def render_qr_image(matrix: QrMatrix, style: StampStyle = DEFAULT_STYLE) -> QrImageData:
    """Rasterize a QR matrix into compressed RGB samples.

    Args:
        matrix: Module matrix from :func:`build_qr_matrix`.
        style: Supplies the dark and light module colours.

    Returns:
        dict with keys:
            'samples': bytes -- RGB pixel data (deflate-compressed)
            'width': int -- pixel width
            'height': int -- pixel height
            'bpc': int -- bits per component (always 8)
    """
    size = len(matrix)
    if size == 0 or any(len(row) != size for row in matrix):
        raise ValueError("QR matrix must be a non-empty square")

    dark = _to_rgb255(style.qr_dark)
    light = _to_rgb255(style.qr_light)

    img = Image.new("RGB", (size, size), light)
    try:
        img.putdata([dark if cell else light for row in matrix for cell in row])
        scaled = img.resize((size * _MODULE_PX, size * _MODULE_PX), Image.Resampling.NEAREST)
    finally:
        img.close()

    try:
        samples = zlib.compress(scaled.tobytes())
        return {
            "samples": samples,
            "width": scaled.width,
            "height": scaled.height,
            "bpc": 8,
        }
    finally:
        scaled.close()
