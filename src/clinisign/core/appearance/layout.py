"""
Stamp layout for the visible signature block.

Splits the signature rectangle into fixed regions and returns a list of
drawing primitives.  Coordinates are local to the block (origin =
bottom-left of the rectangle)::

  +--------------------------------------------------------+
  | ASSINADO DIGITALMENTE                      ICP-Brasil  |  header bar
  +--+---------+---+---------------------------------------+
  |  | [ QR  ] |   |  Dr(a). Name                          |
  |  | [     ] | | |  CRM 12345  |  Cardiologia            |
  |  | [     ] | | |  name@clinic.example                  |
  |  | [     ] |   |  05/03/2025 14:30                     |
  |  |         |   |  Validade juridica nos termos ...     |
  +--+---------+---+---------------------------------------+

The layout is a pure function of (width, height, descriptor, style):
the same inputs always produce an equal :class:`StampLayout`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from ...errors import DocumentFormatError
from .payload import DEFAULT_STYLE, StampDescriptor, StampStyle, build_qr_payload, build_text_lines
from .qr import QrMatrix, build_qr_matrix

_logger = logging.getLogger(__name__)

RGB = tuple[float, float, float]
FontStyle = Literal["regular", "bold", "oblique"]


# ── Primitives ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FilledRect:
    """Filled rectangle, optionally stroked."""

    x: float
    y: float
    width: float
    height: float
    fill: RGB
    stroke: RGB | None = None
    line_width: float = 0.0


@dataclass(frozen=True)
class Line:
    x0: float
    y0: float
    x1: float
    y1: float
    color: RGB
    width: float
    opacity: float = 1.0


@dataclass(frozen=True)
class ImageBox:
    """Placement of the QR raster image."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class TextRun:
    """Single left-aligned line of text; (x, y) is the baseline origin."""

    x: float
    y: float
    text: str
    size: float
    font: FontStyle
    color: RGB


Primitive = FilledRect | Line | ImageBox | TextRun


@dataclass(frozen=True)
class StampLayout:
    """Complete stamp: block size, primitives in paint order, QR content."""

    width: float
    height: float
    primitives: tuple[Primitive, ...]
    qr_payload: str
    qr_matrix: QrMatrix


# ── Layout constants (PDF points) ─────────────────────────────────────

HEADER_HEIGHT = 14.0
_BORDER_WIDTH = 0.8
_ACCENT_WIDTH = 3.0
_HEADER_TEXT_RISE = 4.0
_TITLE_X = 10.0
_TITLE_SIZE = 7.5
_TRUST_MARK_INSET = 50.0
_TRUST_MARK_SIZE = 7.0

_QR_X = 10.0
_QR_PAD = 4.0
_DIVIDER_GAP = 8.0
_DIVIDER_WIDTH = 0.5
DIVIDER_OPACITY = 0.35
_DIVIDER_MARGIN = 4.0
_DIVIDER_BOTTOM = 5.0

_TEXT_GAP = 9.0
_TEXT_TOP_INSET = 12.0
_LINE_HEIGHT = 10.5
_NAME_SIZE = 9.0
_DETAIL_SIZE = 7.5
_DISCLAIMER_Y = 5.0
_DISCLAIMER_SIZE = 6.0
_RIGHT_PAD = 4.0
_MIN_TEXT_COLUMN = 60.0

# Average Helvetica glyph width as a fraction of the font size; used only
# to warn about text running past the block edge.
_AVG_GLYPH_WIDTH = 0.45

# Smallest block that still leaves room for a QR code under the header
MIN_STAMP_HEIGHT = HEADER_HEIGHT + 2 * _QR_PAD + 16.0
MIN_STAMP_WIDTH = 120.0

MAX_TEXT_LINES = 4


def _warn_if_overflows(run: TextRun, right_edge: float) -> None:
    estimate = len(run.text) * run.size * _AVG_GLYPH_WIDTH
    if run.x + estimate > right_edge:
        _logger.warning(
            "Stamp text may be clipped (%.1f pt available, ~%.1f pt needed): %d chars",
            right_edge - run.x,
            estimate,
            len(run.text),
        )


def build_stamp_layout(
    width: float,
    height: float,
    descriptor: StampDescriptor,
    style: StampStyle = DEFAULT_STYLE,
) -> StampLayout:
    """Lay out the signature stamp inside a ``width`` x ``height`` block.

    Args:
        width: Block width in PDF points.
        height: Block height in PDF points.
        descriptor: Signer name, registry id, contact, signing time.
        style: Texts and colours.

    Returns:
        StampLayout with primitives in paint order.

    Raises:
        DocumentFormatError: If the block is too small to hold the stamp.
    """
    if width < MIN_STAMP_WIDTH or height < MIN_STAMP_HEIGHT:
        raise DocumentFormatError(
            f"Signature block {width:.1f} x {height:.1f} pt is too small "
            f"(minimum {MIN_STAMP_WIDTH:.0f} x {MIN_STAMP_HEIGHT:.0f} pt)"
        )

    payload = build_qr_payload(descriptor, style)
    matrix = build_qr_matrix(payload)

    content_h = height - HEADER_HEIGHT
    header_baseline = content_h + _HEADER_TEXT_RISE
    right_edge = width - _RIGHT_PAD

    prims: list[Primitive] = [
        FilledRect(0, 0, width, height, style.background, style.navy, _BORDER_WIDTH),
        FilledRect(0, content_h, width, HEADER_HEIGHT, style.navy),
        FilledRect(0, 0, _ACCENT_WIDTH, content_h, style.blue),
        TextRun(_TITLE_X, header_baseline, style.title, _TITLE_SIZE, "bold", style.white),
        TextRun(
            width - _TRUST_MARK_INSET,
            header_baseline,
            style.trust_mark,
            _TRUST_MARK_SIZE,
            "bold",
            style.gold,
        ),
    ]

    # Square QR quadrant under the header, never wider than what leaves
    # the text column its minimum width
    qr_size = min(
        content_h - 2 * _QR_PAD,
        width - _QR_X - _DIVIDER_GAP - _TEXT_GAP - _MIN_TEXT_COLUMN - _RIGHT_PAD,
    )
    prims.append(ImageBox(_QR_X, (content_h - qr_size) / 2, qr_size, qr_size))

    div_x = _QR_X + qr_size + _DIVIDER_GAP
    prims.append(
        Line(
            div_x,
            _DIVIDER_BOTTOM,
            div_x,
            content_h - _DIVIDER_MARGIN,
            style.blue,
            _DIVIDER_WIDTH,
            DIVIDER_OPACITY,
        )
    )

    text_x = div_x + _TEXT_GAP
    cursor_y = content_h - _TEXT_TOP_INSET
    for idx, line in enumerate(build_text_lines(descriptor, style)[:MAX_TEXT_LINES]):
        # Only the signer's name is emphasised
        if idx == 0 and descriptor.name:
            run = TextRun(text_x, cursor_y, line, _NAME_SIZE, "bold", style.dark_text)
        else:
            run = TextRun(text_x, cursor_y, line, _DETAIL_SIZE, "regular", style.gray_text)
        _warn_if_overflows(run, right_edge)
        prims.append(run)
        cursor_y -= _LINE_HEIGHT

    if style.disclaimer:
        disclaimer = TextRun(
            text_x,
            _DISCLAIMER_Y,
            style.disclaimer,
            _DISCLAIMER_SIZE,
            "oblique",
            style.gray_text,
        )
        _warn_if_overflows(disclaimer, right_edge)
        prims.append(disclaimer)

    return StampLayout(
        width=width,
        height=height,
        primitives=tuple(prims),
        qr_payload=payload,
        qr_matrix=matrix,
    )
