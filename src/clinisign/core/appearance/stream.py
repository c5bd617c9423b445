"""
PDF content stream for the signature stamp.

Turns a :class:`~.layout.StampLayout` into the operators of a form
XObject: the widget's ``/AP /N``, which the legacy re-save path also
paints onto the page.  Resource names are prefixed ``Cs``.

Text uses the standard 14 Helvetica family with WinAnsiEncoding, so no
font program is embedded.
"""

from __future__ import annotations

import logging

from .layout import DIVIDER_OPACITY, FilledRect, ImageBox, Line, StampLayout, TextRun

_logger = logging.getLogger(__name__)

# ── Resource names ───────────────────────────────────────────────────

FONT_RESOURCES: dict[str, tuple[str, str]] = {
    # font style -> (resource name, standard BaseFont)
    "regular": ("CsHelv", "Helvetica"),
    "bold": ("CsHelvB", "Helvetica-Bold"),
    "oblique": ("CsHelvI", "Helvetica-Oblique"),
}
QR_IMAGE_NAME = "CsQr"
GSTATE_NAME = "CsGS"


def _num(value: float) -> str:
    """Format a number compactly for a content stream."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _rgb(color: tuple[float, float, float]) -> str:
    return " ".join(_num(c) for c in color)


def encode_winansi(text: str) -> bytes:
    """Encode text as an escaped PDF literal string body in WinAnsiEncoding.

    Characters outside cp1252 are replaced with '?' and logged.
    """
    raw = text.encode("cp1252", errors="replace")
    replaced = raw.count(b"?") - text.count("?")
    if replaced > 0:
        _logger.warning("%d character(s) not representable in WinAnsiEncoding", replaced)

    out = bytearray()
    for byte in raw:
        if byte in (0x5C, 0x28, 0x29):  # \ ( )
            out += b"\\" + bytes([byte])
        elif byte < 0x20 or byte == 0x7F:
            out += f"\\{byte:03o}".encode("ascii")
        else:
            out.append(byte)
    return bytes(out)


def _rect_ops(p: FilledRect) -> list[bytes]:
    ops = [
        b"q",
        f"{_rgb(p.fill)} rg".encode("ascii"),
        f"{_num(p.x)} {_num(p.y)} {_num(p.width)} {_num(p.height)} re f".encode("ascii"),
    ]
    if p.stroke is not None and p.line_width > 0:
        # Inset by half the line width so the border stays inside the block
        half = p.line_width / 2
        ops.append(f"{_rgb(p.stroke)} RG {_num(p.line_width)} w".encode("ascii"))
        ops.append(
            f"{_num(p.x + half)} {_num(p.y + half)} "
            f"{_num(p.width - p.line_width)} {_num(p.height - p.line_width)} re S".encode("ascii")
        )
    ops.append(b"Q")
    return ops


def _line_ops(p: Line) -> list[bytes]:
    ops = [b"q"]
    if p.opacity < 1.0:
        # GSTATE_NAME is the only graphics state in the resources
        if p.opacity != DIVIDER_OPACITY:
            raise ValueError(f"No graphics state for stroke opacity {p.opacity}")
        ops.append(f"/{GSTATE_NAME} gs".encode("ascii"))
    ops.append(f"{_rgb(p.color)} RG {_num(p.width)} w".encode("ascii"))
    ops.append(
        f"{_num(p.x0)} {_num(p.y0)} m {_num(p.x1)} {_num(p.y1)} l S".encode("ascii")
    )
    ops.append(b"Q")
    return ops


def _image_ops(p: ImageBox) -> list[bytes]:
    return [
        b"q",
        f"{_num(p.width)} 0 0 {_num(p.height)} {_num(p.x)} {_num(p.y)} cm".encode("ascii"),
        f"/{QR_IMAGE_NAME} Do".encode("ascii"),
        b"Q",
    ]


def _text_ops(p: TextRun) -> list[bytes]:
    font_name = FONT_RESOURCES[p.font][0]
    return [
        b"BT",
        f"/{font_name} {_num(p.size)} Tf".encode("ascii"),
        f"{_rgb(p.color)} rg".encode("ascii"),
        f"{_num(p.x)} {_num(p.y)} Td".encode("ascii"),
        b"(" + encode_winansi(p.text) + b") Tj",
        b"ET",
    ]


def render_content_stream(layout: StampLayout) -> bytes:
    """Render layout primitives into PDF content stream operators.

    Drawing is clipped to the block, so text that runs long is cut at
    the block edge instead of spilling over the page.

    Returns:
        Raw (uncompressed) content stream bytes.
    """
    ops: list[bytes] = [
        b"q",
        f"0 0 {_num(layout.width)} {_num(layout.height)} re W n".encode("ascii"),
    ]
    for prim in layout.primitives:
        if isinstance(prim, FilledRect):
            ops.extend(_rect_ops(prim))
        elif isinstance(prim, Line):
            ops.extend(_line_ops(prim))
        elif isinstance(prim, ImageBox):
            ops.extend(_image_ops(prim))
        elif isinstance(prim, TextRun):
            ops.extend(_text_ops(prim))
        else:
            raise TypeError(f"Unknown stamp primitive: {type(prim).__name__}")
    ops.append(b"Q")
    return b"\n".join(ops)
