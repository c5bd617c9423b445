"""Signature visual appearance -- payload, QR code, layout, and content stream."""

from .layout import (
    DIVIDER_OPACITY,
    FilledRect,
    ImageBox,
    Line,
    Primitive,
    StampLayout,
    TextRun,
    build_stamp_layout,
)
from .payload import (
    DEFAULT_STYLE,
    StampDescriptor,
    StampStyle,
    build_qr_payload,
    build_text_lines,
    clean_registry_id,
    format_stamp_timestamp,
    strip_title,
)
from .qr import QrImageData, QrMatrix, build_qr_matrix, render_qr_image
from .stream import (
    FONT_RESOURCES,
    GSTATE_NAME,
    QR_IMAGE_NAME,
    encode_winansi,
    render_content_stream,
)

__all__ = [
    "DEFAULT_STYLE",
    "DIVIDER_OPACITY",
    "FONT_RESOURCES",
    "GSTATE_NAME",
    "QR_IMAGE_NAME",
    "FilledRect",
    "ImageBox",
    "Line",
    "Primitive",
    "QrImageData",
    "QrMatrix",
    "StampDescriptor",
    "StampLayout",
    "StampStyle",
    "TextRun",
    "build_qr_matrix",
    "build_qr_payload",
    "build_stamp_layout",
    "build_text_lines",
    "clean_registry_id",
    "encode_winansi",
    "format_stamp_timestamp",
    "render_content_stream",
    "render_qr_image",
    "strip_title",
]
