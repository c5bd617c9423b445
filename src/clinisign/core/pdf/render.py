"""Raw PDF objects for a visible signature field.

Builds the individual objects of the signature revision: signature
dictionary, merged field/widget annotation, the appearance form XObject
and the QR image XObject.

These helpers are called by placeholder.py and by the incremental
appearance pass in finisher.py.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ...constants import __version__
from ..appearance import DIVIDER_OPACITY, FONT_RESOURCES, GSTATE_NAME, QR_IMAGE_NAME
from .objects import (
    ANNOT_FLAGS_SIG_WIDGET,
    BYTERANGE_PLACEHOLDER_STR,
    contents_placeholder,
    pdf_string,
    reference,
)

if TYPE_CHECKING:
    from ..appearance import QrImageData, StampDescriptor
    from .geometry import Rect

SUBFILTER = "adbe.pkcs7.detached"


def pdf_date(dt: datetime) -> str:
    """Format a datetime as a PDF date string (``D:YYYYMMDDHHmmSS+HH'mm'``).

    Naive datetimes are taken as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    offset = dt.utcoffset()
    minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"D:{dt.strftime('%Y%m%d%H%M%S')}{sign}{hours:02d}'{mins:02d}'"


def build_sig_dict(
    obj_num: int,
    descriptor: StampDescriptor,
    signing_time: datetime,
    reserved_capacity: int,
) -> bytes:
    """Build the /Type /Sig dictionary with a zero-filled /Contents slot."""
    optional = [
        ("/Reason", descriptor.reason),
        ("/Name", descriptor.name),
        ("/Location", descriptor.location),
        ("/ContactInfo", descriptor.contact),
    ]
    optional_entries = "".join(f"  {key} {pdf_string(value)}\n" for key, value in optional if value)
    prop_build = (
        f"  /Prop_Build << /App << /Name /Clinisign /REx ({__version__}) >> "
        f"/Filter << /Name /Adobe.PPKLite >> >>\n"
    )
    head = (
        f"{obj_num} 0 obj\n"
        f"<<\n"
        f"  /Type /Sig\n"
        f"  /Filter /Adobe.PPKLite\n"
        f"  /SubFilter /{SUBFILTER}\n"
        f"  {BYTERANGE_PLACEHOLDER_STR}\n"
        f"  "
    ).encode("latin-1")
    tail = (
        f"\n"
        f"  /M ({pdf_date(signing_time)})\n"
        f"{optional_entries}"
        f"{prop_build}"
        f">>\n"
        f"endobj\n"
    ).encode("latin-1")
    return head + contents_placeholder(reserved_capacity) + tail


def build_annot_widget(
    annot_num: int,
    sig_num: int,
    ap_num: int,
    page_objgen: tuple[int, int],
    rect: Rect,
) -> bytes:
    """Build the merged signature field and widget annotation."""
    x0, y0, x1, y1 = rect
    # /Border [0 0 0] suppresses the default viewer-drawn border
    # since the appearance draws its own.
    return (
        f"{annot_num} 0 obj\n"
        f"<<\n"
        f"  /Type /Annot\n"
        f"  /Subtype /Widget\n"
        f"  /FT /Sig\n"
        f"  /Rect [{x0:.2f} {y0:.2f} {x1:.2f} {y1:.2f}]\n"
        f"  /V {sig_num} 0 R\n"
        f"  /T (Signature_{annot_num})\n"
        f"  /F {ANNOT_FLAGS_SIG_WIDGET}\n"
        f"  /P {reference(page_objgen)}\n"
        f"  /AP << /N {ap_num} 0 R >>\n"
        f"  /Border [0 0 0]\n"
        f">>\n"
        f"endobj\n"
    ).encode("latin-1")


def appearance_resources(img_ref: str) -> str:
    """Resource dictionary shared by every stamp drawing.

    Fonts are the standard Helvetica family and are written as direct
    dictionaries; only the QR image needs its own object.
    """
    fonts = " ".join(
        f"/{name} << /Type /Font /Subtype /Type1 /BaseFont /{base_font} "
        f"/Encoding /WinAnsiEncoding >>"
        for name, base_font in FONT_RESOURCES.values()
    )
    return (
        f"<< /Font << {fonts} >>"
        f" /XObject << /{QR_IMAGE_NAME} {img_ref} >>"
        f" /ExtGState << /{GSTATE_NAME} << /Type /ExtGState /CA {DIVIDER_OPACITY} >> >>"
        f" /ProcSet [/PDF /Text /ImageC] >>"
    )


def build_appearance_xobject(
    ap_num: int, img_num: int, width: float, height: float, content: bytes
) -> bytes:
    """Build the /AP /N form XObject wrapping a stamp content stream."""
    header = (
        f"{ap_num} 0 obj\n"
        f"<< /Type /XObject /Subtype /Form /FormType 1\n"
        f"   /BBox [0.00 0.00 {width:.2f} {height:.2f}]\n"
        f"   /Resources {appearance_resources(f'{img_num} 0 R')}\n"
        f"   /Length {len(content)}\n"
        f">>\nstream\n"
    )
    return header.encode("latin-1") + content + b"\nendstream\nendobj\n"


def build_image_object(img_num: int, img_data: QrImageData) -> bytes:
    """Build a raw PDF image XObject for the QR code."""
    img_dict = (
        f"{img_num} 0 obj\n"
        f"<< /Type /XObject /Subtype /Image\n"
        f"   /Width {img_data['width']} /Height {img_data['height']}\n"
        f"   /ColorSpace /DeviceRGB /BitsPerComponent {img_data['bpc']}\n"
        f"   /Interpolate false\n"
        f"   /Filter /FlateDecode\n"
        f"   /Length {len(img_data['samples'])}\n"
        f">>\n"
        f"stream\n"
    )
    return img_dict.encode("latin-1") + img_data["samples"] + b"\nendstream\nendobj\n"
