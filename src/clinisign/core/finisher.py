"""
Post-signature appearance passes.

Two ways to redraw a signed document's stamp with final values:

* :func:`redraw_signed_document` -- the legacy pass.  It re-parses the
  signed file, paints over the widget area and draws the stamp straight
  into the page content, then re-saves the whole file.  The re-save
  rewrites bytes covered by the signature digest, so the signature no
  longer verifies; an :class:`IntegrityRiskWarning` is always emitted.
* :func:`append_appearance_revision` -- appends a new revision that only
  replaces the widget's ``/AP /N``.  Signed bytes are untouched.
"""

from __future__ import annotations

__all__ = [
    "INTEGRITY_RISK_MESSAGE",
    "append_appearance_revision",
    "find_signature_widget",
    "redraw_signed_document",
]

import io
import logging
import warnings
from typing import TYPE_CHECKING

from ..errors import DocumentFormatError, IntegrityRiskWarning
from . import require_pikepdf as _require_pikepdf
from .appearance import (
    DEFAULT_STYLE,
    DIVIDER_OPACITY,
    FONT_RESOURCES,
    GSTATE_NAME,
    QR_IMAGE_NAME,
    build_stamp_layout,
    render_content_stream,
    render_qr_image,
)
from .pdf.geometry import compute_signature_rect, get_page_dimensions, resolve_page_index
from .pdf.incremental import (
    assemble_incremental_update,
    find_last_startxref,
    find_prev_startxref,
    open_document,
)
from .pdf.objects import build_object_override
from .pdf.render import build_appearance_xobject, build_image_object

if TYPE_CHECKING:
    import pikepdf

    from .appearance import StampDescriptor, StampLayout, StampStyle
    from .pdf.geometry import Rect

_logger = logging.getLogger(__name__)

INTEGRITY_RISK_MESSAGE = (
    "The signed document was fully re-saved to redraw its stamp; bytes covered "
    "by the signature changed and the signature will no longer verify."
)


# ── Widget lookup ────────────────────────────────────────────────────


def _is_signature_widget(annot: pikepdf.Object) -> bool:
    if annot.get("/Subtype") != "/Widget":
        return False
    field_type = annot.get("/FT")
    if field_type is None and "/Parent" in annot:
        field_type = annot.Parent.get("/FT")
    if field_type != "/Sig":
        return False
    value = annot.get("/V")
    if value is None and "/Parent" in annot:
        value = annot.Parent.get("/V")
    return value is not None and "/ByteRange" in value


def find_signature_widget(
    pdf: pikepdf.Pdf, page_index: int | None = None
) -> tuple[int, pikepdf.Object] | None:
    """Find the last signed signature widget.

    Args:
        pdf: Open document.
        page_index: Restrict the search to one page.

    Returns:
        (page_index, widget) or None if no signed widget exists.
    """
    indices = range(len(pdf.pages)) if page_index is None else (page_index,)
    found = None
    for idx in indices:
        page = pdf.pages[idx].obj
        if "/Annots" not in page:
            continue
        for annot in page.Annots:
            if _is_signature_widget(annot):
                found = (idx, annot)
    return found


def _widget_rect(widget: pikepdf.Object) -> Rect:
    x0, y0, x1, y1 = (float(v) for v in widget.Rect)
    return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)


def _build_layout(rect: Rect, descriptor: StampDescriptor, style: StampStyle) -> StampLayout:
    x0, y0, x1, y1 = rect
    return build_stamp_layout(x1 - x0, y1 - y0, descriptor, style)


# ── Legacy full re-save ──────────────────────────────────────────────


def _stamp_form(pdf: pikepdf.Pdf, layout: StampLayout, style: StampStyle) -> pikepdf.Object:
    """Build the stamp as a form XObject owned by ``pdf``."""
    pikepdf = _require_pikepdf()
    Name = pikepdf.Name
    img_data = render_qr_image(layout.qr_matrix, style)

    image = pikepdf.Stream(
        pdf,
        b"",
        Type=Name.XObject,
        Subtype=Name.Image,
        Width=img_data["width"],
        Height=img_data["height"],
        ColorSpace=Name.DeviceRGB,
        BitsPerComponent=img_data["bpc"],
        Interpolate=False,
    )
    # Samples are already deflated
    image.write(img_data["samples"], filter=Name.FlateDecode)

    fonts = pikepdf.Dictionary(
        {
            f"/{name}": pikepdf.Dictionary(
                Type=Name.Font,
                Subtype=Name.Type1,
                BaseFont=Name(f"/{base_font}"),
                Encoding=Name.WinAnsiEncoding,
            )
            for name, base_font in FONT_RESOURCES.values()
        }
    )
    resources = pikepdf.Dictionary(
        Font=fonts,
        XObject=pikepdf.Dictionary({f"/{QR_IMAGE_NAME}": image}),
        ExtGState=pikepdf.Dictionary(
            {f"/{GSTATE_NAME}": pikepdf.Dictionary(Type=Name.ExtGState, CA=DIVIDER_OPACITY)}
        ),
        ProcSet=pikepdf.Array([Name.PDF, Name.Text, Name.ImageC]),
    )
    return pikepdf.Stream(
        pdf,
        render_content_stream(layout),
        Type=Name.XObject,
        Subtype=Name.Form,
        BBox=pikepdf.Array([0, 0, layout.width, layout.height]),
        Resources=resources,
    )


def redraw_signed_document(
    signed_bytes: bytes,
    descriptor: StampDescriptor,
    *,
    page: int | str = "last",
    rect: Rect | None = None,
    style: StampStyle = DEFAULT_STYLE,
) -> bytes:
    """
    Redraw the stamp of a signed document and re-save it in full.

    An opaque cover is painted over the widget area and the stamp is drawn
    on top of it in the page content.  The widget's own appearance is
    pointed at the same drawing.

    The output no longer verifies: the re-save changes bytes covered by
    the signature.  Always emits :class:`IntegrityRiskWarning`.

    Args:
        signed_bytes: Signed PDF.
        descriptor: Final stamp values.
        page: Page to draw on -- 0-based int, "first", or "last".
        rect: Area to cover; defaults to the signature widget on that
            page, or the computed signature rectangle if there is none.
        style: Stamp texts and colours.

    Returns:
        The re-saved PDF bytes.
    """
    pikepdf = _require_pikepdf()

    with open_document(signed_bytes) as pdf:
        page_index = resolve_page_index(pdf, page)
        widget_info = find_signature_widget(pdf, page_index)
        if rect is None:
            if widget_info is not None:
                rect = _widget_rect(widget_info[1])
            else:
                rect = compute_signature_rect(*get_page_dimensions(pdf, page_index))

        layout = _build_layout(rect, descriptor, style)
        form = _stamp_form(pdf, layout, style)

        pdf_page = pdf.pages[page_index]
        form_name = pdf_page.add_resource(form, pikepdf.Name.XObject, prefix="CsStamp")

        x0, y0, x1, y1 = rect
        r, g, b = style.white
        drawing = (
            f"Q\n"
            f"q {r:.3f} {g:.3f} {b:.3f} rg {x0:.2f} {y0:.2f} {x1 - x0:.2f} {y1 - y0:.2f} re f Q\n"
            f"q 1 0 0 1 {x0:.2f} {y0:.2f} cm {form_name} Do Q\n"
        ).encode("latin-1")
        # Isolate the existing content's graphics state from the stamp
        pdf_page.contents_add(b"q\n", prepend=True)
        pdf_page.contents_add(drawing)

        if widget_info is not None:
            widget_info[1].AP = pikepdf.Dictionary(N=form)

        out = io.BytesIO()
        pdf.save(
            out,
            object_stream_mode=pikepdf.ObjectStreamMode.disable,
            compress_streams=True,
            linearize=False,
        )

    data = out.getvalue()
    _logger.warning("%s (%d -> %d bytes)", INTEGRITY_RISK_MESSAGE, len(signed_bytes), len(data))
    warnings.warn(INTEGRITY_RISK_MESSAGE, IntegrityRiskWarning, stacklevel=2)
    return data


# ── Appearance revision ──────────────────────────────────────────────


def append_appearance_revision(
    signed_bytes: bytes,
    descriptor: StampDescriptor,
    *,
    style: StampStyle = DEFAULT_STYLE,
) -> bytes:
    """
    Replace the signature widget's appearance in a new incremental revision.

    The signed bytes are kept verbatim; the new revision overrides the
    widget with a fresh ``/AP /N`` and adds the form and QR image objects.
    The byte-range digest of the signature therefore still matches.

    Raises:
        DocumentFormatError: No signed signature widget, or the file ends
            in a cross-reference stream (an appended classic section
            would not be readable).
    """
    prev_xref = find_last_startxref(signed_bytes)
    if signed_bytes[prev_xref : prev_xref + 4] != b"xref":
        raise DocumentFormatError(
            "Cannot append an appearance revision: the document ends in a "
            "cross-reference stream."
        )

    with open_document(signed_bytes) as pdf:
        widget_info = find_signature_widget(pdf)
        if widget_info is None:
            raise DocumentFormatError("No signed signature widget found in PDF.")
        page_index, widget = widget_info
        if not widget.is_indirect:
            raise DocumentFormatError("Signature widget is not an indirect object.")

        rect = _widget_rect(widget)
        layout = _build_layout(rect, descriptor, style)
        content = render_content_stream(layout)
        img_data = render_qr_image(layout.qr_matrix, style)

        prev_xref, size, trailer_extra = find_prev_startxref(signed_bytes, pdf)
        ap_num, img_num = size, size + 1
        raw_objects = [
            (
                build_appearance_xobject(ap_num, img_num, layout.width, layout.height, content),
                (ap_num, 0),
            ),
            (build_image_object(img_num, img_data), (img_num, 0)),
            (
                build_object_override(
                    pdf,
                    widget.objgen,
                    skip_keys=("/AP",),
                    new_entries=[f"/AP << /N {ap_num} 0 R >>"],
                ),
                widget.objgen,
            ),
        ]
        root_objgen = pdf.Root.objgen

    data = assemble_incremental_update(
        pdf_bytes=signed_bytes,
        raw_objects=raw_objects,
        new_size=size + 2,
        prev_xref=prev_xref,
        root_objgen=root_objgen,
        trailer_extra=trailer_extra,
    )
    _logger.info(
        "Appended appearance revision: %d -> %d bytes (widget on page %d)",
        len(signed_bytes),
        len(data),
        page_index,
    )
    return data
