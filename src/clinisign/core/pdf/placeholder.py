"""Signature placeholder insertion.

Prepares a PDF for hash-then-sign: appends a true incremental update
holding a signature field with a visible stamp and a zero-filled,
fixed-length ``/Contents`` slot, then patches the ``/ByteRange`` with its
final values.  The original bytes are preserved exactly; every offset
recorded here stays valid until the signature is spliced in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ...constants import DEFAULT_RESERVED_CAPACITY, MAX_RESERVED_CAPACITY, MIN_RESERVED_CAPACITY
from ...errors import DocumentFormatError
from ..appearance import (
    DEFAULT_STYLE,
    build_stamp_layout,
    render_content_stream,
    render_qr_image,
)
from .geometry import compute_signature_rect, get_page_dimensions, resolve_page_index
from .incremental import (
    RawObject,
    assemble_incremental_update,
    find_prev_startxref,
    holds_signature,
    needs_normalisation,
    normalise_for_append,
    open_document,
    patch_byterange,
)
from .objects import (
    allocate_sig_objects,
    build_catalog_override,
    build_page_override,
    contents_hex_length,
    reference,
    serialize_pikepdf_obj,
)
from .render import (
    build_annot_widget,
    build_appearance_xobject,
    build_image_object,
    build_sig_dict,
)

if TYPE_CHECKING:
    import pikepdf

    from ..appearance import StampDescriptor, StampStyle
    from .geometry import Rect

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedDocument:
    """A PDF with an empty signature slot, ready for digesting.

    Attributes:
        data: Complete intermediate PDF bytes.
        hex_start: Offset of the first hex digit of the /Contents slot.
        hex_length: Number of hex digits reserved (2 x capacity).
        rect: Widget rectangle in page coordinates.
        page_index: 0-based page carrying the widget.
    """

    data: bytes
    hex_start: int
    hex_length: int
    rect: Rect
    page_index: int

    @property
    def reserved_capacity(self) -> int:
        return self.hex_length // 2


def validate_rect(rect: Rect) -> Rect:
    """Check that a caller-supplied rectangle is well formed."""
    x0, y0, x1, y1 = (float(v) for v in rect)
    if x1 <= x0 or y1 <= y0:
        raise DocumentFormatError(f"Invalid signature rectangle: {rect!r}")
    if x0 < 0 or y0 < 0:
        raise DocumentFormatError(f"Signature rectangle must not be negative: {rect!r}")
    return x0, y0, x1, y1


def _existing_annots(page: pikepdf.Object) -> list[str]:
    if "/Annots" not in page:
        return []
    return [serialize_pikepdf_obj(ref) for ref in page.Annots]


def _build_objects(
    pdf: pikepdf.Pdf,
    prev_size: int,
    page_index: int,
    rect: Rect,
    descriptor: StampDescriptor,
    signing_time: datetime,
    reserved_capacity: int,
    style: StampStyle,
) -> tuple[list[RawObject], int]:
    """Build every raw object of the signature revision, in append order."""
    x0, y0, x1, y1 = rect
    layout = build_stamp_layout(x1 - x0, y1 - y0, descriptor, style)
    content = render_content_stream(layout)
    img_data = render_qr_image(layout.qr_matrix, style)

    nums = allocate_sig_objects(prev_size)
    page = pdf.pages[page_index].obj
    page_objgen = page.objgen
    annots = [*_existing_annots(page), f"{nums['annot']} 0 R"]

    raw_objects: list[RawObject] = [
        (
            build_sig_dict(nums["sig"], descriptor, signing_time, reserved_capacity),
            (nums["sig"], 0),
        ),
        (
            build_annot_widget(nums["annot"], nums["sig"], nums["ap"], page_objgen, rect),
            (nums["annot"], 0),
        ),
        (
            build_appearance_xobject(nums["ap"], nums["img"], layout.width, layout.height, content),
            (nums["ap"], 0),
        ),
        (build_image_object(nums["img"], img_data), (nums["img"], 0)),
        (build_page_override(pdf, page_objgen, annots), page_objgen),
        (build_catalog_override(pdf, (nums["annot"], 0)), pdf.Root.objgen),
    ]
    return raw_objects, nums["new_size"]


def prepare_signature_placeholder(
    pdf_bytes: bytes,
    descriptor: StampDescriptor,
    *,
    page: int | str = "last",
    rect: Rect | None = None,
    reserved_capacity: int = DEFAULT_RESERVED_CAPACITY,
    style: StampStyle = DEFAULT_STYLE,
) -> PreparedDocument:
    """
    Prepare a PDF with an empty signature field for hash-then-sign.

    Uses a TRUE incremental update: new objects are appended after the
    original %%EOF.  If the source ends in a cross-reference stream or
    uses object streams it is first re-saved once without them, before
    any offset is recorded.  Such a source that already carries a
    signature is refused instead.

    Args:
        pdf_bytes: Raw PDF content.
        descriptor: Stamp content; ``signing_time`` is the nominal time
            written to /M and drawn on the stamp (now if None).
        page: Page for the signature -- 0-based int, "first", or "last".
        rect: Widget rectangle (x0, y0, x1, y1). If None, computed from
            the page size by :func:`compute_signature_rect`.
        reserved_capacity: Bytes reserved for the DER signature.
        style: Stamp texts and colours.

    Returns:
        PreparedDocument with the intermediate bytes and slot position.

    Raises:
        DocumentFormatError: Unparseable, encrypted, or page-less input,
            an already-signed source that would need a re-save, or an
            invalid rectangle/capacity.
    """
    if not MIN_RESERVED_CAPACITY <= reserved_capacity <= MAX_RESERVED_CAPACITY:
        raise DocumentFormatError(
            f"Reserved capacity {reserved_capacity} out of range "
            f"[{MIN_RESERVED_CAPACITY}, {MAX_RESERVED_CAPACITY}]"
        )
    signing_time = descriptor.signing_time or datetime.now(timezone.utc)
    descriptor = replace(descriptor, signing_time=signing_time)

    with open_document(pdf_bytes) as pdf:
        if needs_normalisation(pdf_bytes):
            # A re-save rewrites bytes that earlier signatures cover
            if holds_signature(pdf_bytes, pdf):
                raise DocumentFormatError(
                    "PDF is already signed and uses cross-reference streams or "
                    "object streams; adding a signature would invalidate the existing one."
                )
            pdf_bytes = normalise_for_append(pdf)

    # ── Read-only analysis of the (possibly normalised) source ────
    with open_document(pdf_bytes) as pdf:
        page_index = resolve_page_index(pdf, page)
        if rect is None:
            page_w, page_h = get_page_dimensions(pdf, page_index)
            rect = compute_signature_rect(page_w, page_h)
        else:
            rect = validate_rect(rect)

        prev_xref, prev_size, trailer_extra = find_prev_startxref(pdf_bytes, pdf)
        raw_objects, new_size = _build_objects(
            pdf,
            prev_size,
            page_index,
            rect,
            descriptor,
            signing_time,
            reserved_capacity,
            style,
        )
        root_objgen = pdf.Root.objgen

    # ── Assemble incremental update ────────────────────────────
    full_pdf = assemble_incremental_update(
        pdf_bytes=pdf_bytes,
        raw_objects=raw_objects,
        new_size=new_size,
        prev_xref=prev_xref,
        root_objgen=root_objgen,
        trailer_extra=trailer_extra,
    )

    # ── Patch the ByteRange and return offsets ─────────────────
    hex_length = contents_hex_length(reserved_capacity)
    update_start = len(pdf_bytes) if pdf_bytes.endswith(b"\n") else len(pdf_bytes) + 1
    data, hex_start = patch_byterange(full_pdf, update_start, hex_length)

    _logger.info(
        "Prepared signature placeholder: %d bytes, page %d, slot %d+%d",
        len(data),
        page_index,
        hex_start,
        hex_length,
    )
    _logger.debug("Signature rect: %s (signature field %s)", rect, reference(raw_objects[1][1]))
    return PreparedDocument(
        data=data,
        hex_start=hex_start,
        hex_length=hex_length,
        rect=rect,
        page_index=page_index,
    )
