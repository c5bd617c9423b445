"""PDF structure analysis and incremental update assembly.

Functions for reading existing PDF structure (opening, xref offsets,
trailer entries) and building incremental updates (xref tables,
trailers, ByteRange patching).  New revisions are always appended after
the original ``%%EOF``; earlier bytes are never rewritten.

Object-level construction is in objects.py and render.py.
"""

from __future__ import annotations

import io
import logging
import re
from typing import TYPE_CHECKING

from ...constants import PDF_MAGIC
from ...errors import DocumentFormatError
from .. import require_pikepdf as _require_pikepdf
from .objects import BYTERANGE_PLACEHOLDER, reference, serialize_pikepdf_obj

if TYPE_CHECKING:
    import pikepdf

_logger = logging.getLogger(__name__)

RawObject = tuple[bytes, tuple[int, int]]

# Readers accept the %PDF- header anywhere in the first 1024 bytes
_HEADER_SEARCH_LIMIT = 1024


# ── Opening and normalisation ─────────────────────────────────────────


def open_document(pdf_bytes: bytes) -> pikepdf.Pdf:
    """Open PDF bytes for read-only analysis.

    The caller owns the returned object and must close it (it is a
    context manager).

    Raises:
        DocumentFormatError: If the bytes are not a PDF, cannot be parsed,
            or are encrypted.
    """
    if not pdf_bytes or PDF_MAGIC not in pdf_bytes[:_HEADER_SEARCH_LIMIT]:
        raise DocumentFormatError("Input does not appear to be a PDF file.")

    pikepdf = _require_pikepdf()
    try:
        pdf = pikepdf.open(io.BytesIO(pdf_bytes))
    except pikepdf.PasswordError as e:
        raise DocumentFormatError("Encrypted PDFs cannot be signed.") from e
    except (pikepdf.PdfError, ValueError, OSError) as e:
        raise DocumentFormatError(f"Cannot parse PDF: {e}") from e

    if pdf.is_encrypted:
        pdf.close()
        raise DocumentFormatError("Encrypted PDFs cannot be signed.")
    return pdf


def find_last_startxref(pdf_bytes: bytes) -> int:
    """Return the offset recorded by the last ``startxref``.

    PDFs with incremental updates have several startxref/%%EOF pairs;
    the last one is authoritative.
    """
    matches = list(re.finditer(rb"startxref\s+(\d+)\s+%%EOF", pdf_bytes))
    if not matches:
        raise DocumentFormatError("Cannot find startxref in PDF.")
    return int(matches[-1].group(1))


def needs_normalisation(pdf_bytes: bytes) -> bool:
    """True if a classic xref section cannot simply be appended.

    That is the case when the last cross-reference section is a stream,
    or when the file keeps objects inside object streams.
    """
    try:
        prev_xref = find_last_startxref(pdf_bytes)
    except DocumentFormatError:
        return True
    if pdf_bytes[prev_xref : prev_xref + 4] != b"xref":
        return True
    return re.search(rb"/Type\s*/ObjStm\b", pdf_bytes) is not None


def holds_signature(pdf_bytes: bytes, pdf: pikepdf.Pdf) -> bool:
    """True if any revision of the document carries a signature dictionary.

    Signature dictionaries compressed into object streams are not
    visible in the raw bytes, so the parsed objects are checked too.
    """
    if b"/ByteRange" in pdf_bytes:
        return True
    pikepdf = _require_pikepdf()
    return any(
        isinstance(obj, pikepdf.Dictionary) and "/ByteRange" in obj for obj in pdf.objects
    )


def normalise_for_append(pdf: pikepdf.Pdf) -> bytes:
    """Re-save a document with classic xref and no object streams.

    This is the single full serialization allowed before signing: it
    happens before the placeholder exists, so no offset captured later
    can be invalidated by it.
    """
    pikepdf = _require_pikepdf()
    out = io.BytesIO()
    pdf.save(
        out,
        object_stream_mode=pikepdf.ObjectStreamMode.disable,
        compress_streams=True,
        linearize=False,
    )
    data = out.getvalue()
    _logger.info("Normalised source PDF for incremental update: %d bytes", len(data))
    return data


# ── Trailer analysis ─────────────────────────────────────────────────


def find_prev_startxref(pdf_bytes: bytes, pdf: pikepdf.Pdf) -> tuple[int, int, list[str]]:
    """Find the last startxref offset, the trailer /Size, and carried entries.

    Args:
        pdf_bytes: Raw PDF content.
        pdf: The same document, opened with :func:`open_document`.

    Returns:
        (prev_xref, size, trailer_extra) where trailer_extra holds raw
        trailer entries to carry forward (/Info and /ID).
    """
    prev_xref = find_last_startxref(pdf_bytes)
    try:
        size = int(pdf.trailer["/Size"])
    except (KeyError, TypeError, ValueError) as e:
        raise DocumentFormatError(f"Cannot determine /Size from PDF trailer: {e}") from e

    # Incremental update trailers must repeat the previous trailer's
    # entries (except /Prev and /Size, which are updated).
    trailer_extra: list[str] = []
    trailer = pdf.trailer
    if "/Info" in trailer:
        trailer_extra.append(f"/Info {serialize_pikepdf_obj(trailer['/Info'])}")
    if "/ID" in trailer:
        trailer_extra.append(f"/ID {serialize_pikepdf_obj(trailer['/ID'])}")
    return prev_xref, size, trailer_extra


# ── Incremental update assembly ─────────────────────────────────────


def assemble_incremental_update(
    pdf_bytes: bytes,
    raw_objects: list[RawObject],
    new_size: int,
    prev_xref: int,
    root_objgen: tuple[int, int],
    trailer_extra: list[str],
) -> bytes:
    """Append new objects, an xref section and a trailer after the original bytes."""
    base = pdf_bytes
    if not base.endswith(b"\n"):
        base = base + b"\n"

    update_start = len(base)
    xref_entries: dict[int, tuple[int, int]] = {}
    running_offset = update_start
    for raw, objgen in raw_objects:
        xref_entries[objgen[0]] = (running_offset, objgen[1])
        running_offset += len(raw)

    all_objects = b"".join(raw for raw, _ in raw_objects)
    xref_data = build_xref_and_trailer(
        xref_entries=xref_entries,
        new_size=new_size,
        prev_xref=prev_xref,
        root_objgen=root_objgen,
        trailer_extra=trailer_extra,
        xref_offset=update_start + len(all_objects),
    )
    _logger.debug(
        "Incremental update: %d object(s) at offset %d", len(raw_objects), update_start
    )
    return base + all_objects + xref_data


def patch_byterange(full_pdf: bytes, update_start: int, hex_length: int) -> tuple[bytes, int]:
    """Patch the ByteRange placeholder with real values.

    Only the revision starting at ``update_start`` is searched, so a
    placeholder-shaped string in an earlier revision is never touched.

    Returns:
        (pdf_bytes, hex_start) -- hex_start is the offset of the first
        hex digit inside ``/Contents <...>``.
    """
    marker = b"/Contents <" + b"0" * hex_length + b">"
    contents_pos = full_pdf.find(marker, update_start)
    if contents_pos == -1:
        raise DocumentFormatError("Cannot find Contents placeholder in prepared PDF.")

    hex_start = contents_pos + len(b"/Contents <")
    after_start = hex_start + hex_length + 1  # +1 for closing ">"
    after_len = len(full_pdf) - after_start

    byterange_value = (
        f"/ByteRange [{0:>10d} {hex_start - 1:>10d} {after_start:>10d} {after_len:>10d}]"
    ).encode("latin-1")
    if len(byterange_value) != len(BYTERANGE_PLACEHOLDER):
        raise DocumentFormatError("ByteRange values do not fit the fixed-width placeholder.")

    br_pos = full_pdf.find(BYTERANGE_PLACEHOLDER, update_start)
    if br_pos == -1:
        raise DocumentFormatError("Cannot find ByteRange placeholder in incremental update.")
    patched = full_pdf[:br_pos] + byterange_value + full_pdf[br_pos + len(BYTERANGE_PLACEHOLDER) :]
    return patched, hex_start


# ── Xref table builder ──────────────────────────────────────────────


def build_xref_and_trailer(
    xref_entries: dict[int, tuple[int, int]],
    new_size: int,
    prev_xref: int,
    root_objgen: tuple[int, int],
    trailer_extra: list[str],
    xref_offset: int,
) -> bytes:
    """Build an xref table and trailer for an incremental update.

    Args:
        xref_entries: Object number -> (byte offset, generation).
        new_size: Total object count (/Size value).
        prev_xref: Previous xref offset (/Prev value).
        root_objgen: Catalog reference for /Root.
        trailer_extra: Extra trailer entries to carry forward (/Info, /ID).
        xref_offset: Byte offset where this xref table starts.

    Returns:
        Raw bytes of the xref table, trailer, and %%EOF.
    """
    if not xref_entries:
        raise DocumentFormatError("Cannot build xref table: no objects to reference.")

    xref_lines = ["xref"]

    # Group consecutive object numbers into subsections
    sorted_nums = sorted(xref_entries)
    groups: list[list[int]] = []
    current_group = [sorted_nums[0]]
    for n in sorted_nums[1:]:
        if n == current_group[-1] + 1:
            current_group.append(n)
        else:
            groups.append(current_group)
            current_group = [n]
    groups.append(current_group)

    for group in groups:
        xref_lines.append(f"{group[0]} {len(group)}")
        # Each entry is exactly 20 bytes: "oooooooooo ggggg n\r\n".
        # The \r is in the format string; \n comes from "\n".join().
        for obj_num in group:
            offset, gen = xref_entries[obj_num]
            xref_lines.append(f"{offset:010d} {gen:05d} n\r")

    xref_lines.append("trailer")
    xref_lines.append("<<")
    xref_lines.append(f"  /Size {new_size}")
    xref_lines.append(f"  /Prev {prev_xref}")
    xref_lines.append(f"  /Root {reference(root_objgen)}")
    xref_lines.extend(f"  {extra}" for extra in trailer_extra)
    xref_lines.append(">>")
    xref_lines.append("startxref")
    xref_lines.append(str(xref_offset))
    xref_lines.append("%%EOF")
    xref_lines.append("")

    return "\n".join(xref_lines).encode("latin-1")
