"""PDF preparation, verification, and incremental update assembly."""

from .byterange import (
    BYTERANGE_PATTERN,
    SignatureSlot,
    compute_byterange_digest,
    extract_cms,
    find_signature_slots,
    insert_signature,
    locate_signature_slot,
    signed_ranges,
)
from .geometry import (
    Rect,
    compute_signature_rect,
    get_page_dimensions,
    resolve_page_index,
)
from .incremental import (
    RawObject,
    assemble_incremental_update,
    build_xref_and_trailer,
    find_prev_startxref,
    holds_signature,
    needs_normalisation,
    normalise_for_append,
    open_document,
    patch_byterange,
)
from .objects import (
    ACROFORM_SIG_FLAGS,
    ANNOT_FLAGS_SIG_WIDGET,
    BYTERANGE_PLACEHOLDER,
    SigObjectNums,
    allocate_sig_objects,
    build_catalog_override,
    build_object_override,
    build_page_override,
    contents_hex_length,
    pdf_string,
)
from .placeholder import PreparedDocument, prepare_signature_placeholder, validate_rect
from .verify import (
    VerificationResult,
    verify_all_embedded_signatures,
    verify_embedded_signature,
)

__all__ = [
    "ACROFORM_SIG_FLAGS",
    "ANNOT_FLAGS_SIG_WIDGET",
    "BYTERANGE_PATTERN",
    "BYTERANGE_PLACEHOLDER",
    "PreparedDocument",
    "RawObject",
    "Rect",
    "SigObjectNums",
    "SignatureSlot",
    "VerificationResult",
    "allocate_sig_objects",
    "assemble_incremental_update",
    "build_catalog_override",
    "build_object_override",
    "build_page_override",
    "build_xref_and_trailer",
    "compute_byterange_digest",
    "compute_signature_rect",
    "contents_hex_length",
    "extract_cms",
    "find_prev_startxref",
    "find_signature_slots",
    "get_page_dimensions",
    "holds_signature",
    "insert_signature",
    "locate_signature_slot",
    "needs_normalisation",
    "normalise_for_append",
    "open_document",
    "patch_byterange",
    "pdf_string",
    "prepare_signature_placeholder",
    "resolve_page_index",
    "signed_ranges",
    "validate_rect",
    "verify_all_embedded_signatures",
    "verify_embedded_signature",
]
