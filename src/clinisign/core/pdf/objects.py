"""Low-level PDF object construction.

Types, constants, and helpers for building the raw PDF objects of a
signature incremental update: string escaping, object overrides that
copy an existing object's entries, and object number allocation.

PDF structure analysis and incremental update assembly is in incremental.py.
The individual signature objects are built in render.py.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypedDict

if TYPE_CHECKING:
    import pikepdf

from .. import require_pikepdf as _require_pikepdf

_logger = logging.getLogger(__name__)


class SigObjectNums(TypedDict):
    """Object numbers allocated for the new signature objects."""

    sig: int  # /Type /Sig dictionary
    annot: int  # merged field + widget annotation
    ap: int  # /AP /N form XObject
    img: int  # QR image XObject
    new_size: int  # /Size for the new trailer


# ── Constants ────────────────────────────────────────────────────────

# Fixed-width ByteRange: each value is right-aligned in 10 digits so the
# real values can be patched in without moving a single byte.
BYTERANGE_PLACEHOLDER = b"/ByteRange [         0          0          0          0]"
BYTERANGE_PLACEHOLDER_STR = BYTERANGE_PLACEHOLDER.decode("ascii")

# PDF annotation flags for signature widget (/F entry).
# Print flag is 4, Locked flag is 128; combined value is 132.
# See PDF Reference 1.7, Table 165 -- Annotation flags.
_ANNOT_FLAG_PRINT = 4
_ANNOT_FLAG_LOCKED = 128
ANNOT_FLAGS_SIG_WIDGET = _ANNOT_FLAG_PRINT | _ANNOT_FLAG_LOCKED  # 132

# /SigFlags: SignaturesExist (1) | AppendOnly (2)
ACROFORM_SIG_FLAGS = 3


def contents_hex_length(reserved_capacity: int) -> int:
    """Number of hex characters in a /Contents slot for ``reserved_capacity`` bytes."""
    return reserved_capacity * 2


def contents_placeholder(reserved_capacity: int) -> bytes:
    """Zero-filled ``/Contents <...>`` entry reserving ``reserved_capacity`` bytes."""
    return b"/Contents <" + b"0" * contents_hex_length(reserved_capacity) + b">"


# ── PDF string/object helpers ────────────────────────────────────────


def pdf_string(text: str) -> str:
    """Encode text as a PDF string object, delimiters included.

    Latin-1 text becomes an escaped literal string ``(...)``.  Anything
    else becomes a UTF-16BE hex string with a byte-order mark, which every
    conforming reader decodes as a text string.
    """
    try:
        text.encode("latin-1")
    except UnicodeEncodeError:
        return "<FEFF" + text.encode("utf-16-be").hex().upper() + ">"

    result: list[str] = []
    for char in text:
        code = ord(char)
        if char == "\\":
            result.append("\\\\")
        elif char == "(":
            result.append("\\(")
        elif char == ")":
            result.append("\\)")
        elif char == "\n":
            result.append("\\n")
        elif char == "\r":
            result.append("\\r")
        elif char == "\t":
            result.append("\\t")
        elif code < 0x20 or code == 0x7F:
            result.append(f"\\{code:03o}")
        else:
            result.append(char)
    return "(" + "".join(result) + ")"


def serialize_pikepdf_obj(obj: None | bool | int | float | pikepdf.Object) -> str:
    """Serialize a pikepdf object to a raw PDF string for embedding.

    Indirect objects are emitted as references ("N G R"); everything else
    goes through pikepdf's ``unparse()``.
    """
    if obj is None:
        return "null"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, float):
        return str(int(obj)) if obj % 1 == 0.0 else f"{obj:.6f}"
    pikepdf = _require_pikepdf()
    if isinstance(obj, pikepdf.Object) and obj.is_indirect:
        return f"{obj.objgen[0]} {obj.objgen[1]} R"
    return obj.unparse(resolved=False).decode("latin-1")


def reference(objgen: tuple[int, int]) -> str:
    """Format an indirect reference."""
    return f"{objgen[0]} {objgen[1]} R"


# ── Object override builders ─────────────────────────────────────────


def build_object_override(
    pdf: pikepdf.Pdf,
    objgen: tuple[int, int],
    skip_keys: tuple[str, ...],
    new_entries: list[str],
) -> bytes:
    """Build a raw override of an existing dictionary object.

    Copies every entry of the target object except ``skip_keys``, then
    appends ``new_entries``.  The override keeps the object's number and
    generation so it replaces the original in the new revision.

    Args:
        pdf: The open source document (read only).
        objgen: (object number, generation) of the target.
        skip_keys: Keys to omit from the original (e.g. ("/Annots",)).
        new_entries: Raw entries to append (e.g. ["/Annots [5 0 R]"]).

    Returns:
        Raw PDF object definition.
    """
    obj = pdf.get_object(objgen)
    # pikepdf dict requires .keys() -- __iter__ yields values, not keys
    entries = [
        f"  {key} {serialize_pikepdf_obj(obj[key])}" for key in obj.keys() if key not in skip_keys
    ]
    entries.extend(f"  {entry}" for entry in new_entries)
    body = "\n".join(entries)
    return f"{objgen[0]} {objgen[1]} obj\n<<\n{body}\n>>\nendobj\n".encode("latin-1")


def build_page_override(pdf: pikepdf.Pdf, page_objgen: tuple[int, int], annots: list[str]) -> bytes:
    """Build a raw override of the page object with a replaced /Annots array."""
    return build_object_override(
        pdf,
        page_objgen,
        skip_keys=("/Annots",),
        new_entries=[f"/Annots [{' '.join(annots)}]"],
    )


def build_catalog_override(pdf: pikepdf.Pdf, field_objgen: tuple[int, int]) -> bytes:
    """Build a raw override of the catalog registering a new signature field.

    An existing /AcroForm keeps all its entries and fields; the new field
    is appended to /Fields and /SigFlags is set.
    """
    root = pdf.Root
    acro_entries: list[str] = []
    fields: list[str] = []
    if "/AcroForm" in root:
        acro = root.AcroForm
        for key in acro.keys():
            if key in ("/Fields", "/SigFlags"):
                continue
            acro_entries.append(f"{key} {serialize_pikepdf_obj(acro[key])}")
        if "/Fields" in acro:
            fields = [serialize_pikepdf_obj(field) for field in acro.Fields]
    fields.append(reference(field_objgen))

    acro_entries.insert(0, f"/Fields [{' '.join(fields)}]")
    acro_entries.append(f"/SigFlags {ACROFORM_SIG_FLAGS}")
    acroform = "<< " + " ".join(acro_entries) + " >>"
    return build_object_override(
        pdf,
        root.objgen,
        skip_keys=("/AcroForm",),
        new_entries=[f"/AcroForm {acroform}"],
    )


# ── Object number allocation ────────────────────────────────────────


def allocate_sig_objects(prev_size: int) -> SigObjectNums:
    """Allocate object numbers for the new signature objects.

    New objects start at the previous trailer's /Size, so they never
    collide with objects of earlier revisions.
    """
    return {
        "sig": prev_size,
        "annot": prev_size + 1,
        "ap": prev_size + 2,
        "img": prev_size + 3,
        "new_size": prev_size + 4,
    }
