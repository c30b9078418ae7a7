"""Low-level PDF object construction.

Types, constants, and helpers for building PDF objects used in
signature incremental updates: text strings, raw object records,
overrides of existing objects, AcroForm updates, and object number
allocation.

PDF structure analysis and incremental update assembly is in incremental.py.
Signature dictionary, form and widget rendering is in render.py.
"""

from __future__ import annotations

__all__ = [
    "ANNOT_FLAGS_SIG_WIDGET",
    "SIG_FLAGS",
    "RawObject",
    "SigObjectNums",
    "allocate_sig_objects",
    "build_acroform_update",
    "build_object_override",
    "build_page_override",
    "format_ref",
    "pdf_literal_string",
    "pdf_text_string",
    "serialize_object",
]

from decimal import Decimal
from typing import TYPE_CHECKING, NamedTuple, TypedDict

from ...errors import MalformedDocument
from .. import require_pikepdf as _require_pikepdf
from ..appearance.layers import LAYER_ORDER

if TYPE_CHECKING:
    import pikepdf


class RawObject(NamedTuple):
    """A serialized indirect object ready to be appended."""

    data: bytes
    num: int
    gen: int = 0


class SigObjectNums(TypedDict):
    """Object numbers allocated for signature PDF objects.

    When no appearance is written (filling a hidden field), ``font``,
    ``ap``, ``frm`` and ``layers`` are None/empty.  ``annot`` is None
    when an existing field is filled instead of creating one.
    """

    sig: int
    annot: int | None
    font: int | None
    layers: dict[str, int]  # "n0".."n4" -> object number
    frm: int | None
    ap: int | None
    img: int | None
    smask: int | None
    new_size: int


# ── Constants ────────────────────────────────────────────────────────

# PDF annotation flags for signature widget (/F entry).
# Print flag is 4, Locked flag is 128; combined value is 132.
# See PDF Reference 1.7, Table 165 -- Annotation flags.
_ANNOT_FLAG_PRINT = 4
_ANNOT_FLAG_LOCKED = 128
ANNOT_FLAGS_SIG_WIDGET = _ANNOT_FLAG_PRINT | _ANNOT_FLAG_LOCKED  # 132

# /SigFlags: SignaturesExist (1) | AppendOnly (2)
SIG_FLAGS = 3


# ── PDF string/object helpers ────────────────────────────────────────


def format_ref(objgen: tuple[int, int]) -> str:
    return f"{objgen[0]} {objgen[1]} R"


def pdf_literal_string(text: str) -> str:
    """Escape Latin-1 *text* as the body of a PDF literal string."""
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
        elif code < 0x20 or 0x7F <= code < 0xA0:
            result.append(f"\\{code:03o}")
        else:
            result.append(char)
    return "".join(result)


def pdf_text_string(text: str) -> str:
    """Encode *text* as a complete PDF text string operand.

    ASCII and Latin-1 text becomes a literal ``(...)`` string; anything
    else is written as UTF-16BE hex with a byte order mark, so no
    character is lost.
    """
    if all(ord(c) < 0x80 or 0xA0 <= ord(c) <= 0xFF for c in text):
        return f"({pdf_literal_string(text)})"
    encoded = b"\xfe\xff" + text.encode("utf-16-be")
    return f"<{encoded.hex().upper()}>"


def serialize_object(obj: None | bool | int | float | Decimal | pikepdf.Object) -> str:
    """Serialize a pikepdf object to a raw PDF string for embedding.

    Uses pikepdf's built-in unparse() for correct PDF syntax, with
    special handling for indirect references (emitted as "N G R")
    and plain Python types that pikepdf may return.
    """
    # Plain Python types (pikepdf sometimes returns these directly)
    if obj is None:
        return "null"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, float):
        return str(int(obj)) if obj % 1 == 0.0 else f"{obj:.6f}"
    if isinstance(obj, Decimal):
        # pikepdf returns reals as Decimal
        return format(obj, "f")
    pikepdf = _require_pikepdf()
    if isinstance(obj, pikepdf.Object) and obj.is_indirect:
        return format_ref(obj.objgen)
    return obj.unparse(resolved=True).decode("latin-1")


def _dict_entries(obj: pikepdf.Object, skip_keys: tuple[str, ...]) -> list[str]:
    # pikepdf dict requires .keys() -- __iter__ yields values, not keys
    return [
        f"  {key} {serialize_object(obj[key])}" for key in obj.keys() if key not in skip_keys
    ]


# ── Object override builders ─────────────────────────────────────────


def build_object_override(
    pdf: pikepdf.Pdf,
    objgen: tuple[int, int],
    skip_keys: tuple[str, ...],
    new_entries: list[str],
) -> RawObject:
    """Build a raw override of a dictionary object with new/replaced entries.

    Copies every entry of the target object except *skip_keys*, then
    appends *new_entries*.  The override keeps the original object and
    generation numbers, so it replaces the object in the new revision.

    Args:
        pdf: The open source document (read only).
        objgen: (object number, generation) of the target.
        skip_keys: Keys to omit from the original (e.g. ("/Annots",)).
        new_entries: Raw entries to append (e.g. ["  /Annots [5 0 R]"]).

    Raises:
        MalformedDocument: If the target is not a plain dictionary.
    """
    pikepdf = _require_pikepdf()
    obj = pdf.get_object(objgen)
    if not isinstance(obj, pikepdf.Dictionary) or isinstance(obj, pikepdf.Stream):
        raise MalformedDocument(f"Object {objgen[0]} {objgen[1]} is not a dictionary")

    entries = _dict_entries(obj, skip_keys)
    entries.extend(new_entries)
    body = "\n".join(entries)
    raw = f"{objgen[0]} {objgen[1]} obj\n<<\n{body}\n>>\nendobj\n"
    return RawObject(raw.encode("latin-1"), objgen[0], objgen[1])


def build_page_override(
    pdf: pikepdf.Pdf, page_objgen: tuple[int, int], annots: list[str]
) -> RawObject:
    """Build a raw override of the page object with the given /Annots references."""
    return build_object_override(
        pdf,
        page_objgen,
        skip_keys=("/Annots",),
        new_entries=[f"  /Annots [{' '.join(annots)}]"],
    )


def _existing_fields(acroform: pikepdf.Object) -> list[str]:
    fields = acroform.get("/Fields")
    if fields is None:
        return []
    return [serialize_object(f) for f in fields]


def build_acroform_update(
    pdf: pikepdf.Pdf,
    root_objgen: tuple[int, int],
    new_field: int | None,
) -> RawObject | None:
    """Add *new_field* to ``/AcroForm /Fields`` and set ``/SigFlags 3``.

    Existing fields and all other AcroForm entries are preserved.

    - No AcroForm: the catalog is overridden with a fresh one.
    - Indirect AcroForm: only the AcroForm object is overridden.
    - Direct AcroForm: the catalog is overridden with a rewritten copy.

    Returns:
        The object to append, or None when nothing needs to change
        (no field to add and the signature flags are already set).
    """
    root = pdf.get_object(root_objgen)
    acroform = root.get("/AcroForm")
    new_ref = [f"{new_field} 0 R"] if new_field is not None else []

    if acroform is None:
        entry = f"  /AcroForm << /Fields [{' '.join(new_ref)}] /SigFlags {SIG_FLAGS} >>"
        return build_object_override(pdf, root_objgen, ("/AcroForm",), [entry])

    old_flags = int(acroform.get("/SigFlags", 0))
    if not new_ref and old_flags & SIG_FLAGS == SIG_FLAGS:
        return None

    fields = " ".join(_existing_fields(acroform) + new_ref)
    flags = old_flags | SIG_FLAGS
    updated = [f"  /Fields [{fields}]", f"  /SigFlags {flags}"]

    if acroform.is_indirect:
        return build_object_override(pdf, acroform.objgen, ("/Fields", "/SigFlags"), updated)

    kept = _dict_entries(acroform, ("/Fields", "/SigFlags"))
    inner = "\n".join(kept + updated)
    return build_object_override(pdf, root_objgen, ("/AcroForm",), [f"  /AcroForm <<\n{inner}\n  >>"])


# ── Object number allocation ────────────────────────────────────────


def allocate_sig_objects(
    prev_size: int,
    *,
    with_widget: bool = True,
    with_appearance: bool = True,
    has_image: bool = False,
    has_smask: bool = False,
) -> SigObjectNums:
    """Allocate object numbers for all new PDF objects.

    With an appearance, the layered form structure is:
      AP/N (top) -> /FRM Do
      /FRM       -> /n0 Do ... /n4 Do
      /n0../n4   -> individual layer streams, sharing one font
    """
    next_obj = prev_size  # first free object number

    def take() -> int:
        nonlocal next_obj
        num = next_obj
        next_obj += 1
        return num

    sig = take()
    annot = take() if with_widget else None

    font = frm = ap = img = smask = None
    layers: dict[str, int] = {}
    if with_appearance:
        font = take()
        for name in LAYER_ORDER:
            layers[name] = take()
        frm = take()
        ap = take()
        if has_image:
            img = take()
            if has_smask:
                smask = take()

    return {
        "sig": sig,
        "annot": annot,
        "font": font,
        "layers": layers,
        "frm": frm,
        "ap": ap,
        "img": img,
        "smask": smask,
        "new_size": next_obj,
    }
