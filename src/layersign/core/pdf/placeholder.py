"""
Signature placeholder installation.

Two ways to get a document ready for byte-range signing, both written
as a true incremental update (original bytes untouched):

- :func:`install_signature_field` creates a new signature field and
  widget on a page, with the layered appearance.
- :func:`fill_signature_field` reuses a signature field the document
  already declares (for example one placed by a form designer), adding
  only the signature value and, when the field is visible, its
  appearance.

Either way the result is a :class:`~.byterange.PreparedDocument` whose
``/Contents`` is a run of ``2 * reserved_bytes`` zero digits and whose
``/ByteRange`` already describes the final layout.
"""

from __future__ import annotations

__all__ = [
    "SignatureField",
    "SignatureMetadata",
    "fill_signature_field",
    "find_empty_signature_field",
    "find_signature_fields",
    "install_signature_field",
    "load_prepared_document",
    "open_document",
]

import datetime
import io
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

from ...constants import DEFAULT_REASON, MAX_RESERVED_SIZE, PDF_MAGIC
from ...errors import (
    ConfigError,
    DocumentError,
    MalformedDocument,
    SignatureFieldNotFound,
)
from .. import require_pikepdf as _require_pikepdf
from .byterange import BYTERANGE_PATTERN, ByteRange, PreparedDocument
from .incremental import (
    assemble_incremental_update,
    find_prev_startxref,
    find_root_ref,
    patch_byterange,
)
from .objects import (
    RawObject,
    allocate_sig_objects,
    build_acroform_update,
    build_object_override,
    build_page_override,
)
from .position import find_page, validate_rect
from .render import (
    build_annot_widget,
    build_appearance_objects,
    build_font_object,
    build_sig_dict,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    import pikepdf

    from ..appearance import SignatureAppearance

_logger = logging.getLogger(__name__)

# The PDF header may be preceded by junk; readers look in the first 1 KB.
_HEADER_SEARCH_LIMIT = 1024

_DEFAULT_FIELD_PREFIX = "Signature"


@dataclass(frozen=True)
class SignatureMetadata:
    """Signer details written into the signature dictionary."""

    signer_name: str
    location: str = ""
    reason: str | None = DEFAULT_REASON
    signing_time: datetime.datetime | None = None

    def resolved_time(self) -> datetime.datetime:
        """The signing time, defaulting to now (UTC, whole seconds)."""
        if self.signing_time is not None:
            return self.signing_time
        return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)


class SignatureField(NamedTuple):
    """A signature field declared in the document's AcroForm."""

    name: str  # fully qualified, parts joined with "."
    objgen: tuple[int, int]
    widget_objgen: tuple[int, int] | None
    page: int | None  # 1-based
    rect: tuple[float, float, float, float] | None  # (x0, y0, x1, y1)
    signed: bool

    @property
    def is_visible(self) -> bool:
        if self.rect is None:
            return False
        x0, y0, x1, y1 = self.rect
        return x1 > x0 and y1 > y0


# ── Document access ─────────────────────────────────────────────────


@contextmanager
def open_document(data: bytes) -> Iterator[pikepdf.Pdf]:
    """Open PDF bytes read-only with pikepdf, mapping failures to MalformedDocument."""
    if not data:
        raise MalformedDocument("Document is empty.")
    if PDF_MAGIC not in data[:_HEADER_SEARCH_LIMIT]:
        raise MalformedDocument("Input is not a PDF (missing %PDF- header).")

    pikepdf = _require_pikepdf()
    try:
        pdf = pikepdf.open(io.BytesIO(data))
    except pikepdf.PasswordError as e:
        raise MalformedDocument("Encrypted documents cannot be signed.") from e
    except (pikepdf.PdfError, ValueError, OSError) as e:
        raise MalformedDocument(f"Cannot parse PDF: {e}") from e

    with pdf:
        if pdf.is_encrypted:
            raise MalformedDocument("Encrypted documents cannot be signed.")
        yield pdf


def _check_reserved(reserved_bytes: int) -> None:
    if isinstance(reserved_bytes, bool) or not isinstance(reserved_bytes, int):
        raise ConfigError(f"Reserved signature size must be an integer, got {reserved_bytes!r}")
    if reserved_bytes <= 0 or reserved_bytes > MAX_RESERVED_SIZE:
        raise ConfigError(
            f"Reserved signature size must be between 1 and {MAX_RESERVED_SIZE} bytes, "
            f"got {reserved_bytes}"
        )


# ── Field discovery ─────────────────────────────────────────────────


def _normalize_rect(raw: pikepdf.Object | None) -> tuple[float, float, float, float] | None:
    if raw is None:
        return None
    try:
        x0, y0, x1, y1 = (float(raw[i]) for i in range(4))
    except (IndexError, TypeError, ValueError):
        return None
    return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)


def _page_index(pdf: pikepdf.Pdf) -> tuple[dict[tuple[int, int], int], dict[tuple[int, int], int]]:
    """Map page objects and annotation objects to 1-based page numbers."""
    pages: dict[tuple[int, int], int] = {}
    annots: dict[tuple[int, int], int] = {}
    for number, page in enumerate(pdf.pages, start=1):
        pages[page.obj.objgen] = number
        for annot in page.obj.get("/Annots", []):
            if annot.is_indirect:
                annots[annot.objgen] = number
    return pages, annots


def _collect_fields(pdf: pikepdf.Pdf) -> tuple[list[SignatureField], set[str]]:
    """Walk /AcroForm /Fields.

    Returns:
        (signature fields, fully qualified names of all terminal fields)
    """
    acroform = pdf.Root.get("/AcroForm")
    if acroform is None:
        return [], set()

    pages, annots = _page_index(pdf)
    sig_fields: list[SignatureField] = []
    names: set[str] = set()
    seen: set[tuple[int, int]] = set()

    def page_of(widget: pikepdf.Object) -> int | None:
        page_ref = widget.get("/P")
        if page_ref is not None and page_ref.objgen in pages:
            return pages[page_ref.objgen]
        return annots.get(widget.objgen)

    def walk(node: pikepdf.Object, parent: str, inherited_ft: object) -> None:
        if node.is_indirect:
            if node.objgen in seen:
                _logger.warning("Field tree cycle at object %d; skipped", node.objgen[0])
                return
            seen.add(node.objgen)

        partial = node.get("/T")
        own = str(partial) if partial is not None else ""
        qualified = ".".join(p for p in (parent, own) if p)
        field_type = node.get("/FT", inherited_ft)

        kids = list(node.get("/Kids", []))
        field_kids = [k for k in kids if "/T" in k]
        if field_kids:
            for kid in field_kids:
                walk(kid, qualified, field_type)
            return

        names.add(qualified)
        if field_type != "/Sig" or not node.is_indirect:
            return

        widget = kids[0] if kids else node
        value = node.get("/V")
        sig_fields.append(
            SignatureField(
                name=qualified,
                objgen=node.objgen,
                widget_objgen=widget.objgen if widget.is_indirect else None,
                page=page_of(widget),
                rect=_normalize_rect(widget.get("/Rect")),
                signed=value is not None,
            )
        )

    for field in acroform.get("/Fields", []):
        walk(field, "", None)
    return sig_fields, names


def find_signature_fields(document: bytes) -> list[SignatureField]:
    """List every signature field in *document*, signed or not."""
    with open_document(document) as pdf:
        fields, _ = _collect_fields(pdf)
    return fields


def find_empty_signature_field(document: bytes, name: str | None = None) -> SignatureField:
    """Return the named signature field, or the first unsigned one.

    Raises:
        SignatureFieldNotFound: No such field, or the named field is
            already signed.
    """
    fields = find_signature_fields(document)
    if name is not None:
        for field in fields:
            if field.name == name:
                if field.signed:
                    raise SignatureFieldNotFound(f"Signature field {name!r} is already signed.")
                return field
        available = ", ".join(repr(f.name) for f in fields) or "none"
        raise SignatureFieldNotFound(
            f"Signature field {name!r} not found (available: {available})."
        )

    for field in fields:
        if not field.signed:
            return field
    raise SignatureFieldNotFound("Document has no unsigned signature field.")


def _choose_field_name(existing: set[str], requested: str | None) -> str:
    if requested is not None:
        if not requested or "." in requested:
            raise DocumentError(f"Invalid signature field name: {requested!r}")
        if requested in existing:
            raise DocumentError(f"A field named {requested!r} already exists.")
        return requested
    n = 1
    while f"{_DEFAULT_FIELD_PREFIX}{n}" in existing:
        n += 1
    return f"{_DEFAULT_FIELD_PREFIX}{n}"


# ── Preparation ─────────────────────────────────────────────────────


def _finish(
    document: bytes,
    raw_objects: list[RawObject],
    new_size: int,
    prev_xref: int,
    root_ref: tuple[int, int],
    trailer_extra: list[str],
    reserved_bytes: int,
    field_name: str,
    signing_time: datetime.datetime,
) -> PreparedDocument:
    full_pdf = assemble_incremental_update(
        pdf_bytes=document,
        raw_objects=raw_objects,
        new_size=new_size,
        prev_xref=prev_xref,
        root_ref=root_ref,
        trailer_extra=trailer_extra,
    )
    patched, byte_range = patch_byterange(full_pdf, len(document), 2 * reserved_bytes)
    _logger.debug(
        "Placeholder for %r: ByteRange %s, %d bytes reserved",
        field_name,
        list(byte_range),
        reserved_bytes,
    )
    return PreparedDocument(
        data=patched,
        byte_range=byte_range,
        original_length=len(document),
        field_name=field_name,
        signing_time=signing_time,
    )


def install_signature_field(
    document: bytes,
    page: int,
    rect: tuple[float, float, float, float],
    appearance: SignatureAppearance,
    reserved_bytes: int,
    metadata: SignatureMetadata,
    *,
    field_name: str | None = None,
) -> PreparedDocument:
    """
    Add a new visible signature field with a zero-filled placeholder.

    Appends the signature dictionary, the shared font, the layer forms,
    /FRM, the normal appearance, the widget, a page override adding the
    widget to /Annots, and the AcroForm update.

    Args:
        document: Original PDF bytes (never modified).
        page: 1-based page number.
        rect: (x, y, width, height) in points, inside the page MediaBox.
        appearance: Layered appearance sized to the rectangle.
        reserved_bytes: Placeholder capacity for the DER signature.
        metadata: Signer name, location, reason, and signing time.
        field_name: Field name; defaults to the first free ``SignatureN``.

    Raises:
        InvalidPage: Page out of range.
        RectangleOutOfBounds: Empty or off-page rectangle.
        MalformedDocument: Unparseable, encrypted, or unusable document.
        ConfigError: Reserved size out of range.
    """
    _check_reserved(reserved_bytes)
    signing_time = metadata.resolved_time()

    with open_document(document) as pdf:
        root_ref = find_root_ref(document)
        page_info = find_page(pdf, page)
        box = validate_rect(rect, page_info.media_box)
        prev_xref, prev_size, trailer_extra = find_prev_startxref(document, pdf)
        _, names = _collect_fields(pdf)
        name = _choose_field_name(names, field_name)

        width, height = box[2] - box[0], box[3] - box[1]
        if abs(appearance.width - width) > 0.01 or abs(appearance.height - height) > 0.01:
            _logger.warning(
                "Appearance %.1f x %.1f does not match rectangle %.1f x %.1f; viewers will scale it",
                appearance.width,
                appearance.height,
                width,
                height,
            )

        image = appearance.image
        obj_nums = allocate_sig_objects(
            prev_size,
            has_image=image is not None,
            has_smask=image is not None and image["smask"] is not None,
        )
        annot = obj_nums["annot"]
        font = obj_nums["font"]
        if annot is None or font is None:
            raise MalformedDocument("Widget object allocation failed")

        raw_objects = [
            build_sig_dict(obj_nums["sig"], reserved_bytes, metadata, signing_time),
            build_annot_widget(obj_nums, page_info.objgen, box, name),
            build_font_object(font),
            *build_appearance_objects(obj_nums, appearance),
            build_page_override(pdf, page_info.objgen, [*page_info.annots, f"{annot} 0 R"]),
        ]
        acroform = build_acroform_update(pdf, root_ref, annot)
        if acroform is not None:
            raw_objects.append(acroform)

    prepared = _finish(
        document,
        raw_objects,
        obj_nums["new_size"],
        prev_xref,
        root_ref,
        trailer_extra,
        reserved_bytes,
        name,
        signing_time,
    )
    _logger.info("Installed signature field %r on page %d", name, page)
    return prepared


def fill_signature_field(
    document: bytes,
    field: SignatureField,
    appearance: SignatureAppearance | None,
    reserved_bytes: int,
    metadata: SignatureMetadata,
) -> PreparedDocument:
    """
    Prepare an existing, unsigned signature field for signing.

    Only new bytes are appended: the signature dictionary, appearance
    objects (when *appearance* is given and the field has a non-empty
    rectangle), an override of the field adding ``/V``, an override of
    a separate widget adding ``/AP``, and the ``/SigFlags`` update.
    Earlier revisions, and any signatures over them, stay intact.

    Raises:
        SignatureFieldNotFound: The field is already signed.
        MalformedDocument: Unparseable, encrypted, or unusable document.
        ConfigError: Reserved size out of range.
    """
    if field.signed:
        raise SignatureFieldNotFound(f"Signature field {field.name!r} is already signed.")
    _check_reserved(reserved_bytes)
    signing_time = metadata.resolved_time()

    draw = appearance is not None and field.is_visible
    image = appearance.image if (draw and appearance is not None) else None

    with open_document(document) as pdf:
        root_ref = find_root_ref(document)
        prev_xref, prev_size, trailer_extra = find_prev_startxref(document, pdf)

        obj_nums = allocate_sig_objects(
            prev_size,
            with_widget=False,
            with_appearance=draw,
            has_image=image is not None,
            has_smask=image is not None and image["smask"] is not None,
        )
        sig = obj_nums["sig"]
        raw_objects = [build_sig_dict(sig, reserved_bytes, metadata, signing_time)]

        merged = field.widget_objgen is None or field.widget_objgen == field.objgen
        field_skip: tuple[str, ...] = ("/V",)
        field_entries = [f"  /V {sig} 0 R"]
        if draw and appearance is not None:
            font = obj_nums["font"]
            if font is None:
                raise MalformedDocument("Appearance object allocation failed")
            raw_objects.append(build_font_object(font))
            raw_objects.extend(build_appearance_objects(obj_nums, appearance))
            ap_entry = f"  /AP << /N {obj_nums['ap']} 0 R >>"
            if merged:
                field_skip += ("/AP",)
                field_entries.append(ap_entry)
            elif field.widget_objgen is not None:
                raw_objects.append(
                    build_object_override(pdf, field.widget_objgen, ("/AP",), [ap_entry])
                )

        raw_objects.append(build_object_override(pdf, field.objgen, field_skip, field_entries))
        acroform = build_acroform_update(pdf, root_ref, None)
        if acroform is not None:
            raw_objects.append(acroform)

    prepared = _finish(
        document,
        raw_objects,
        obj_nums["new_size"],
        prev_xref,
        root_ref,
        trailer_extra,
        reserved_bytes,
        field.name,
        signing_time,
    )
    _logger.info("Prepared existing signature field %r", field.name)
    return prepared


# ── Reloading a prepared document ───────────────────────────────────


def _previous_revision_end(data: bytes, before: int) -> int:
    """Offset just past the %%EOF (and its EOL) preceding *before*."""
    idx = data.rfind(b"%%EOF", 0, before)
    if idx == -1:
        return 0
    end = idx + len(b"%%EOF")
    if data[end : end + 2] == b"\r\n":
        return end + 2
    if data[end : end + 1] in (b"\n", b"\r"):
        return end + 1
    return end


def load_prepared_document(data: bytes) -> PreparedDocument:
    """Locate the unsigned placeholder of a previously prepared document.

    The last ByteRange in the file is used; its ``/Contents`` must still
    be all zeros.

    Raises:
        MalformedDocument: No ByteRange, inconsistent ByteRange, or the
            placeholder already holds a signature.
    """
    matches = list(re.finditer(BYTERANGE_PATTERN, data))
    if not matches:
        raise MalformedDocument("No signature placeholder found in document.")
    byte_range = ByteRange(*(int(g) for g in matches[-1].groups()))
    byte_range.validate(len(data))

    hex_region = data[byte_range.hex_start : byte_range.hex_start + byte_range.hex_length]
    if hex_region.strip(b"0"):
        raise MalformedDocument("The last signature placeholder already holds a signature.")

    field_name = None
    with open_document(data) as pdf:
        fields, _ = _collect_fields(pdf)
        for field in fields:
            value = pdf.get_object(field.objgen).get("/V")
            if value is None or "/ByteRange" not in value:
                continue
            if [int(v) for v in value["/ByteRange"]] == list(byte_range):
                field_name = field.name
                break

    return PreparedDocument(
        data=data,
        byte_range=byte_range,
        original_length=_previous_revision_end(data, byte_range.gap_start),
        field_name=field_name,
    )
