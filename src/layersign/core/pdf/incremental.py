"""PDF structure analysis and incremental update assembly.

Functions for reading existing PDF structure (root reference, xref
offsets, trailer entries) and building incremental updates (xref
tables, trailers, ByteRange patching).  The original bytes are never
modified: every new or overridden object is appended after them.

Object-level construction (types, allocation, overrides) is in objects.py.
"""

from __future__ import annotations

__all__ = [
    "assemble_incremental_update",
    "build_xref_and_trailer",
    "find_prev_startxref",
    "find_root_ref",
    "patch_byterange",
]

import logging
import re
from typing import TYPE_CHECKING

from ...errors import MalformedDocument
from .. import require_pikepdf as _require_pikepdf
from .byterange import BYTERANGE_PLACEHOLDER, ByteRange

if TYPE_CHECKING:
    import pikepdf

    from .objects import RawObject

_logger = logging.getLogger(__name__)

_CONTENTS_PREFIX = b"/Contents <"

# ── PDF structure analysis ───────────────────────────────────────────


def find_root_ref(pdf_bytes: bytes) -> tuple[int, int]:
    """Find the catalog /Root (object number, generation) from the trailer.

    Uses the LAST match -- PDFs with incremental updates may redefine
    /Root in later trailers, and the last one is always authoritative.
    """
    matches = list(re.finditer(rb"/Root\s+(\d+)\s+(\d+)\s+R", pdf_bytes))
    if not matches:
        raise MalformedDocument("Cannot find /Root reference in PDF trailer.")
    m = matches[-1]
    return int(m.group(1)), int(m.group(2))


def find_prev_startxref(pdf_bytes: bytes, pdf: pikepdf.Pdf) -> tuple[int, int, list[str]]:
    """Find the last startxref offset, the /Size, and trailer entries to carry.

    Returns:
        (prev_xref, size, trailer_extra) where trailer_extra is a list
        of raw trailer entries to carry forward (/Info and /ID).
    """
    # The last startxref is authoritative; the regex tolerates trailing
    # junk after %%EOF.
    matches = list(re.finditer(rb"startxref\s+(\d+)\s+%%EOF", pdf_bytes))
    if not matches:
        raise MalformedDocument("Cannot find startxref in PDF.")
    prev_xref = int(matches[-1].group(1))

    # pikepdf resolves cross-reference streams and hybrid files, where a
    # regex over trailers can pick the wrong /Size.
    try:
        size = int(pdf.trailer["/Size"])
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedDocument(f"Cannot determine /Size from PDF trailer: {e}") from e

    return prev_xref, size, _extract_trailer_entries(pdf_bytes, pdf)


def _extract_trailer_entries(pdf_bytes: bytes, pdf: pikepdf.Pdf) -> list[str]:
    """Extract /Info and /ID entries from the trailer.

    Handles both traditional trailers (``trailer << ... >>``) and
    cross-reference stream PDFs, where the trailer data lives in the
    xref stream dictionary and only pikepdf can read it reliably.
    """
    trailer_extra: list[str] = []
    all_trailers = list(re.finditer(rb"trailer\s*<<(.*?)>>\s*startxref", pdf_bytes, re.DOTALL))
    if all_trailers:
        trailer_content = all_trailers[-1].group(1)
        info_m = re.search(rb"/Info\s+\d+\s+\d+\s+R", trailer_content)
        if info_m:
            trailer_extra.append(info_m.group(0).decode("latin-1"))
        id_m = re.search(rb"/ID\s*\[.*?\]", trailer_content, re.DOTALL)
        if id_m:
            trailer_extra.append(id_m.group(0).decode("latin-1"))
        if trailer_extra:
            return trailer_extra

    pikepdf = _require_pikepdf()
    trailer = pdf.trailer
    if "/Info" in trailer:
        info_obj = trailer["/Info"]
        if isinstance(info_obj, pikepdf.Object) and info_obj.is_indirect:
            trailer_extra.append(f"/Info {info_obj.objgen[0]} {info_obj.objgen[1]} R")
    if "/ID" in trailer:
        id_array = trailer["/ID"]
        trailer_extra.append(f"/ID {id_array.unparse(resolved=True).decode('latin-1')}")
    return trailer_extra


# ── Incremental update assembly ─────────────────────────────────────


def assemble_incremental_update(
    pdf_bytes: bytes,
    raw_objects: list[RawObject],
    new_size: int,
    prev_xref: int,
    root_ref: tuple[int, int],
    trailer_extra: list[str],
) -> bytes:
    """Return *pdf_bytes* with the objects, an xref section and a trailer appended."""
    # Ensure original PDF ends with \n after %%EOF
    base = pdf_bytes
    if not base.endswith(b"\n"):
        base = base + b"\n"

    update_start = len(base)

    objects_raw: list[bytes] = []
    xref_entries: dict[int, tuple[int, int]] = {}

    running_offset = update_start
    for raw in raw_objects:
        if raw.num in xref_entries:
            raise MalformedDocument(f"Object {raw.num} written twice in one update")
        xref_entries[raw.num] = (running_offset, raw.gen)
        objects_raw.append(raw.data)
        running_offset += len(raw.data)

    all_objects = b"".join(objects_raw)

    xref_offset = update_start + len(all_objects)
    xref_data = build_xref_and_trailer(
        xref_entries=xref_entries,
        new_size=new_size,
        prev_xref=prev_xref,
        root_ref=root_ref,
        trailer_extra=trailer_extra,
        xref_offset=xref_offset,
    )

    _logger.debug(
        "Incremental update: %d object(s), %d bytes appended",
        len(raw_objects),
        len(base) - len(pdf_bytes) + len(all_objects) + len(xref_data),
    )
    return base + all_objects + xref_data


def patch_byterange(full_pdf: bytes, update_start: int, hex_length: int) -> tuple[bytes, ByteRange]:
    """Fill in the ByteRange placeholder of the signature dictionary.

    Both the placeholder and the zero-filled ``/Contents`` are searched
    for only after *update_start*, so placeholders from earlier
    revisions are never touched.

    Returns:
        (patched_pdf, byte_range). The patched PDF has the same length.
    """
    contents_marker = _CONTENTS_PREFIX + b"0" * hex_length + b">"
    contents_pos = full_pdf.find(contents_marker, update_start)
    if contents_pos == -1:
        raise MalformedDocument("Cannot find Contents placeholder in prepared PDF.")

    gap_start = contents_pos + len(_CONTENTS_PREFIX) - 1  # the "<"
    gap_end = contents_pos + len(contents_marker)  # just past ">"
    byte_range = ByteRange.from_placeholder(gap_start, gap_end, len(full_pdf))

    # Positional replacement: the same placeholder may appear in an
    # earlier (prepared but never signed) revision.
    br_pos = full_pdf.find(BYTERANGE_PLACEHOLDER, update_start)
    if br_pos == -1 or br_pos > contents_pos:
        raise MalformedDocument("Cannot find ByteRange placeholder in incremental update.")
    value = byte_range.to_pdf()
    patched = full_pdf[:br_pos] + value + full_pdf[br_pos + len(BYTERANGE_PLACEHOLDER) :]

    if len(patched) != len(full_pdf):
        raise MalformedDocument("ByteRange patch changed the document length")
    return patched, byte_range


# ── Xref table builder ──────────────────────────────────────────────


def build_xref_and_trailer(
    xref_entries: dict[int, tuple[int, int]],
    new_size: int,
    prev_xref: int,
    root_ref: tuple[int, int],
    trailer_extra: list[str],
    xref_offset: int,
) -> bytes:
    """Build an xref table and trailer for an incremental update.

    Args:
        xref_entries: Object number -> (byte offset, generation).
        new_size: Total object count (/Size value).
        prev_xref: Previous xref offset (/Prev value).
        root_ref: Catalog (object number, generation) for /Root.
        trailer_extra: Extra trailer entries to carry forward (/Info, /ID).
        xref_offset: Byte offset where this xref table starts.

    Returns:
        Raw bytes of the xref table, trailer, and %%EOF.
    """
    xref_lines = ["xref"]

    if not xref_entries:
        raise MalformedDocument("Cannot build xref table: no objects to reference.")

    # Group consecutive object numbers for compact xref sections
    sorted_nums = sorted(xref_entries.keys())
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
        # ISO 32000-1 7.5.4: each xref entry is exactly 20 bytes including EOL.
        # Format: "oooooooooo ggggg n\r\n" = 18 chars + \r + \n = 20 bytes.
        # The \r is part of the format string; \n comes from "\n".join().
        for obj_num in group:
            offset, gen = xref_entries[obj_num]
            xref_lines.append(f"{offset:010d} {gen:05d} n\r")

    # Trailer must carry forward entries of the previous trailer that
    # are not overridden (ISO 32000-1 7.5.6).
    xref_lines.append("trailer")
    xref_lines.append("<<")
    xref_lines.append(f"  /Size {new_size}")
    xref_lines.append(f"  /Prev {prev_xref}")
    xref_lines.append(f"  /Root {root_ref[0]} {root_ref[1]} R")
    xref_lines.extend(f"  {extra}" for extra in trailer_extra)
    xref_lines.append(">>")
    xref_lines.append("startxref")
    xref_lines.append(str(xref_offset))
    xref_lines.append("%%EOF")
    xref_lines.append("")  # trailing newline

    return "\n".join(xref_lines).encode("latin-1")
