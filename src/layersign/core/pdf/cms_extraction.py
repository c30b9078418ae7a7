"""ByteRange and CMS extraction from signed PDFs."""

from __future__ import annotations

__all__ = [
    "extract_cms",
    "extract_signature_data",
    "find_byte_ranges",
]

import re

from ...errors import MalformedDocument
from .asn1 import extract_der_from_padded_hex
from .byterange import BYTERANGE_PATTERN, ByteRange


def find_byte_ranges(pdf_bytes: bytes) -> list[ByteRange]:
    """Every ``/ByteRange`` array in the file, in file order."""
    return [
        ByteRange(*(int(g) for g in m.groups()))
        for m in re.finditer(BYTERANGE_PATTERN, pdf_bytes)
    ]


def extract_cms(pdf_bytes: bytes, byte_range: ByteRange) -> bytes:
    """
    Extract the CMS DER blob held in the gap of *byte_range*.

    Raises:
        MalformedDocument: If the gap is not a hex string or holds no
            parseable DER value.
    """
    byte_range.validate(len(pdf_bytes))
    gap_start, gap_end = byte_range.gap_start, byte_range.gap_end

    if pdf_bytes[gap_start : gap_start + 1] != b"<":
        raise MalformedDocument(
            f"Expected '<' at offset {gap_start}, got {pdf_bytes[gap_start : gap_start + 1]!r}"
        )
    if pdf_bytes[gap_end - 1 : gap_end] != b">":
        raise MalformedDocument(
            f"Expected '>' at offset {gap_end - 1}, got {pdf_bytes[gap_end - 1 : gap_end]!r}"
        )

    try:
        hex_str = pdf_bytes[gap_start + 1 : gap_end - 1].decode("ascii")
        # hex strings may contain whitespace
        hex_str = "".join(hex_str.split())
        return extract_der_from_padded_hex(hex_str)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedDocument(f"Invalid hex in CMS blob: {e}") from e


def extract_signature_data(pdf_bytes: bytes, byte_range: ByteRange) -> tuple[bytes, bytes]:
    """Return (signed_content, cms_der) for one signature.

    Raises:
        MalformedDocument: If the ByteRange is invalid or CMS extraction fails.
    """
    cms_der = extract_cms(pdf_bytes, byte_range)
    return byte_range.content(pdf_bytes), cms_der
