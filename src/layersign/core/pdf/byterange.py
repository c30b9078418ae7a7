"""
ByteRange arithmetic and the prepared (placeholder-carrying) document.

A signed PDF covers two spans of its own bytes; the gap between them is
the ``/Contents`` hex string, angle brackets included:

  [0 ........ len1) <00000...0000> [off2 ........ off2+len2)
                    ^ gap_start   ^ gap_end - 1

  len1 = gap_start             (position of "<")
  off2 = gap_end               (position after ">")
  hex  = data[len1 + 1 : off2 - 1]

The spans plus the gap cover the document exactly.
"""

from __future__ import annotations

__all__ = [
    "BYTERANGE_PATTERN",
    "BYTERANGE_PLACEHOLDER",
    "ByteRange",
    "PreparedDocument",
]

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

from ...errors import MalformedDocument

if TYPE_CHECKING:
    from datetime import datetime

# Regex pattern to find ByteRange arrays in PDF
BYTERANGE_PATTERN = rb"/ByteRange\s*\[\s*(\d+)\s+(\d+)\s+(\d+)\s+(\d+)\s*\]"

# Four right-aligned 10-digit fields; patched in place with the same width.
BYTERANGE_PLACEHOLDER = b"/ByteRange [         0          0          0          0]"

_FIELD_WIDTH = 10


class ByteRange(NamedTuple):
    """The four integers of a ``/ByteRange`` array."""

    offset1: int
    length1: int
    offset2: int
    length2: int

    @classmethod
    def from_placeholder(cls, gap_start: int, gap_end: int, total_length: int) -> ByteRange:
        """Byte range excluding ``data[gap_start:gap_end]`` from a document of *total_length*."""
        return cls(0, gap_start, gap_end, total_length - gap_end)

    @classmethod
    def parse(cls, raw: bytes) -> ByteRange:
        """Parse a ``/ByteRange [a b c d]`` entry.

        Raises:
            MalformedDocument: If *raw* does not hold a ByteRange array.
        """
        m = re.search(BYTERANGE_PATTERN, raw)
        if m is None:
            raise MalformedDocument(f"Not a ByteRange entry: {raw[:80]!r}")
        return cls(*(int(g) for g in m.groups()))

    @property
    def gap_start(self) -> int:
        return self.offset1 + self.length1

    @property
    def gap_end(self) -> int:
        return self.offset2

    @property
    def hex_start(self) -> int:
        return self.gap_start + 1

    @property
    def hex_length(self) -> int:
        return self.gap_end - self.gap_start - 2

    @property
    def end(self) -> int:
        return self.offset2 + self.length2

    def spans(self) -> tuple[tuple[int, int], tuple[int, int]]:
        """The two signed spans as ``(start, end)`` pairs."""
        return (
            (self.offset1, self.offset1 + self.length1),
            (self.offset2, self.offset2 + self.length2),
        )

    def covers(self, total_length: int) -> bool:
        """True if spans plus gap cover a document of *total_length* exactly."""
        return self.offset1 == 0 and self.end == total_length

    def validate(self, total_length: int) -> None:
        """Check the range is well formed and fits a document of *total_length*.

        Earlier signatures in a multi-revision file cover a prefix of the
        document, so the second span may end before *total_length*.

        Raises:
            MalformedDocument: On any inconsistency.
        """
        if self.offset1 != 0:
            raise MalformedDocument(f"ByteRange offset1 should be 0, got {self.offset1}")
        if min(self) < 0:
            raise MalformedDocument(f"ByteRange has negative values: {list(self)}")
        if self.length1 <= 0:
            raise MalformedDocument(f"ByteRange length1 must be positive, got {self.length1}")
        # at least "<>" between the spans
        if self.hex_length < 0:
            raise MalformedDocument(
                f"ByteRange offset2 ({self.offset2}) leaves no room for the signature "
                f"after length1 ({self.length1})"
            )
        if self.end > total_length:
            raise MalformedDocument(
                f"ByteRange extends beyond EOF: {self.offset2}+{self.length2} > {total_length}"
            )

    def content(self, data: bytes) -> bytes:
        """Concatenate both spans of *data*: the exact bytes that get signed."""
        (s1, e1), (s2, e2) = self.spans()
        return data[s1:e1] + data[s2:e2]

    def to_pdf(self) -> bytes:
        """Serialize as a fixed-width entry, same length as the placeholder."""
        if max(self) >= 10**_FIELD_WIDTH:
            raise MalformedDocument("Document too large for a fixed-width ByteRange")
        fields = " ".join(f"{value:>{_FIELD_WIDTH}d}" for value in self)
        return f"/ByteRange [{fields}]".encode("ascii")


@dataclass(frozen=True)
class PreparedDocument:
    """A serialized document carrying one zero-filled signature placeholder.

    Each prepared document holds exactly one placeholder and is signed
    once; signing returns new bytes and leaves this object untouched.

    Attributes:
        data: Complete document bytes, ByteRange already patched.
        byte_range: Spans around the ``/Contents`` hex string.
        original_length: Length of the input before the incremental update.
        field_name: Fully qualified name of the signature field.
        signing_time: Time written into ``/M`` and the appearance.
    """

    data: bytes
    byte_range: ByteRange
    original_length: int
    field_name: str | None = None
    signing_time: datetime | None = None

    def __post_init__(self) -> None:
        br = self.byte_range
        br.validate(len(self.data))
        if not br.covers(len(self.data)):
            raise MalformedDocument(
                f"ByteRange {list(br)} does not cover the document ({len(self.data)} bytes)"
            )
        if self.data[br.gap_start : br.gap_start + 1] != b"<":
            raise MalformedDocument(f"Expected '<' at offset {br.gap_start}")
        if self.data[br.gap_end - 1 : br.gap_end] != b">":
            raise MalformedDocument(f"Expected '>' at offset {br.gap_end - 1}")
        if self.hex_length % 2:
            raise MalformedDocument(f"Odd placeholder length: {self.hex_length} hex digits")

    @property
    def hex_start(self) -> int:
        return self.byte_range.hex_start

    @property
    def hex_length(self) -> int:
        return self.byte_range.hex_length

    @property
    def reserved_bytes(self) -> int:
        """Capacity of the placeholder in DER bytes."""
        return self.hex_length // 2

    @property
    def appended_length(self) -> int:
        return len(self.data) - self.original_length

    def signed_content(self) -> bytes:
        return self.byte_range.content(self.data)
