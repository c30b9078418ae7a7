"""
Page lookup and signature rectangle validation.

Pages are addressed 1-based.  Rectangles are ``(x, y, width, height)``
in PDF points with the origin at the bottom-left of the page, and must
lie inside the page's (inherited) MediaBox.
"""

from __future__ import annotations

__all__ = ["PageInfo", "find_page", "page_media_box", "validate_rect"]

import math
from typing import TYPE_CHECKING, NamedTuple

from ...errors import InvalidPage, MalformedDocument, RectangleOutOfBounds
from .objects import serialize_object

if TYPE_CHECKING:
    import pikepdf

Box = tuple[float, float, float, float]


class PageInfo(NamedTuple):
    """A resolved target page."""

    number: int  # 1-based
    objgen: tuple[int, int]
    media_box: Box  # normalized (x0, y0, x1, y1)
    annots: list[str]  # existing /Annots entries, serialized


def page_media_box(page: pikepdf.Page) -> Box:
    """Return the page MediaBox as (x0, y0, x1, y1) with x0 <= x1, y0 <= y1."""
    try:
        box = page.mediabox
        x0, y0, x1, y1 = (float(box[i]) for i in range(4))
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise MalformedDocument(f"Page has no usable MediaBox: {e}") from e
    return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)


def find_page(pdf: pikepdf.Pdf, page_number: int) -> PageInfo:
    """Resolve a 1-based page number.

    Raises:
        InvalidPage: If the page does not exist.
        MalformedDocument: If the page is not an indirect object.
    """
    total = len(pdf.pages)
    if isinstance(page_number, bool) or not isinstance(page_number, int):
        raise InvalidPage(f"Page must be an integer, got {page_number!r}")
    if page_number < 1 or page_number > total:
        raise InvalidPage(f"Page {page_number} out of range (document has {total} page(s)).")

    page = pdf.pages[page_number - 1]
    page_obj = page.obj
    if not page_obj.is_indirect:
        raise MalformedDocument(f"Page {page_number} is not an indirect object")

    annots: list[str] = []
    if "/Annots" in page_obj:
        annots = [serialize_object(ref) for ref in page_obj["/Annots"]]

    return PageInfo(
        number=page_number,
        objgen=page_obj.objgen,
        media_box=page_media_box(page),
        annots=annots,
    )


def validate_rect(rect: tuple[float, float, float, float], media_box: Box) -> Box:
    """Check a signature rectangle against the page and return it as (x0, y0, x1, y1).

    Raises:
        RectangleOutOfBounds: If the rectangle is not finite, has a
            non-positive width or height, or leaves the media box.
    """
    try:
        x, y, w, h = (float(v) for v in rect)
    except (TypeError, ValueError) as e:
        raise RectangleOutOfBounds(f"Rectangle must be four numbers (x, y, w, h): {rect!r}") from e

    if not all(math.isfinite(v) for v in (x, y, w, h)):
        raise RectangleOutOfBounds(f"Rectangle has non-finite values: {rect!r}")
    if w <= 0 or h <= 0:
        raise RectangleOutOfBounds(f"Rectangle width and height must be positive: {rect!r}")

    bx0, by0, bx1, by1 = media_box
    if x < bx0 or y < by0 or x + w > bx1 or y + h > by1:
        raise RectangleOutOfBounds(
            f"Rectangle ({x:g}, {y:g}, {w:g}, {h:g}) falls outside the page media box "
            f"[{bx0:g} {by0:g} {bx1:g} {by1:g}]"
        )
    return x, y, x + w, y + h
