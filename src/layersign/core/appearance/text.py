"""
Helvetica-Bold text handling for signature appearances.

Appearance text is drawn with the standard 14 Helvetica-Bold font in
WinAnsiEncoding, so no font program is embedded.  Strings are written as
hex strings of their cp1252 bytes; characters outside cp1252 become "?".
"""

from __future__ import annotations

__all__ = [
    "BASE_FONT",
    "encode_text_hex",
    "encode_winansi",
    "text_width",
    "wrap_lines",
]

import logging

_logger = logging.getLogger(__name__)

BASE_FONT = "Helvetica-Bold"

# Glyph widths (1/1000 em) for character codes 32..126, from the
# Helvetica-Bold AFM.
_ASCII_WIDTHS = (
    # space ! " # $ % & ' ( ) * + , - . /
    278, 333, 474, 556, 556, 889, 722, 238, 333, 333, 389, 584, 278, 333, 278, 278,
    # 0-9
    556, 556, 556, 556, 556, 556, 556, 556, 556, 556,
    # : ; < = > ? @
    333, 333, 584, 584, 584, 611, 975,
    # A-Z
    722, 722, 722, 722, 667, 611, 778, 722, 278, 556, 722, 611, 833,
    722, 778, 667, 778, 722, 667, 611, 722, 667, 944, 667, 667, 611,
    # [ \ ] ^ _ `
    333, 278, 333, 584, 556, 333,
    # a-z
    556, 611, 556, 611, 556, 333, 611, 611, 278, 278, 556, 278, 889,
    611, 611, 611, 611, 389, 556, 333, 611, 556, 778, 556, 556, 500,
    # { | } ~
    389, 280, 389, 584,
)  # fmt: skip

_FIRST_CODE = 32

# Width used for codes outside the table (accented Latin-1 letters are
# close to their base glyph, so this is a fair average).
_DEFAULT_WIDTH = 556


def encode_winansi(text: str) -> bytes:
    """Encode *text* for a WinAnsiEncoding font.

    Characters cp1252 cannot represent are replaced with "?" and a
    warning is logged; this never raises.
    """
    try:
        return text.encode("cp1252")
    except UnicodeEncodeError:
        _logger.warning("Text %r has characters outside WinAnsiEncoding; replaced with '?'", text)
        return text.encode("cp1252", errors="replace")


def encode_text_hex(text: str) -> str:
    """Return *text* as a PDF hex string operand, e.g. ``<48656C6C6F>``."""
    return f"<{encode_winansi(text).hex().upper()}>"


def _code_width(code: int) -> int:
    index = code - _FIRST_CODE
    if 0 <= index < len(_ASCII_WIDTHS):
        return _ASCII_WIDTHS[index]
    return _DEFAULT_WIDTH


def text_width(text: str, font_size: float) -> float:
    """Width of *text* in points when set in Helvetica-Bold at *font_size*."""
    encoded = text.encode("cp1252", errors="replace")
    return sum(_code_width(b) for b in encoded) * font_size / 1000.0


def _split_word(word: str, font_size: float, max_width: float) -> list[str]:
    """Break a single word that is wider than *max_width* into pieces."""
    pieces: list[str] = []
    current = ""
    for char in word:
        candidate = current + char
        if current and text_width(candidate, font_size) > max_width:
            pieces.append(current)
            current = char
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def wrap_lines(text: str, font_size: float, max_width: float) -> list[str]:
    """Word-wrap *text* to lines no wider than *max_width*.

    Words wider than a full line are broken between characters.  Empty
    text yields an empty list.
    """
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if text_width(candidate, font_size) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        if text_width(word, font_size) <= max_width:
            current = word
        else:
            *full, current = _split_word(word, font_size, max_width)
            lines.extend(full)
    if current:
        lines.append(current)
    return lines
