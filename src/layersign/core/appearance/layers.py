"""
Layered signature appearance (the n0..n4 convention).

Each layer is a separate form XObject sharing one bounding box, and the
composed form (/FRM) draws them bottom to top:

  n0  background      white fill, 1pt black border
  n1  marker          grey "?" (shown by viewers that use the layers)
  n2  info            signer, location, date, optional reason and image
  n3  spacer          intentionally blank
  n4  status banner   red "Signature Not Verified"

Viewers that understand the convention may hide or replace n1 and n4
after validating; the layers are presentational and do not affect the
signature value.

Layout of the info layer, with an image:

  +----------------------------------------------+
  |  [signature img]  |  Digitally signed by: X  |
  |                   |  Location: Y             |
  |                   |  Date: 7 Feb 2026, ...   |
  +----------------------------------------------+
"""

from __future__ import annotations

__all__ = [
    "FONT_RESOURCE",
    "IMAGE_RESOURCE",
    "LAYER_ORDER",
    "AppearanceLayer",
    "SignatureAppearance",
    "build_appearance",
]

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

from ...errors import DocumentError, RectangleOutOfBounds
from .fields import build_info_lines
from .text import encode_text_hex, wrap_lines

if TYPE_CHECKING:
    from datetime import datetime

    from .image import SignatureImageData

_logger = logging.getLogger(__name__)

# Resource names used inside the layer streams
FONT_RESOURCE = "F1"
IMAGE_RESOURCE = "Img1"

LAYER_ORDER = ("n0", "n1", "n2", "n3", "n4")


# ── Layout constants (PDF points) ──────────────────────────────────────

_BORDER_WIDTH = 1.0

_MARKER_TEXT = "?"
_MARKER_FONT_SIZE = 24.0
_MARKER_GRAY = 0.5
_MARKER_RIGHT_OFFSET = 30.0
_MARKER_Y = 10.0

_BANNER_TEXT = "Signature Not Verified"
_BANNER_FONT_SIZE = 10.0
_BANNER_X = 10.0
_BANNER_Y = 10.0

_INFO_FONT_SIZE = 9.0
_INFO_MIN_FONT_SIZE = 5.0
_INFO_FONT_STEP = 0.5
_INFO_LEADING_RATIO = 12.0 / 9.0
_INFO_LEFT = 10.0
# Distance from the top edge to the first baseline's ascender line;
# at 9pt the first baseline sits 20pt below the top.
_INFO_TOP_GAP = 11.0
_INFO_BOTTOM = 2.0

# Image column ratio (when an image is present)
_IMAGE_COLUMN_RATIO = 0.40
_COLUMN_GAP = 4.0
_IMAGE_PAD = 4.0


class AppearanceLayer(NamedTuple):
    """One named appearance layer (a form XObject content stream)."""

    name: str  # resource name, "n0".."n4"
    role: str  # background, marker, info, spacer, banner
    stream: bytes
    uses_font: bool
    uses_image: bool = False


@dataclass(frozen=True)
class SignatureAppearance:
    """Ordered layer stack sharing one bounding box ``(0, 0, width, height)``."""

    width: float
    height: float
    layers: tuple[AppearanceLayer, ...]
    image: SignatureImageData | None = None

    def __post_init__(self) -> None:
        names = tuple(layer.name for layer in self.layers)
        if names != LAYER_ORDER:
            raise DocumentError(f"Appearance layers must be {LAYER_ORDER}, got {names}")

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return (0.0, 0.0, self.width, self.height)

    @property
    def composed_stream(self) -> bytes:
        """Content of the /FRM form: every layer, in order, in its own q/Q."""
        return "\n".join(f"q /{layer.name} Do Q" for layer in self.layers).encode("ascii")

    @property
    def uses_font(self) -> bool:
        return any(layer.uses_font for layer in self.layers)

    def layer(self, name: str) -> AppearanceLayer:
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise KeyError(name)


def _num(value: float) -> str:
    """Compact PDF number: 2 decimals, trailing zeros dropped."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def _stream(ops: list[str]) -> bytes:
    return "\n".join(ops).encode("ascii")


# ── Layer producers ───────────────────────────────────────────────────


def _background_layer(width: float, height: float) -> AppearanceLayer:
    inset = _BORDER_WIDTH
    ops = [
        "q",
        "1 g",
        f"0 0 {_num(width)} {_num(height)} re",
        "f",
        "0 G",
        f"{_num(_BORDER_WIDTH)} w",
        f"{_num(inset)} {_num(inset)} {_num(width - 2 * inset)} {_num(height - 2 * inset)} re",
        "S",
        "Q",
    ]
    return AppearanceLayer("n0", "background", _stream(ops), uses_font=False)


def _text_ops(text: str, size: float, x: float, y: float, color: str) -> list[str]:
    return [
        "q",
        "BT",
        color,
        f"/{FONT_RESOURCE} {_num(size)} Tf",
        f"{_num(x)} {_num(y)} Td",
        f"{encode_text_hex(text)} Tj",
        "ET",
        "Q",
    ]


def _marker_layer(width: float, height: float) -> AppearanceLayer:
    ops = _text_ops(
        _MARKER_TEXT,
        _MARKER_FONT_SIZE,
        width - _MARKER_RIGHT_OFFSET,
        _MARKER_Y,
        f"{_num(_MARKER_GRAY)} g",
    )
    return AppearanceLayer("n1", "marker", _stream(ops), uses_font=True)


def _spacer_layer() -> AppearanceLayer:
    return AppearanceLayer("n3", "spacer", b"% DSBlank\n", uses_font=False)


def _banner_layer() -> AppearanceLayer:
    ops = _text_ops(_BANNER_TEXT, _BANNER_FONT_SIZE, _BANNER_X, _BANNER_Y, "1 0 0 rg")
    return AppearanceLayer("n4", "banner", _stream(ops), uses_font=True)


def _fit_info_text(
    lines: list[str], text_w: float, height: float
) -> tuple[float, list[str]]:
    """Wrap *lines* and shrink the font until the block fits vertically."""
    size = _INFO_FONT_SIZE

    def layout(font_size: float) -> list[str]:
        wrapped: list[str] = []
        for line in lines:
            wrapped.extend(wrap_lines(line, font_size, text_w) or [""])
        return wrapped

    def block_height(font_size: float, count: int) -> float:
        # from the top edge to the last baseline
        return _INFO_TOP_GAP + font_size + (count - 1) * font_size * _INFO_LEADING_RATIO

    wrapped = layout(size)
    available = height - _INFO_BOTTOM
    while size > _INFO_MIN_FONT_SIZE and block_height(size, len(wrapped)) > available:
        size -= _INFO_FONT_STEP
        wrapped = layout(size)

    if block_height(size, len(wrapped)) > available:
        _logger.warning(
            "Signature text (%d lines) exceeds field height (%.1f pt) at %.1f pt; "
            "content will be clipped.",
            len(wrapped),
            height,
            size,
        )
    return size, wrapped


def _info_layer(
    width: float,
    height: float,
    lines: list[str],
    image: SignatureImageData | None,
) -> AppearanceLayer:
    ops: list[str] = []

    text_x = _INFO_LEFT
    if image is not None:
        col_w = (width - 2 * _IMAGE_PAD) * _IMAGE_COLUMN_RATIO
        col_h = height - 2 * _IMAGE_PAD
        draw_w, draw_h = col_w, col_h
        aspect = image["width"] / image["height"] if image["height"] else 0.0
        if aspect > 0 and col_h > 0:
            if aspect > col_w / col_h:
                draw_h = col_w / aspect
            else:
                draw_w = col_h * aspect
        draw_x = _IMAGE_PAD + (col_w - draw_w) / 2
        draw_y = _IMAGE_PAD + (col_h - draw_h) / 2
        ops += [
            "q",
            f"{_num(draw_w)} 0 0 {_num(draw_h)} {_num(draw_x)} {_num(draw_y)} cm",
            f"/{IMAGE_RESOURCE} Do",
            "Q",
        ]
        text_x = _IMAGE_PAD + col_w + _COLUMN_GAP

    text_w = max(1.0, width - text_x - _INFO_LEFT)
    size, wrapped = _fit_info_text(lines, text_w, height)
    leading = size * _INFO_LEADING_RATIO
    first_baseline = height - _INFO_TOP_GAP - size

    # clip to the text box so overflow cannot spill onto the page
    clip_w = max(0.0, width - text_x)
    ops += [
        "q",
        f"{_num(text_x)} 0 {_num(clip_w)} {_num(height)} re W n",
        "BT",
        "0 g",
        f"/{FONT_RESOURCE} {_num(size)} Tf",
        f"{_num(leading)} TL",
        f"{_num(text_x)} {_num(first_baseline)} Td",
    ]
    for i, line in enumerate(wrapped):
        if i > 0:
            ops.append("T*")
        ops.append(f"{encode_text_hex(line)} Tj")
    ops += ["ET", "Q"]

    return AppearanceLayer(
        "n2", "info", _stream(ops), uses_font=True, uses_image=image is not None
    )


# ── Builder ───────────────────────────────────────────────────────────


def build_appearance(
    width: float,
    height: float,
    signer_name: str,
    location: str,
    signing_time: datetime,
    *,
    reason: str | None = None,
    image: SignatureImageData | None = None,
) -> SignatureAppearance:
    """
    Build the five-layer appearance for a signature rectangle.

    Args:
        width: Widget rectangle width in points.
        height: Widget rectangle height in points.
        signer_name: Shown as "Digitally signed by: ...".
        location: Shown as "Location: ...".
        signing_time: Shown as "Date: ..." (locale independent).
        reason: Optional "Reason: ..." line.
        image: Optional image drawn in a left column of the info layer.

    Raises:
        RectangleOutOfBounds: If width or height is not positive.
    """
    if not (width > 0 and height > 0):
        raise RectangleOutOfBounds(
            f"Appearance size must be positive, got {width} x {height}"
        )

    lines = build_info_lines(signer_name, location, signing_time, reason)
    layers = (
        _background_layer(width, height),
        _marker_layer(width, height),
        _info_layer(width, height, lines, image),
        _spacer_layer(),
        _banner_layer(),
    )
    _logger.debug("Built appearance %.1f x %.1f with %d info lines", width, height, len(lines))
    return SignatureAppearance(width=width, height=height, layers=layers, image=image)
