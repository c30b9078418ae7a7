"""Signature visual appearance: layers, text metrics, and image handling."""

from .fields import build_info_lines, format_utc_offset, make_date_str
from .image import SignatureImageData, load_signature_image
from .layers import (
    FONT_RESOURCE,
    IMAGE_RESOURCE,
    LAYER_ORDER,
    AppearanceLayer,
    SignatureAppearance,
    build_appearance,
)
from .text import BASE_FONT, encode_text_hex, encode_winansi, text_width, wrap_lines

__all__ = [
    "BASE_FONT",
    "FONT_RESOURCE",
    "IMAGE_RESOURCE",
    "LAYER_ORDER",
    "AppearanceLayer",
    "SignatureAppearance",
    "SignatureImageData",
    "build_appearance",
    "build_info_lines",
    "encode_text_hex",
    "encode_winansi",
    "format_utc_offset",
    "load_signature_image",
    "make_date_str",
    "text_width",
    "wrap_lines",
]
