"""Raw PDF objects for signature fields.

Builds the objects that make up a signature: the signature dictionary
with its ByteRange and Contents placeholders, the shared font, the five
layer forms, the /FRM composition, the widget's normal appearance, the
widget annotation itself, and optional image XObjects.

These helpers are called by placeholder.py.
"""

from __future__ import annotations

__all__ = [
    "build_annot_widget",
    "build_appearance_objects",
    "build_font_object",
    "build_sig_dict",
    "pdf_date",
]

import datetime
from typing import TYPE_CHECKING

from ...constants import __version__
from ...errors import MalformedDocument
from ..appearance import BASE_FONT, FONT_RESOURCE, IMAGE_RESOURCE
from .byterange import BYTERANGE_PLACEHOLDER
from .objects import ANNOT_FLAGS_SIG_WIDGET, RawObject, SigObjectNums, pdf_text_string

if TYPE_CHECKING:
    from ..appearance import SignatureAppearance, SignatureImageData
    from .placeholder import SignatureMetadata


def pdf_date(when: datetime.datetime) -> str:
    """Format a timezone-aware datetime as a PDF date in UTC: ``D:YYYYMMDDHHmmSS+00'00'``."""
    return when.astimezone(datetime.timezone.utc).strftime("D:%Y%m%d%H%M%S+00'00'")


def _stream_object(num: int, dict_body: str, stream: bytes) -> RawObject:
    header = f"{num} 0 obj\n<< {dict_body}\n   /Length {len(stream)}\n>>\nstream\n"
    return RawObject(header.encode("latin-1") + stream + b"\nendstream\nendobj\n", num)


def _bbox(width: float, height: float) -> str:
    return f"[0.00 0.00 {width:.2f} {height:.2f}]"


def build_sig_dict(
    obj_num: int,
    reserved_bytes: int,
    metadata: SignatureMetadata,
    signing_time: datetime.datetime,
) -> RawObject:
    """Build the /Type /Sig dictionary with both placeholders.

    ``/Contents`` is ``2 * reserved_bytes`` zero digits; the ByteRange
    is a fixed-width placeholder patched once offsets are known.
    """
    contents_zeros = "0" * (2 * reserved_bytes)
    placeholder = BYTERANGE_PLACEHOLDER.decode("ascii")
    lines = [
        f"{obj_num} 0 obj",
        "<<",
        "  /Type /Sig",
        "  /Filter /Adobe.PPKLite",
        "  /SubFilter /adbe.pkcs7.detached",
        f"  {placeholder}",
        f"  /Contents <{contents_zeros}>",
        f"  /M ({pdf_date(signing_time)})",
    ]
    if metadata.signer_name:
        lines.append(f"  /Name {pdf_text_string(metadata.signer_name)}")
    if metadata.location:
        lines.append(f"  /Location {pdf_text_string(metadata.location)}")
    if metadata.reason:
        lines.append(f"  /Reason {pdf_text_string(metadata.reason)}")
    lines.append(
        f"  /Prop_Build << /App << /Name /layersign /REx ({__version__}) >> "
        f"/Filter << /Name /Adobe.PPKLite >> >>"
    )
    lines += [">>", "endobj", ""]
    return RawObject("\n".join(lines).encode("latin-1"), obj_num)


def build_font_object(obj_num: int) -> RawObject:
    """Standard 14 Helvetica-Bold, shared by every text layer."""
    raw = (
        f"{obj_num} 0 obj\n"
        f"<< /Type /Font /Subtype /Type1 /BaseFont /{BASE_FONT}"
        f" /Encoding /WinAnsiEncoding >>\n"
        f"endobj\n"
    )
    return RawObject(raw.encode("latin-1"), obj_num)


def build_appearance_objects(
    obj_nums: SigObjectNums, appearance: SignatureAppearance
) -> list[RawObject]:
    """Build the layer forms, /FRM, the top-level AP/N form and image objects.

    Returns:
        Raw objects in append order.
    """
    font = obj_nums["font"]
    frm = obj_nums["frm"]
    ap = obj_nums["ap"]
    layer_nums = obj_nums["layers"]
    if font is None or frm is None or ap is None or len(layer_nums) != len(appearance.layers):
        raise MalformedDocument("Appearance object allocation is incomplete")
    img = obj_nums["img"]
    if appearance.image is not None and img is None:
        raise MalformedDocument("Appearance has an image but no image object was allocated")

    bbox = _bbox(appearance.width, appearance.height)
    result: list[RawObject] = []

    for layer in appearance.layers:
        resources: list[str] = []
        if layer.uses_font:
            resources.append(f"/Font << /{FONT_RESOURCE} {font} 0 R >>")
        if layer.uses_image:
            resources.append(f"/XObject << /{IMAGE_RESOURCE} {img} 0 R >>")
        body = (
            f"/Type /XObject /Subtype /Form /FormType 1\n"
            f"   /BBox {bbox}\n"
            f"   /Resources << {' '.join(resources)} >>"
        )
        result.append(_stream_object(layer_nums[layer.name], body, layer.stream))

    # /FRM -- draws every layer in order
    xobjects = " ".join(f"/{name} {num} 0 R" for name, num in layer_nums.items())
    frm_body = (
        f"/Type /XObject /Subtype /Form /FormType 1\n"
        f"   /BBox {bbox}\n"
        f"   /Resources << /XObject << {xobjects} >> >>"
    )
    result.append(_stream_object(frm, frm_body, appearance.composed_stream))

    # AP/N -- top-level appearance form (just delegates to /FRM)
    ap_body = (
        f"/Type /XObject /Subtype /Form /FormType 1\n"
        f"   /BBox {bbox}\n"
        f"   /Resources << /XObject << /FRM {frm} 0 R >> >>"
    )
    result.append(_stream_object(ap, ap_body, b"/FRM Do"))

    image = appearance.image
    if image is not None and img is not None:
        smask = obj_nums["smask"]
        result.append(_build_image_object(img, image, smask))
        smask_bytes = image["smask"]
        if smask is not None and smask_bytes is not None:
            result.append(
                _build_smask_object(smask, smask_bytes, image["width"], image["height"], image["bpc"])
            )

    return result


def build_annot_widget(
    obj_nums: SigObjectNums,
    page_objgen: tuple[int, int],
    rect: tuple[float, float, float, float],
    field_name: str,
) -> RawObject:
    """Build the merged signature field + widget annotation.

    Args:
        rect: (x0, y0, x1, y1) in page coordinates.
    """
    sig = obj_nums["sig"]
    annot = obj_nums["annot"]
    ap = obj_nums["ap"]
    if annot is None or ap is None:
        raise MalformedDocument("Widget object allocation is incomplete")
    x0, y0, x1, y1 = rect
    # /Border [0 0 0] suppresses the default 1pt viewer-drawn border
    # since n0 draws its own.
    raw = (
        f"{annot} 0 obj\n"
        f"<<\n"
        f"  /Type /Annot\n"
        f"  /Subtype /Widget\n"
        f"  /FT /Sig\n"
        f"  /Rect [{x0:.2f} {y0:.2f} {x1:.2f} {y1:.2f}]\n"
        f"  /V {sig} 0 R\n"
        f"  /T {pdf_text_string(field_name)}\n"
        f"  /F {ANNOT_FLAGS_SIG_WIDGET}\n"
        f"  /P {page_objgen[0]} {page_objgen[1]} R\n"
        f"  /AP << /N {ap} 0 R >>\n"
        f"  /Border [0 0 0]\n"
        f">>\n"
        f"endobj\n"
    )
    return RawObject(raw.encode("latin-1"), annot)


def _build_image_object(
    img_obj_num: int, img_data: SignatureImageData, smask_obj_num: int | None
) -> RawObject:
    """Build a raw PDF image XObject."""
    smask_ref = ""
    if smask_obj_num is not None:
        smask_ref = f" /SMask {smask_obj_num} 0 R"
    body = (
        f"/Type /XObject /Subtype /Image\n"
        f"   /Width {img_data['width']} /Height {img_data['height']}\n"
        f"   /ColorSpace /DeviceRGB /BitsPerComponent {img_data['bpc']}\n"
        f"   /Filter /FlateDecode{smask_ref}"
    )
    return _stream_object(img_obj_num, body, img_data["samples"])


def _build_smask_object(
    smask_obj_num: int, smask_data: bytes, width: int, height: int, bpc: int
) -> RawObject:
    """Build a raw PDF soft mask image XObject."""
    body = (
        f"/Type /XObject /Subtype /Image\n"
        f"   /Width {width} /Height {height}\n"
        f"   /ColorSpace /DeviceGray /BitsPerComponent {bpc}\n"
        f"   /Filter /FlateDecode"
    )
    return _stream_object(smask_obj_num, body, smask_data)
