# pyright: reportUnknownMemberType=false
"""
Image loading and preparation for signature appearances.

Loads PNG/JPEG (and a few other raster) images, downscales if needed,
splits off the alpha channel, and returns deflate-compressed pixel data
ready for embedding as an image XObject.
"""

from __future__ import annotations

__all__ = ["SignatureImageData", "load_signature_image"]

import logging
import zlib
from pathlib import Path
from typing import TypedDict

from PIL import Image, UnidentifiedImageError

from ...errors import ConfigError, StreamError

_logger = logging.getLogger(__name__)


class SignatureImageData(TypedDict):
    """Data returned by load_signature_image."""

    samples: bytes  # Deflate-compressed RGB pixel data
    smask: bytes | None  # Deflate-compressed alpha channel, or None if opaque
    width: int  # Pixel width
    height: int  # Pixel height
    bpc: int  # Bits per component (always 8)


# Maximum image dimension in pixels before downscaling.
# Signature images don't need to be large; 200x100 is plenty for print.
_MAX_IMAGE_PX = 200

# Maximum input file size (5 MB).
_MAX_FILE_SIZE = 5 * 1024 * 1024

# Allowed image formats (Pillow format names).
_ALLOWED_FORMATS = {"PNG", "JPEG", "GIF", "BMP", "TIFF", "WEBP"}

# Maximum pixel count, checked before decompression (CWE-400).
_MAX_IMAGE_PIXELS = 2000 * 2000


def load_signature_image(image_path: str | Path) -> SignatureImageData:
    """Load an image file and prepare it for embedding in a signature appearance.

    Images are downscaled if larger than 200px on any side.

    Raises:
        ConfigError: If the file is missing, empty, too large, or not a
            supported image format.
        StreamError: If the file cannot be read.
    """
    path = Path(image_path).expanduser().resolve()
    if not path.is_file():
        raise ConfigError(f"Signature image not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as exc:
        raise StreamError(f"Cannot read signature image {path}: {exc}") from exc
    if file_size > _MAX_FILE_SIZE:
        raise ConfigError(
            f"Signature image too large: {file_size / 1024 / 1024:.1f} MB "
            f"(max {_MAX_FILE_SIZE / 1024 / 1024:.0f} MB)"
        )
    if file_size == 0:
        raise ConfigError("Signature image file is empty")

    try:
        img = Image.open(path)
    except UnidentifiedImageError as exc:
        raise ConfigError(f"Cannot load image file: {exc}") from exc
    except OSError as exc:
        raise StreamError(f"Cannot read signature image {path}: {exc}") from exc

    try:
        # Image.open() only reads the header; check dimensions before
        # anything decompresses the pixel data.
        pixel_count = img.width * img.height
        if pixel_count > _MAX_IMAGE_PIXELS:
            raise ConfigError(
                f"Image too large: {img.width}x{img.height} ({pixel_count:,} pixels). "
                f"Maximum: {_MAX_IMAGE_PIXELS:,} pixels."
            )

        if not img.format or img.format not in _ALLOWED_FORMATS:
            actual = img.format or "unknown"
            raise ConfigError(
                f"Unsupported image format: {actual}. "
                f"Supported: {', '.join(sorted(_ALLOWED_FORMATS))}"
            )

        max_dim = max(img.width, img.height)
        if max_dim > _MAX_IMAGE_PX:
            scale = _MAX_IMAGE_PX / max_dim
            new_w = max(1, int(img.width * scale))
            new_h = max(1, int(img.height * scale))
            img = img.resize((new_w, new_h), Image.Resampling.LANCZOS)

        smask_data = None
        if img.mode in ("RGBA", "LA", "PA"):
            alpha = img.split()[-1]
            smask_data = zlib.compress(alpha.tobytes())
            img = img.convert("RGB")
        elif img.mode != "RGB":
            img = img.convert("RGB")

        rgb_data = zlib.compress(img.tobytes())
        _logger.debug(
            "Loaded signature image %s: %dx%d, alpha=%s",
            path.name,
            img.width,
            img.height,
            smask_data is not None,
        )
        return {
            "samples": rgb_data,
            "smask": smask_data,
            "width": img.width,
            "height": img.height,
            "bpc": 8,
        }
    except OSError as exc:
        raise StreamError(f"Cannot decode signature image {path}: {exc}") from exc
    finally:
        img.close()
