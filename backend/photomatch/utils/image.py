"""Image sniffing for uploaded search photos."""

from __future__ import annotations

import io

import structlog
from PIL import Image

from photomatch.errors import UnsupportedImage

logger = structlog.get_logger()

# Pillow format name -> MIME type accepted by the object stores
ALLOWED_FORMATS: dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def detect_content_type(data: bytes) -> str:
    """Return the MIME type of an image, judged by its bytes rather than its name.

    Raises UnsupportedImage when the bytes do not decode as one of the
    allowed formats.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()  # Force full decode to catch truncation
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        logger.warning("image_decode_failed", error=str(exc))
        raise UnsupportedImage("Could not decode image") from exc

    fmt = (img.format or "").upper()
    content_type = ALLOWED_FORMATS.get(fmt)
    if content_type is None:
        raise UnsupportedImage(
            f"Image format {fmt or 'unknown'} not allowed. "
            "Only JPEG, PNG, WebP, and GIF are supported."
        )
    return content_type
