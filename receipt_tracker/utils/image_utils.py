"""Pillow helpers for shrinking receipt images before storage."""

from __future__ import annotations

import io
import logging
from typing import Optional, Tuple

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

MAX_DIMENSION = 1200
JPEG_QUALITY = 80


def compress_image(
    data: bytes,
    max_dimension: int = MAX_DIMENSION,
    quality: int = JPEG_QUALITY,
) -> Tuple[bytes, Optional[str]]:
    """Fit an image inside max_dimension² and re-encode as progressive JPEG.

    Never enlarges. On any decode/encode failure the original bytes are
    returned unchanged together with content type None, so the caller keeps
    its own type.

    Returns:
        (bytes, content_type) where content_type is "image/jpeg" on success
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            image = image.convert("RGB")
            image.thumbnail((max_dimension, max_dimension), Image.LANCZOS)
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=quality, optimize=True, progressive=True)
    except Exception as exc:
        logger.warning("Image compression failed, using original bytes: %s", exc)
        return data, None

    compressed = buffer.getvalue()
    logger.debug("Compressed image from %d to %d bytes", len(data), len(compressed))
    return compressed, "image/jpeg"
