"""Bounded image compression for chat attachments."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from src.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

QUALITY_STEP = 10


class ImageCompressionError(Exception):
    """The payload could not be decoded as an image."""

    pass


@dataclass
class CompressedImage:
    """Result of compressing an image."""

    data: bytes
    content_type: str
    extension: str
    width: int
    height: int
    quality: int


def compress_image(data: bytes, settings: Settings | None = None) -> CompressedImage:
    """Re-encode an image as WebP within the configured bounds.

    The longest edge is scaled down to ``image_max_dimension``; quality
    starts at ``image_quality`` and steps down until the encoded size fits
    ``image_target_bytes`` or ``image_min_quality`` is reached.

    Args:
        data: Raw image bytes in any format Pillow can read.
        settings: Optional settings override.

    Returns:
        CompressedImage: Encoded bytes and metadata.

    Raises:
        ImageCompressionError: If the bytes are not a readable image.
    """
    settings = settings or get_settings()

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageCompressionError(f"Unreadable image: {e}") from e

    # Apply EXIF orientation before resizing so phone photos stay upright
    image = ImageOps.exif_transpose(image)
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if "A" in image.getbands() else "RGB")

    max_dimension = settings.image_max_dimension
    if max(image.size) > max_dimension:
        image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    quality = settings.image_quality
    encoded = _encode_webp(image, quality)
    while len(encoded) > settings.image_target_bytes and quality > settings.image_min_quality:
        quality = max(settings.image_min_quality, quality - QUALITY_STEP)
        encoded = _encode_webp(image, quality)

    logger.debug(
        "Compressed image %d -> %d bytes (%dx%d, quality %d)",
        len(data),
        len(encoded),
        image.width,
        image.height,
        quality,
    )
    return CompressedImage(
        data=encoded,
        content_type="image/webp",
        extension="webp",
        width=image.width,
        height=image.height,
        quality=quality,
    )


def _encode_webp(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="WEBP", quality=quality)
    return buffer.getvalue()
