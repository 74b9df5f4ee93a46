"""Image size and dimension extraction."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from models import ImageMeta


def read_image_metadata(raw_bytes: bytes) -> ImageMeta:
    """Return byte size and pixel dimensions for encoded image bytes.

    Only the image header is parsed; pixel data is not decoded.
    """
    if not raw_bytes:
        raise ValueError("Empty image payload.")

    try:
        with Image.open(BytesIO(raw_bytes)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Failed to read image dimensions.") from exc

    return ImageMeta(size=len(raw_bytes), width=int(width), height=int(height))
