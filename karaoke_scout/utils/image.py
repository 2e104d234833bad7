"""Image helpers shared by the LLM adapters and the image fetcher."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError


def detect_media_type(image_bytes: bytes) -> str:
    """Detect the MIME type of an image from its magic bytes.

    PNG starts with 89 50 4E 47, WEBP with RIFF....WEBP, JPEG with FF D8,
    GIF with "GIF8".  Unknown data is reported as JPEG.
    """
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:4] == b"GIF8":
        return "image/gif"
    if image_bytes[:2] == b"\xff\xd8":
        return "image/jpeg"
    return "image/jpeg"


def downscale_image(image_bytes: bytes, max_dimension: int = 2048) -> bytes:
    """Shrink an image so its longest side is at most *max_dimension* pixels.

    Images already within bounds, and data Pillow cannot decode, are
    returned unchanged.  Downscaled images are re-encoded as JPEG (or PNG
    when they carry transparency).
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            if max(img.size) <= max_dimension:
                return image_bytes
            img.thumbnail((max_dimension, max_dimension))
            has_alpha = img.mode in ("RGBA", "LA", "P")
            out = io.BytesIO()
            if has_alpha:
                img.save(out, format="PNG", optimize=True)
            else:
                img.convert("RGB").save(out, format="JPEG", quality=88)
            return out.getvalue()
    except (UnidentifiedImageError, OSError):
        return image_bytes
