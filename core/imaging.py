"""
Image geometry helpers for page segmentation.

Converts normalized bottom-origin bounds into pixel rows, crops page
regions with Pillow and encodes them as base64 JPEG for upload.
"""

from __future__ import annotations

import base64
import io
import logging
from pathlib import Path

from PIL import Image

from config import Config

logger = logging.getLogger(__name__)


def to_pixel_rows(height: int, start_y: float, end_y: float, padding: float = 0.0) -> tuple[int, int]:
    """
    Map a normalized vertical range to (top, bottom) pixel rows.

    Normalized y grows upwards while image rows grow downwards, so the
    upper bound of the range becomes the top row.

    Args:
        height: Image height in pixels
        start_y: Lower bound in [0, 1]
        end_y: Upper bound in [0, 1]
        padding: Extra normalized margin added on both sides

    Returns:
        Tuple of (top, bottom) rows, clamped to the image
    """
    top = int(round((1.0 - min(1.0, end_y + padding)) * height))
    bottom = int(round((1.0 - max(0.0, start_y - padding)) * height))
    top = max(0, min(top, height))
    bottom = max(0, min(bottom, height))
    if bottom <= top:
        # Keep at least one row so degenerate ranges still produce an image
        bottom = min(height, top + 1)
        top = bottom - 1
    return top, bottom


def crop_region(image: Image.Image | None, start_y: float, end_y: float, padding: float = 0.0):
    """
    Crop the horizontal band of a page between two normalized bounds.

    Args:
        image: Full page image (None for text-only analysis)
        start_y: Lower bound in [0, 1]
        end_y: Upper bound in [0, 1]
        padding: Extra normalized margin added on both sides

    Returns:
        Cropped PIL image, or None when no image was given
    """
    if image is None:
        return None

    width, height = image.size
    top, bottom = to_pixel_rows(height, start_y, end_y, padding)
    return image.crop((0, top, width, bottom))


def load_image(path: Path) -> Image.Image:
    """Open an image file and fully load it into memory."""
    with Image.open(path) as img:
        img.load()
        return img.convert("RGB") if img.mode not in ("RGB", "L") else img.copy()


def encode_image(image: Image.Image, quality: int | None = None) -> str:
    """
    Encode an image as base64 JPEG.

    Args:
        image: PIL image
        quality: JPEG quality (defaults to Config.JPEG_QUALITY)

    Returns:
        Base64-encoded JPEG bytes as ASCII text
    """
    quality = quality or Config.JPEG_QUALITY
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    data = buffer.getvalue()
    logger.debug(f"Encoded {image.size[0]}x{image.size[1]} image as JPEG ({len(data)} bytes, q={quality})")
    return base64.b64encode(data).decode("ascii")
