"""Pillow image preprocessing for OCR.

Codes in screenshots and promo banners sit near the middle of the image, so
the pipeline keeps the centered region and boosts it for text recognition.
"""

from __future__ import annotations

import io
import logging
import os
import tempfile
import uuid
from contextlib import contextmanager
from typing import Iterator, Tuple

from PIL import Image, ImageFilter, ImageOps

LOGGER = logging.getLogger(__name__)

DEFAULT_CROP_RATIO = 0.6
SCRATCH_DIR_NAME = "codewatch"


def centered_crop_box(width: int, height: int, ratio: float) -> Tuple[int, int, int, int]:
    """Return the (left, top, right, bottom) box covering the centered ratio."""

    ratio = min(max(ratio, 0.0), 1.0)
    crop_width = max(1, round(width * ratio))
    crop_height = max(1, round(height * ratio))
    left = round((width - crop_width) / 2)
    top = round((height - crop_height) / 2)
    return left, top, left + crop_width, top + crop_height


def preprocess_image(image_bytes: bytes, crop_ratio: float = DEFAULT_CROP_RATIO) -> Image.Image:
    """Crop to the center, then greyscale, normalize contrast, and sharpen."""

    with Image.open(io.BytesIO(image_bytes)) as source:
        width, height = source.size
        box = centered_crop_box(width, height, crop_ratio)
        LOGGER.debug(
            "Cropping image %sx%s -> %sx%s (center)",
            width,
            height,
            box[2] - box[0],
            box[3] - box[1],
        )
        cropped = source.convert("RGB").crop(box)

    grey = ImageOps.grayscale(cropped)
    normalized = ImageOps.autocontrast(grey)
    return normalized.filter(ImageFilter.SHARPEN)


def scratch_dir() -> str:
    """Return (and create) the scratch directory under the OS temp dir."""

    path = os.path.join(tempfile.gettempdir(), SCRATCH_DIR_NAME)
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Cannot create scratch dir %s (%s); using temp dir", path, exc)
        return tempfile.gettempdir()
    return path


@contextmanager
def scratch_image(image: Image.Image) -> Iterator[str]:
    """Persist an image to a scratch PNG and remove it when the block exits."""

    path = os.path.join(scratch_dir(), f"processed_{uuid.uuid4().hex}.png")
    try:
        image.save(path, format="PNG")
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
