from __future__ import annotations

import asyncio
import io
import os

import pytest
from PIL import Image

from codewatch.adapters.image_preprocessor import centered_crop_box, preprocess_image, scratch_image
from codewatch.adapters.tesseract_reader import OcrImageReader


def _png_bytes(width: int, height: int, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class StubRecognizer:
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.paths: list[str] = []
        self.existed: list[bool] = []

    async def start(self) -> bool:
        return self.enabled

    async def recognize(self, image_path: str):
        self.paths.append(image_path)
        self.existed.append(os.path.exists(image_path))
        return "PROMO CODE\nXJ3K9Q2P"

    async def shutdown(self) -> None:
        self.enabled = False


def test_centered_crop_box() -> None:
    assert centered_crop_box(100, 50, 0.6) == (20, 10, 80, 40)
    assert centered_crop_box(100, 50, 1.0) == (0, 0, 100, 50)
    assert centered_crop_box(3, 3, 0.0) == (1, 1, 2, 2)


def test_preprocess_crops_and_converts_to_greyscale() -> None:
    image = preprocess_image(_png_bytes(100, 50), crop_ratio=0.6)

    assert image.size == (60, 30)
    assert image.mode == "L"


def test_preprocess_accepts_palette_images() -> None:
    buffer = io.BytesIO()
    Image.new("P", (40, 40)).save(buffer, format="GIF")

    assert preprocess_image(buffer.getvalue(), crop_ratio=0.5).size == (20, 20)


def test_preprocess_rejects_non_images() -> None:
    with pytest.raises(OSError):
        preprocess_image(b"definitely not an image")


def test_scratch_image_is_removed_after_use() -> None:
    with scratch_image(Image.new("L", (10, 10))) as path:
        assert os.path.exists(path)
        assert os.path.basename(path).startswith("processed_")
    assert not os.path.exists(path)


def test_scratch_image_is_removed_on_error() -> None:
    saved = {}
    with pytest.raises(RuntimeError):
        with scratch_image(Image.new("L", (10, 10))) as path:
            saved["path"] = path
            raise RuntimeError("recognition timed out")
    assert not os.path.exists(saved["path"])


def test_reader_runs_recognizer_on_processed_scratch_file() -> None:
    recognizer = StubRecognizer()
    reader = OcrImageReader(recognizer, crop_ratio=0.6)

    text = asyncio.run(reader.read_text(_png_bytes(100, 50)))

    assert text == "PROMO CODE\nXJ3K9Q2P"
    assert recognizer.existed == [True]
    assert not os.path.exists(recognizer.paths[0])


def test_disabled_reader_returns_none() -> None:
    recognizer = StubRecognizer(enabled=False)
    reader = OcrImageReader(recognizer)

    assert reader.enabled is False
    assert asyncio.run(reader.read_text(_png_bytes(10, 10))) is None
    assert recognizer.paths == []
