"""Tesseract OCR adapter.

One recognizer instance is shared by the whole process. It is started on
first use, recognition calls go through it one at a time, and shutdown is
explicit so the app can tear it down during graceful exit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import pytesseract

from codewatch.adapters.image_preprocessor import (
    DEFAULT_CROP_RATIO,
    preprocess_image,
    scratch_image,
)
from codewatch.core.config import OcrConfig

LOGGER = logging.getLogger(__name__)


class TesseractRecognizer:
    """Lazily started, serialized access to the Tesseract engine."""

    def __init__(self, enabled: bool, language: str = "eng", timeout_seconds: int = 30) -> None:
        self._enabled = enabled
        self._language = language
        self._timeout = timeout_seconds
        self._lock = asyncio.Lock()
        self._started = False
        self._available = False

    @property
    def enabled(self) -> bool:
        # Before start() we can only go by the flag; afterwards by the probe.
        if not self._enabled:
            return False
        return self._available if self._started else True

    async def start(self) -> bool:
        """Probe the engine once. Returns False instead of raising on failure."""

        if not self._enabled:
            return False
        if self._started:
            return self._available

        async with self._lock:
            if self._started:
                return self._available
            LOGGER.info("Starting OCR engine (language: %s)", self._language)
            try:
                version = await asyncio.to_thread(pytesseract.get_tesseract_version)
                languages = await asyncio.to_thread(pytesseract.get_languages, config="")
            except Exception:
                LOGGER.exception("OCR engine failed to start; image codes are disabled")
                self._available = False
            else:
                missing = [lang for lang in self._language.split("+") if lang not in languages]
                if missing:
                    LOGGER.error("OCR language data missing: %s; image codes are disabled", missing)
                    self._available = False
                else:
                    LOGGER.info("OCR engine ready (tesseract %s)", version)
                    self._available = True
            self._started = True
        return self._available

    async def recognize(self, image_path: str) -> Optional[str]:
        """Return raw text for an image file, or None when OCR is unavailable."""

        if not await self.start():
            return None
        async with self._lock:
            # pytesseract kills the engine and raises RuntimeError on timeout.
            return await asyncio.to_thread(
                pytesseract.image_to_string,
                image_path,
                lang=self._language,
                timeout=self._timeout,
            )

    async def shutdown(self) -> None:
        """Release the engine handle; a no-op if it was never started."""

        if not self._started:
            return
        async with self._lock:
            was_available = self._available
            self._started = False
            self._available = False
        if was_available:
            LOGGER.info("OCR engine stopped")


class OcrImageReader:
    """ImageReaderPort implementation: Pillow preprocessing + Tesseract."""

    def __init__(self, recognizer: TesseractRecognizer, crop_ratio: float = DEFAULT_CROP_RATIO) -> None:
        self._recognizer = recognizer
        self._crop_ratio = crop_ratio

    @property
    def enabled(self) -> bool:
        return self._recognizer.enabled

    async def read_text(self, image_bytes: bytes) -> Optional[str]:
        if not await self._recognizer.start():
            return None
        image = await asyncio.to_thread(preprocess_image, image_bytes, self._crop_ratio)
        with scratch_image(image) as path:
            raw_text = await self._recognizer.recognize(path)
        if raw_text is not None:
            LOGGER.debug("Raw OCR result: %r", raw_text)
        return raw_text

    async def shutdown(self) -> None:
        await self._recognizer.shutdown()


def build_image_reader(config: OcrConfig) -> OcrImageReader:
    recognizer = TesseractRecognizer(
        enabled=config.enabled,
        language=config.language,
        timeout_seconds=config.timeout_seconds,
    )
    return OcrImageReader(recognizer, crop_ratio=config.crop_ratio)
