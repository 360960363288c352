"""Core check orchestration.

This module is integration-agnostic. It only relies on ports for storage,
media, and OCR, enabling other chat platforms or OCR engines without
changes here.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from codewatch.core.extractor import extract_codes
from codewatch.core.models import (
    CheckResult,
    CodeCandidate,
    CodeRecord,
    ImageExtraction,
    IncomingMessage,
)
from codewatch.core.ports import CodeStoragePort, ImageFetcherPort, ImageReaderPort

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CodeChecker:
    """Orchestrates extraction, OCR, and persistence for one message window."""

    def __init__(
        self,
        storage: CodeStoragePort,
        pattern: re.Pattern,
        image_reader: Optional[ImageReaderPort] = None,
        image_fetcher: Optional[ImageFetcherPort] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._pattern = pattern
        self._image_reader = image_reader
        self._image_fetcher = image_fetcher
        self._clock = clock

    @property
    def reader_enabled(self) -> bool:
        return self._image_reader is not None and self._image_reader.enabled

    @property
    def ocr_enabled(self) -> bool:
        return self._image_fetcher is not None and self.reader_enabled

    async def run_check(self, messages: Iterable[IncomingMessage]) -> CheckResult:
        """Process one message window and return the newly stored codes."""

        found: dict[str, None] = {}
        messages_checked = 0
        failures = 0

        for message in messages:
            messages_checked += 1
            try:
                codes, image_failures = await self._codes_from_message(message)
            except Exception:
                # One broken message must not cost us the rest of the window.
                LOGGER.exception("Failed to process message %s", message.message_id)
                failures += 1
                continue
            failures += image_failures
            for code in codes:
                found.setdefault(code, None)

        checked_at = self._clock()
        candidates = [CodeCandidate(code=code, discovered_at=checked_at) for code in found]
        LOGGER.info("Found %s potential codes in %s messages", len(candidates), messages_checked)

        new_codes: List[CodeRecord] = []
        if candidates:
            try:
                new_codes = self._storage.insert_if_new(candidates)
            except Exception:
                LOGGER.exception("Failed to save %s candidate codes", len(candidates))
                failures += 1
                new_codes = []

        if new_codes:
            LOGGER.info("Added %s new codes to the store", len(new_codes))
        else:
            LOGGER.info("No new codes found")

        return CheckResult(
            new_codes=new_codes,
            checked_at=checked_at,
            messages_checked=messages_checked,
            candidates_found=len(candidates),
            failures=failures,
        )

    async def _codes_from_message(self, message: IncomingMessage) -> tuple[List[str], int]:
        """Return (codes, failed image count) for a single message."""

        # Message text is usually just the code, so no heuristic filtering here.
        codes = list(extract_codes(message.text, self._pattern).codes)
        if not message.images or not self.ocr_enabled:
            return codes, 0

        failures = 0
        for attachment in message.images:
            try:
                image_bytes = await self._image_fetcher.fetch(attachment)
                raw_text = await self._image_reader.read_text(image_bytes)
            except Exception:
                LOGGER.exception("Failed to read image %s", attachment.ref)
                failures += 1
                continue
            if raw_text is None:
                continue
            result = extract_codes(raw_text, self._pattern, heuristic=True)
            LOGGER.debug("Image %s yielded codes %s", attachment.ref, result.codes)
            for code in result.codes:
                if code not in codes:
                    codes.append(code)
        return codes, failures

    async def extract_from_image(self, image_bytes: bytes) -> ImageExtraction:
        """Run the image pipeline once without touching the store."""

        if not self.reader_enabled:
            return ImageExtraction(error="OCR is disabled")

        started = time.monotonic()
        try:
            raw_text = await self._image_reader.read_text(image_bytes)
        except Exception as exc:
            LOGGER.exception("Test extraction failed")
            return ImageExtraction(error=str(exc) or exc.__class__.__name__)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if raw_text is None:
            return ImageExtraction(elapsed_ms=elapsed_ms, error="OCR is disabled")

        result = extract_codes(raw_text, self._pattern, heuristic=True)
        return ImageExtraction(
            raw_text=result.raw_text,
            filtered_text=result.filtered_text,
            codes=result.codes,
            elapsed_ms=elapsed_ms,
        )
