"""Command operations exposed to chat users.

Each method maps one user command onto a core operation. Expected negative
outcomes (unknown code, nothing new, OCR disabled) come back as values, not
exceptions, so adapters only need to format them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from codewatch.core.checker import CodeChecker
from codewatch.core.extractor import normalize_code
from codewatch.core.models import CheckResult, CodeRecord, CodeStats, ImageAttachment, ImageExtraction
from codewatch.core.ports import CodeStoragePort, ImageFetcherPort
from codewatch.core.scheduler import SingleFlightCheck

LOGGER = logging.getLogger(__name__)

COMMAND_RE = re.compile(r"^/(?P<name>[a-z]+)(?:@\w+)?(?:\s+(?P<arg>.+))?$", re.IGNORECASE | re.DOTALL)

COMMAND_HELP = {
    "check": "Check for codes immediately",
    "list": "List all unused codes",
    "use": "Mark a specific code as used: /use <code>",
    "stats": "Show code statistics",
    "testocr": "Test OCR on an image URL: /testocr <url>",
    "about": "Show information about this watcher",
    "help": "Show this help message",
}


@dataclass(frozen=True)
class ParsedCommand:
    name: str
    arg: Optional[str] = None


def parse_command(text: Optional[str]) -> Optional[ParsedCommand]:
    """Parse "/name [arg]" into a command, or None for ordinary text."""

    match = COMMAND_RE.match((text or "").strip())
    if not match:
        return None
    arg = match.group("arg")
    return ParsedCommand(name=match.group("name").lower(), arg=arg.strip() if arg else None)


class CodeCommands:
    """Core operations behind /check, /list, /use, /stats, and /testocr."""

    def __init__(
        self,
        runner: SingleFlightCheck,
        checker: CodeChecker,
        storage: CodeStoragePort,
        url_fetcher: Optional[ImageFetcherPort] = None,
    ) -> None:
        self._runner = runner
        self._checker = checker
        self._storage = storage
        self._url_fetcher = url_fetcher

    @property
    def last_check_at(self):
        return self._runner.last_check_at

    async def check(self) -> Optional[CheckResult]:
        """Run a check now; None means one was already running."""

        return await self._runner.run(trigger="manual")

    def list_unused(self) -> List[CodeRecord]:
        return self._storage.list_unused()

    def use(self, raw_code: Optional[str]) -> bool:
        """Mark a code as used. False when the code is invalid, unknown, or used."""

        code = normalize_code(raw_code or "")
        if not code:
            return False
        return self._storage.mark_used(code)

    def stats(self) -> CodeStats:
        return self._storage.stats()

    async def test_extraction(self, image_url: Optional[str]) -> ImageExtraction:
        """Download an image by URL and run the OCR pipeline on it."""

        if not image_url:
            return ImageExtraction(error="An image URL is required")
        if not self._checker.reader_enabled or self._url_fetcher is None:
            return ImageExtraction(error="OCR is disabled")

        try:
            image_bytes = await self._url_fetcher.fetch(ImageAttachment(ref=image_url))
        except Exception as exc:
            LOGGER.warning("Failed to download %s: %s", image_url, exc)
            return ImageExtraction(error=f"Download failed: {exc}")
        return await self._checker.extract_from_image(image_bytes)
