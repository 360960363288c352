"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, media, OCR, and
notification adapters so that the core can be reused with different
backends and tested with fakes.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from codewatch.core.models import (
    CodeCandidate,
    CodeRecord,
    CodeStats,
    ImageAttachment,
    IncomingMessage,
)


class CodeStoragePort(Protocol):
    """Storage operations required by the core pipeline."""

    def insert_if_new(self, candidates: Sequence[CodeCandidate]) -> List[CodeRecord]:
        ...

    def list_unused(self) -> List[CodeRecord]:
        ...

    def mark_used(self, code: str) -> bool:
        ...

    def stats(self, now: Optional[datetime] = None) -> CodeStats:
        ...


class ImageFetcherPort(Protocol):
    """Loads the raw bytes behind an image attachment."""

    async def fetch(self, attachment: ImageAttachment) -> bytes:
        ...


class ImageReaderPort(Protocol):
    """Turns raw image bytes into recognized text.

    ``read_text`` returns ``None`` when recognition is disabled.
    """

    @property
    def enabled(self) -> bool:
        ...

    async def read_text(self, image_bytes: bytes) -> Optional[str]:
        ...


class MessageSourcePort(Protocol):
    """Pulls a bounded window of recent messages from the watched chat."""

    async def fetch_recent(self, limit: int) -> List[IncomingMessage]:
        ...


class NotifierPort(Protocol):
    """Notification operations required after a check found new codes."""

    async def send_codes(self, records: Sequence[CodeRecord]) -> None:
        ...
