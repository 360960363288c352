"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional


@dataclass(frozen=True)
class CodeCandidate:
    """A normalized code waiting to be inserted into the store."""

    code: str
    discovered_at: datetime
    used: bool = False


@dataclass(frozen=True)
class CodeRecord:
    """Persisted representation of a discovered code."""

    id: int
    code: str
    discovered_at: datetime
    used: bool


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of running the extractor over one piece of text."""

    raw_text: str
    filtered_text: str
    codes: List[str]


@dataclass(frozen=True)
class ImageAttachment:
    """An image attached to a message.

    ``handle`` is an opaque adapter object (for example the Telethon message
    that carries the media) that only the matching fetcher understands.
    """

    ref: str
    mime_type: Optional[str] = None
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class IncomingMessage:
    """Minimal message shape consumed by the check orchestrator."""

    message_id: int
    text: str
    images: List[ImageAttachment] = field(default_factory=list)
    date: Optional[datetime] = None


@dataclass(frozen=True)
class CheckResult:
    """Delta produced by one check cycle."""

    new_codes: List[CodeRecord]
    checked_at: datetime
    messages_checked: int = 0
    candidates_found: int = 0
    failures: int = 0


@dataclass(frozen=True)
class CodeStats:
    """Aggregate counters over the code store."""

    total: int
    unused: int
    used: int
    discovered_today: int


@dataclass(frozen=True)
class ImageExtraction:
    """Result of a one-off extraction over a single image."""

    raw_text: str = ""
    filtered_text: str = ""
    codes: List[str] = field(default_factory=list)
    elapsed_ms: int = 0
    error: Optional[str] = None
