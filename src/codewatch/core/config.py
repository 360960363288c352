"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_CODE_REGEX = "[A-Z0-9]{5,10}"


@dataclass(frozen=True)
class OcrConfig:
    """Image pipeline settings consumed by the OCR adapters."""

    enabled: bool
    language: str
    crop_ratio: float
    timeout_seconds: int


@dataclass(frozen=True)
class CheckConfig:
    """Scheduling settings for check cycles."""

    interval_minutes: int
    messages_per_check: int
