"""Code extraction logic (core domain)."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from codewatch.core.config import DEFAULT_CODE_REGEX
from codewatch.core.models import ExtractionResult

# Lines matching any of these are promotional filler around the actual code
# and commonly contain uppercase words that look like codes to the pattern.
NOISE_PATTERNS: List[re.Pattern] = [
    re.compile(r"free\s*c*o*de", re.IGNORECASE),
    re.compile(r"csgo\s*skins", re.IGNORECASE),
    re.compile(r"promo(tional)?\s*code", re.IGNORECASE),
    re.compile(r"^code:?\s*$", re.IGNORECASE),
    re.compile(r"^\s*use\s*code\s*$", re.IGNORECASE),
]

_NON_CODE_CHARS = re.compile(r"[^A-Z0-9]")


def compile_code_pattern(raw_pattern: Optional[str]) -> re.Pattern:
    """Compile the configured code pattern, falling back to the default.

    Raises ValueError on an invalid expression so startup fails loudly
    instead of silently matching nothing.
    """

    source = raw_pattern or DEFAULT_CODE_REGEX
    try:
        return re.compile(source)
    except re.error as exc:
        raise ValueError(f"Invalid CODE_REGEX {source!r}: {exc}") from exc


def normalize_code(value: str) -> str:
    """Strip everything outside [A-Z0-9] after uppercasing."""

    return _NON_CODE_CHARS.sub("", (value or "").upper())


def find_matches(text: str, pattern: re.Pattern) -> List[str]:
    """Return every whole match, ignoring any capture groups in the pattern."""

    return [match.group(0) for match in pattern.finditer(text)]


def _dedupe(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def clean_matches(matches: Iterable[str]) -> List[str]:
    """Deduplicate matches and strip characters that cannot be part of a code."""

    cleaned = (_NON_CODE_CHARS.sub("", match) for match in _dedupe(matches))
    return _dedupe(code for code in cleaned if code)


def is_noise_line(line: str) -> bool:
    return any(noise.search(line) for noise in NOISE_PATTERNS)


def filter_noise_lines(text: str, pattern: re.Pattern) -> str:
    """Keep only non-empty, non-noise lines that still contain a code match."""

    lines = [line for line in text.split("\n") if line.strip()]
    kept = [line for line in lines if not is_noise_line(line) and pattern.search(line)]
    return "\n".join(kept)


def extract_codes(
    text: Optional[str],
    pattern: re.Pattern,
    heuristic: bool = False,
) -> ExtractionResult:
    """Extract normalized candidate codes from text.

    The heuristic pass is meant for recognized image text: OCR output keeps
    the promotional copy around the code, so noisy lines are dropped before
    the final match. Message text is matched as-is.
    """

    if not text:
        return ExtractionResult(raw_text="", filtered_text="", codes=[])

    filtered_text = filter_noise_lines(text, pattern) if heuristic else text
    codes = clean_matches(find_matches(filtered_text, pattern))
    return ExtractionResult(raw_text=text, filtered_text=filtered_text, codes=codes)
