"""Shared notification and reply formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import Mapping, Optional, Sequence

from codewatch.core.models import CodeRecord, CodeStats, ImageExtraction

LIST_LIMIT = 25
RAW_TEXT_LIMIT = 1000
DIVIDER = "──────────────"


def escape_md(value: str) -> str:
    for ch in r"*[`_":
        value = value.replace(ch, f"\\{ch}")
    return value


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "No checks yet"
    return value.astimezone().strftime("%H:%M %d-%m-%Y")


def _format_codes_markdown(records: Sequence[CodeRecord]) -> str:
    lines = [f"**Found {len(records)} new code(s)**", DIVIDER]
    for index, record in enumerate(records, start=1):
        lines.append(f"{index}. `{record.code}`")
    lines.append(DIVIDER)
    return "\n".join(lines)


def _format_codes_html(records: Sequence[CodeRecord]) -> str:
    parts = [f"<b>Found {len(records)} new code(s)</b>", DIVIDER]
    for index, record in enumerate(records, start=1):
        parts.append(f"{index}. <code>{html.escape(record.code)}</code>")
    parts.append(DIVIDER)
    return "\n".join(parts)


def format_new_codes(records: Sequence[CodeRecord], mode: str) -> str:
    """Return the new-codes notification formatted for the requested mode."""

    if mode == "markdown":
        return _format_codes_markdown(records)
    if mode == "html":
        return _format_codes_html(records)
    raise ValueError(f"Unsupported notification format: {mode}")


def format_unused(records: Sequence[CodeRecord], limit: int = LIST_LIMIT) -> str:
    if not records:
        return "No unused codes found."
    lines = ["**Unused codes**", DIVIDER]
    for index, record in enumerate(records[:limit], start=1):
        lines.append(f"{index}. `{record.code}` ({format_timestamp(record.discovered_at)})")
    if len(records) > limit:
        lines.append(f"... and {len(records) - limit} more codes")
    return "\n".join(lines)


def format_stats(stats: CodeStats, last_check_at: Optional[datetime]) -> str:
    return "\n".join(
        [
            "**Code statistics**",
            DIVIDER,
            f"Total codes found: {stats.total}",
            f"Unused codes: {stats.unused}",
            f"Used codes: {stats.used}",
            f"Codes found today: {stats.discovered_today}",
            f"Last check: {format_timestamp(last_check_at)}",
        ]
    )


def format_use_result(code: str, changed: bool) -> str:
    shown = escape_md(code) if code else "(empty)"
    if changed:
        return f"Code `{shown}` has been marked as used."
    return f"Code `{shown}` not found or already used."


def format_extraction(image_url: str, result: ImageExtraction) -> str:
    if result.error:
        return f"OCR test failed: {escape_md(result.error)}"

    # Backticks in recognized text would close the code fence early.
    raw_text = result.raw_text.strip()[:RAW_TEXT_LIMIT].replace("`", "'") or "(no text)"
    codes = ", ".join(f"`{code}`" for code in result.codes) or "No codes found"
    return "\n".join(
        [
            "**OCR test result**",
            f"Image: {image_url}",
            DIVIDER,
            "**Recognized text:**",
            f"```\n{raw_text}\n```",
            "**Codes:**",
            codes,
            DIVIDER,
            f"Processing time: {result.elapsed_ms / 1000:.2f}s",
        ]
    )


def format_help(commands: Mapping[str, str], interval_minutes: int) -> str:
    lines = ["**Promo code watcher commands**", DIVIDER]
    lines.extend(f"/{name} - {escape_md(description)}" for name, description in commands.items())
    lines.append(DIVIDER)
    lines.append(f"Codes are checked automatically every {interval_minutes} minutes.")
    return "\n".join(lines)


def format_about(version: str) -> str:
    return "\n".join(
        [
            "**About codewatch**",
            DIVIDER,
            "Watches a Telegram channel for promo codes in messages and images.",
            "New codes are stored once and announced as soon as they are found.",
            f"Version: {version}",
            DIVIDER,
            "Type /help for a list of commands.",
        ]
    )
