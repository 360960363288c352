"""Telegram notification adapter for Saved Messages.

Formats a human-readable Markdown message and sends it to Saved Messages.
"""

from __future__ import annotations

from typing import Sequence

from codewatch.adapters.notification_formatting import format_new_codes
from codewatch.core.models import CodeRecord


class TelegramSavedMessagesNotifier:
    """Notifier adapter that sends new codes to the user's Saved Messages."""

    def __init__(self, client) -> None:
        self._client = client

    async def send_codes(self, records: Sequence[CodeRecord]) -> None:
        """Send the formatted list of new codes to Saved Messages."""

        if not records:
            return
        message = format_new_codes(records, mode="markdown")
        await self._client.send_message("me", message, parse_mode="md")
