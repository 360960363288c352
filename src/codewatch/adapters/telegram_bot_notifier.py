"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so new-code alerts can be routed via a bot
chat instead of the watching account's Saved Messages.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from typing import Sequence

from codewatch.adapters.notification_formatting import format_new_codes
from codewatch.core.models import CodeRecord


class TelegramBotNotifier:
    """Notifier adapter that sends new codes via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, timeout_seconds: int = 10) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout_seconds

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _build_request(self, records: Sequence[CodeRecord]) -> urllib.request.Request:
        payload = {
            "chat_id": self._chat_id,
            "text": format_new_codes(records, mode="html"),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        return request

    def _post(self, request: urllib.request.Request) -> None:
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Bot API error {e.code}: {body}") from e

    async def send_codes(self, records: Sequence[CodeRecord]) -> None:
        """Send the formatted list of new codes via the Bot API."""

        if not records:
            return
        await asyncio.to_thread(self._post, self._build_request(records))
