"""Telegram client factory for codewatch.

We explicitly manage the client's lifecycle (connect/run_until_disconnected)
so it is obvious when the session is created and when it ends.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH come from the environment or .env. The session name
    defaults to "codewatch", which creates a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "codewatch")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")
    try:
        api_id_value = int(api_id)
    except ValueError as exc:
        raise RuntimeError("API_ID must be numeric") from exc

    logging.getLogger(__name__).info("Initializing Telegram client (session %s)", session_name)

    # Retries smooth over short network drops during long-running watches.
    return TelegramClient(
        session_name,
        api_id_value,
        api_hash,
        connection_retries=5,
        retry_delay=5,
    )
