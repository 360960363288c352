"""Helpers for working with codewatch source keys.

A source key names the watched chat: ``@username`` for public chats or
``chat_id:<id>`` for chats without a username.
"""

from __future__ import annotations

from typing import Optional, Union

CHAT_ID_PREFIX = "chat_id:"


def normalize_source_key(raw_value: Optional[str]) -> Optional[str]:
    """Return the canonical form of a source key, or None if it is invalid."""

    value = (raw_value or "").strip()
    if not value:
        return None

    if value.startswith("@"):
        username = value[1:]
        if not username or not username.replace("_", "a").isalnum():
            return None
        return f"@{username.lower()}"

    if value.startswith(CHAT_ID_PREFIX):
        chat_part = value[len(CHAT_ID_PREFIX):].strip()
        try:
            return f"{CHAT_ID_PREFIX}{int(chat_part)}"
        except ValueError:
            return None

    # Bare numeric ids are accepted for convenience.
    try:
        return f"{CHAT_ID_PREFIX}{int(value)}"
    except ValueError:
        return None


def entity_ref(source_key: str) -> Union[str, int]:
    """Return what the Telegram client expects to resolve the source."""

    if source_key.startswith(CHAT_ID_PREFIX):
        return int(source_key[len(CHAT_ID_PREFIX):])
    return source_key
