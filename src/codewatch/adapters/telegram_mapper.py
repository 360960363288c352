"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline: messages are
pulled with the client, turned into IncomingMessage objects, and their
media is downloaded on demand by the fetcher.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from telethon.tl.custom import Message
from telethon.tl.types import PeerChannel, PeerChat

from codewatch.core.models import ImageAttachment, IncomingMessage
from codewatch.core.source_keys import entity_ref

LOGGER = logging.getLogger(__name__)


def source_key_from_message(message: Message) -> str:
    """Normalize a source key using a single rule enforced across the app."""

    chat = getattr(message, "chat", None)
    username = getattr(chat, "username", None)

    if isinstance(username, str) and username:
        return f"@{username.lower()}"

    # Fallback: always stable and universal
    return f"chat_id:{message.chat_id}"


def build_permalink(message: Message) -> Optional[str]:
    """Return a t.me link to the message when one can be built."""

    chat = getattr(message, "chat", None)
    username = getattr(chat, "username", None)
    # Prefer public usernames for permalinks when available.
    if isinstance(username, str) and username:
        return f"https://t.me/{username}/{message.id}"

    peer_id = getattr(message, "peer_id", None)
    # Private groups/supergroups/channels can use the /c/ links.
    if isinstance(peer_id, PeerChannel):
        return f"https://t.me/c/{peer_id.channel_id}/{message.id}"
    if isinstance(peer_id, PeerChat):
        return f"https://t.me/c/{peer_id.chat_id}/{message.id}"
    return None


def _image_mime_type(message: Message) -> Optional[str]:
    if getattr(message, "photo", None) is not None:
        return "image/jpeg"
    if getattr(message, "document", None) is None:
        return None
    media_file = getattr(message, "file", None)
    mime_type = getattr(media_file, "mime_type", None)
    if isinstance(mime_type, str) and mime_type.startswith("image/"):
        return mime_type
    return None


def image_attachments(message: Message) -> List[ImageAttachment]:
    """Return the image carried by a message (Telegram allows one per message)."""

    mime_type = _image_mime_type(message)
    if mime_type is None:
        return []
    ref = build_permalink(message) or f"{source_key_from_message(message)}/{message.id}"
    return [ImageAttachment(ref=ref, mime_type=mime_type, handle=message)]


def build_incoming_message(message: Message) -> IncomingMessage:
    """Build a core IncomingMessage from a Telethon Message."""

    return IncomingMessage(
        message_id=message.id,
        text=message.raw_text or "",
        images=image_attachments(message),
        date=getattr(message, "date", None),
    )


class TelegramMessageSource:
    """MessageSourcePort that reads the latest messages of one chat."""

    def __init__(self, client, source_key: str) -> None:
        self._client = client
        self._source_key = source_key
        self._entity: Any = None

    async def _resolve(self) -> Any:
        if self._entity is None:
            self._entity = await self._client.get_entity(entity_ref(self._source_key))
        return self._entity

    async def fetch_recent(self, limit: int) -> List[IncomingMessage]:
        entity = await self._resolve()
        messages: List[IncomingMessage] = []
        async for message in self._client.iter_messages(entity, limit=limit):
            messages.append(build_incoming_message(message))
        LOGGER.debug("Fetched %s messages from %s", len(messages), self._source_key)
        return messages


class TelegramMediaFetcher:
    """ImageFetcherPort that downloads message media into memory."""

    def __init__(self, client) -> None:
        self._client = client

    async def fetch(self, attachment: ImageAttachment) -> bytes:
        if attachment.handle is None:
            raise ValueError(f"Attachment {attachment.ref} has no Telegram message")
        data = await self._client.download_media(attachment.handle, file=bytes)
        if not data:
            raise ValueError(f"No media downloaded for {attachment.ref}")
        return data
