from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from telethon.tl.types import PeerChannel, PeerUser

from codewatch.adapters.telegram_mapper import (
    TelegramMediaFetcher,
    TelegramMessageSource,
    build_incoming_message,
    build_permalink,
    source_key_from_message,
)
from codewatch.core.models import ImageAttachment


class DummyChat:
    def __init__(self, username: "str | None" = None) -> None:
        self.username = username


class DummyFile:
    def __init__(self, mime_type: "str | None") -> None:
        self.mime_type = mime_type


class DummyMessage:
    def __init__(
        self,
        *,
        chat_id: int,
        message_id: int,
        text: "str | None",
        chat: "DummyChat | None" = None,
        peer_id=None,
        photo=None,
        document=None,
        mime_type: "str | None" = None,
    ) -> None:
        self.chat_id = chat_id
        self.id = message_id
        self.raw_text = text
        self.chat = chat
        self.peer_id = peer_id
        self.photo = photo
        self.document = document
        self.file = DummyFile(mime_type) if document is not None else None
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)


class DummyClient:
    def __init__(self, messages, media: bytes = b"image-bytes") -> None:
        self._messages = messages
        self._media = media
        self.resolved: list = []
        self.limits: list[int] = []
        self.downloads: list = []

    async def get_entity(self, ref):
        self.resolved.append(ref)
        return f"entity:{ref}"

    async def iter_messages(self, entity, limit=None):
        self.limits.append(limit)
        for message in self._messages[:limit]:
            yield message

    async def download_media(self, message, file=None):
        self.downloads.append((message, file))
        return self._media


def test_source_key_prefers_username() -> None:
    message = DummyMessage(chat_id=-100123, message_id=1, text="", chat=DummyChat("PromoDrops"))
    assert source_key_from_message(message) == "@promodrops"

    anonymous = DummyMessage(chat_id=-100123, message_id=1, text="")
    assert source_key_from_message(anonymous) == "chat_id:-100123"


def test_permalinks() -> None:
    public = DummyMessage(chat_id=-1001, message_id=42, text="", chat=DummyChat("PromoDrops"))
    assert build_permalink(public) == "https://t.me/PromoDrops/42"

    private = DummyMessage(chat_id=-1001, message_id=7, text="", peer_id=PeerChannel(555))
    assert build_permalink(private) == "https://t.me/c/555/7"

    direct = DummyMessage(chat_id=99, message_id=3, text="", peer_id=PeerUser(99))
    assert build_permalink(direct) is None


def test_text_only_message_has_no_images() -> None:
    message = DummyMessage(chat_id=1, message_id=5, text=None)
    incoming = build_incoming_message(message)

    assert incoming.message_id == 5
    assert incoming.text == ""
    assert incoming.images == []
    assert incoming.date == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_photo_becomes_image_attachment() -> None:
    message = DummyMessage(
        chat_id=-1001,
        message_id=8,
        text="look",
        chat=DummyChat("promodrops"),
        photo=object(),
    )
    [attachment] = build_incoming_message(message).images

    assert attachment.ref == "https://t.me/promodrops/8"
    assert attachment.mime_type == "image/jpeg"
    assert attachment.handle is message


@pytest.mark.parametrize(
    "mime_type, expected",
    [("image/png", 1), ("image/webp", 1), ("video/mp4", 0), ("application/pdf", 0), (None, 0)],
)
def test_only_image_documents_are_attached(mime_type, expected) -> None:
    message = DummyMessage(chat_id=1, message_id=2, text="", document=object(), mime_type=mime_type)
    assert len(build_incoming_message(message).images) == expected


def test_message_source_resolves_once_and_respects_limit() -> None:
    messages = [DummyMessage(chat_id=-1001, message_id=i, text=f"CODE{i:04d}") for i in range(5)]
    client = DummyClient(messages)
    source = TelegramMessageSource(client, "chat_id:-1001")

    first = asyncio.run(source.fetch_recent(3))
    asyncio.run(source.fetch_recent(2))

    assert [message.text for message in first] == ["CODE0000", "CODE0001", "CODE0002"]
    assert client.resolved == [-1001]
    assert client.limits == [3, 2]


def test_media_fetcher_downloads_into_memory() -> None:
    message = DummyMessage(chat_id=1, message_id=2, text="", photo=object())
    client = DummyClient([], media=b"\x89PNG")
    fetcher = TelegramMediaFetcher(client)

    data = asyncio.run(fetcher.fetch(ImageAttachment(ref="x", handle=message)))

    assert data == b"\x89PNG"
    assert client.downloads == [(message, bytes)]


def test_media_fetcher_rejects_missing_media() -> None:
    fetcher = TelegramMediaFetcher(DummyClient([], media=b""))

    with pytest.raises(ValueError):
        asyncio.run(fetcher.fetch(ImageAttachment(ref="x")))
    with pytest.raises(ValueError):
        asyncio.run(fetcher.fetch(ImageAttachment(ref="x", handle=object())))
