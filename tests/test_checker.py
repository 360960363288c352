from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from codewatch.core.checker import CodeChecker
from codewatch.core.config import DEFAULT_CODE_REGEX
from codewatch.core.models import CodeCandidate, CodeRecord, ImageAttachment, IncomingMessage

PATTERN = re.compile(DEFAULT_CODE_REGEX)
FIXED_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeStorage:
    def __init__(self) -> None:
        self.rows: dict[str, CodeRecord] = {}
        self.fail = False

    def insert_if_new(self, candidates: Sequence[CodeCandidate]) -> List[CodeRecord]:
        if self.fail:
            raise RuntimeError("database is locked")
        inserted = []
        for candidate in candidates:
            if candidate.code in self.rows:
                continue
            record = CodeRecord(
                id=len(self.rows) + 1,
                code=candidate.code,
                discovered_at=candidate.discovered_at,
                used=candidate.used,
            )
            self.rows[candidate.code] = record
            inserted.append(record)
        return inserted


class FakeReader:
    def __init__(self, texts: dict[bytes, str], enabled: bool = True) -> None:
        self._texts = texts
        self._enabled = enabled
        self.calls: list[bytes] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def read_text(self, image_bytes: bytes) -> Optional[str]:
        self.calls.append(image_bytes)
        if image_bytes == b"broken":
            raise OSError("cannot identify image file")
        return self._texts.get(image_bytes, "")


class FakeFetcher:
    def __init__(self) -> None:
        self.fetched: list[str] = []

    async def fetch(self, attachment: ImageAttachment) -> bytes:
        self.fetched.append(attachment.ref)
        if attachment.ref == "missing":
            raise ConnectionError("download failed")
        return attachment.ref.encode("utf-8")


def _checker(storage: FakeStorage, reader: Optional[FakeReader] = None, fetcher=None) -> CodeChecker:
    return CodeChecker(
        storage=storage,
        pattern=PATTERN,
        image_reader=reader,
        image_fetcher=fetcher,
        clock=lambda: FIXED_NOW,
    )


def _message(message_id: int, text: str = "", images: Sequence[str] = ()) -> IncomingMessage:
    return IncomingMessage(
        message_id=message_id,
        text=text,
        images=[ImageAttachment(ref=ref, mime_type="image/png") for ref in images],
    )


def test_text_codes_are_stored_with_check_timestamp() -> None:
    storage = FakeStorage()
    result = asyncio.run(_checker(storage).run_check([_message(1, "ABCDE12345")]))

    assert [record.code for record in result.new_codes] == ["ABCDE12345"]
    assert result.new_codes[0].discovered_at == FIXED_NOW
    assert result.new_codes[0].used is False
    assert result.messages_checked == 1


def test_same_window_twice_yields_nothing_new() -> None:
    storage = FakeStorage()
    checker = _checker(storage)
    messages = [_message(1, "ABCDE12345"), _message(2, "FGHIJ67890")]

    first = asyncio.run(checker.run_check(messages))
    second = asyncio.run(checker.run_check(messages))

    assert len(first.new_codes) == 2
    assert second.new_codes == []


def test_codes_are_merged_across_the_batch() -> None:
    storage = FakeStorage()
    result = asyncio.run(
        _checker(storage).run_check([_message(1, "QWERTY1"), _message(2, "again QWERTY1")])
    )
    assert result.candidates_found == 1
    assert len(result.new_codes) == 1


def test_image_text_goes_through_heuristic_filter() -> None:
    storage = FakeStorage()
    reader = FakeReader({b"promo.png": "PROMO CODE\nXJ3K9Q2P"})
    fetcher = FakeFetcher()
    message = _message(1, "check this out", images=["promo.png"])

    result = asyncio.run(_checker(storage, reader, fetcher).run_check([message]))

    assert [record.code for record in result.new_codes] == ["XJ3K9Q2P"]


def test_failed_image_does_not_block_text_or_other_messages() -> None:
    storage = FakeStorage()
    reader = FakeReader({b"good.png": "ZXCVB98765"})
    fetcher = FakeFetcher()
    messages = [
        _message(1, "TEXT12345", images=["missing", "broken"]),
        _message(2, "", images=["good.png"]),
    ]

    result = asyncio.run(_checker(storage, reader, fetcher).run_check(messages))

    assert {record.code for record in result.new_codes} == {"TEXT12345", "ZXCVB98765"}
    assert result.failures == 2


def test_disabled_reader_skips_image_download() -> None:
    storage = FakeStorage()
    reader = FakeReader({b"promo.png": "XJ3K9Q2P"}, enabled=False)
    fetcher = FakeFetcher()

    result = asyncio.run(
        _checker(storage, reader, fetcher).run_check([_message(1, "", images=["promo.png"])])
    )

    assert result.new_codes == []
    assert fetcher.fetched == []
    assert reader.calls == []


def test_storage_failure_yields_empty_delta() -> None:
    storage = FakeStorage()
    storage.fail = True

    result = asyncio.run(_checker(storage).run_check([_message(1, "ABCDE12345")]))

    assert result.new_codes == []
    assert result.candidates_found == 1
    assert result.failures == 1


def test_extract_from_image() -> None:
    reader = FakeReader({b"img": "Use code\nLMNOP4321"})
    result = asyncio.run(_checker(FakeStorage(), reader, FakeFetcher()).extract_from_image(b"img"))

    assert result.error is None
    assert result.codes == ["LMNOP4321"]
    assert result.filtered_text == "LMNOP4321"


def test_extract_from_image_when_disabled() -> None:
    result = asyncio.run(_checker(FakeStorage()).extract_from_image(b"img"))
    assert result.error == "OCR is disabled"

    broken = asyncio.run(
        _checker(FakeStorage(), FakeReader({}), FakeFetcher()).extract_from_image(b"broken")
    )
    assert broken.error == "cannot identify image file"
