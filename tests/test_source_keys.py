from __future__ import annotations

import pytest

from codewatch.core.source_keys import entity_ref, normalize_source_key


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("@PromoDrops", "@promodrops"),
        ("  @promo_drops ", "@promo_drops"),
        ("chat_id:-100123", "chat_id:-100123"),
        ("chat_id: 42", "chat_id:42"),
        ("-100987654321", "chat_id:-100987654321"),
    ],
)
def test_normalize_source_key(raw, expected) -> None:
    assert normalize_source_key(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "@", "@bad name", "chat_id:abc", "promodrops"])
def test_normalize_source_key_rejects_invalid(raw) -> None:
    assert normalize_source_key(raw) is None


def test_entity_ref() -> None:
    assert entity_ref("chat_id:-100123") == -100123
    assert entity_ref("@promodrops") == "@promodrops"
