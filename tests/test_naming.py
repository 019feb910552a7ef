from __future__ import annotations

import threading

import pytest

from webp_converter.naming import (
    MonotonicTokens,
    base_name,
    original_key,
    primary_key,
    random_token,
    sanitize_stem,
    sized_key,
)


@pytest.mark.parametrize(
    "stem, expected",
    [
        ("photo", "photo"),
        ("My Holiday Photo", "My_Holiday_Photo"),
        ("café-2024", "cafe-2024"),
        ("../../etc/passwd", "etcpasswd"),
        ("a/b", "ab"),
        ("_draft_", "_draft_"),
        (" lead", "_lead"),
        ("CON", "CON"),
        ("report.v2", "reportv2"),
        ("***", "image"),
        ("", "image"),
    ],
)
def test_sanitize_stem(stem: str, expected: str) -> None:
    assert sanitize_stem(stem) == expected


def test_keys_follow_layout() -> None:
    base = base_name("Summer Trip", "abc123")
    assert base == "Summer_Trip_abc123"
    assert primary_key("users/avatar", base) == "users/avatar/Summer_Trip_abc123.webp"
    assert sized_key("users/avatar", base, "thumb") == "users/avatar/Summer_Trip_abc123_thumb.webp"
    assert original_key("users/avatar", base, "JPG") == "users/avatar/Summer_Trip_abc123.jpg"


def test_directory_slashes_are_normalized() -> None:
    assert primary_key("images/", "a_1") == "images/a_1.webp"
    assert primary_key("", "a_1") == "a_1.webp"


def test_same_token_same_keys_different_token_different_keys() -> None:
    assert base_name("photo", "t1") == base_name("photo", "t1")
    assert base_name("photo", "t1") != base_name("photo", "t2")


def test_base_name_rejects_unsafe_token() -> None:
    with pytest.raises(ValueError):
        base_name("photo", "../evil")


def test_random_token_shape() -> None:
    token = random_token()
    assert len(token) == 12
    assert token != random_token()


def test_monotonic_tokens_never_repeat_with_frozen_clock() -> None:
    tokens = MonotonicTokens(clock=lambda: 1_700_000_000)
    assert [tokens() for _ in range(3)] == ["1700000000", "1700000001", "1700000002"]


def test_monotonic_tokens_are_unique_across_threads() -> None:
    tokens = MonotonicTokens(clock=lambda: 5)
    seen: list[str] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(200):
            value = tokens()
            with lock:
                seen.append(value)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == len(set(seen)) == 800
