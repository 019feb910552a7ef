"""
Storage key derivation for converted images.

Keys follow the layout callers already rely on:

    <directory>/<base>.webp             canonical derivative
    <directory>/<base>_<size>.webp      sized derivative
    <directory>/<base>.<ext>            retained original

where ``base`` is the sanitized upload stem plus a uniqueness token. Given
the same stem and token every key is the same, so tests can pin the token.
"""

from __future__ import annotations

import re
import secrets
import threading
import time
import unicodedata
from typing import Callable

from webp_shared.models import DEFAULT_STEM

TokenSource = Callable[[], str]

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")
_TOKEN = re.compile(r"^[A-Za-z0-9_-]+$")


def sanitize_stem(stem: str) -> str:
    """
    Reduce an upload stem to ``[A-Za-z0-9_-]`` ("My Café.v2" -> "My_Cafev2").

    Spaces become underscores, accents are folded to ASCII and every other
    character is dropped. The result does not depend on the host OS.
    """
    folded = unicodedata.normalize("NFKD", stem).encode("ascii", "ignore").decode("ascii")
    cleaned = _UNSAFE.sub("", folded.replace(" ", "_"))
    return cleaned or DEFAULT_STEM


def random_token() -> str:
    return secrets.token_hex(6)


class MonotonicTokens:
    """Strictly increasing timestamp tokens, safe to share between threads."""

    def __init__(self, clock: Callable[[], int] = time.time_ns):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            self._last = max(self._clock(), self._last + 1)
            return str(self._last)


def base_name(hint: str, token: str) -> str:
    if not _TOKEN.match(token):
        raise ValueError(f"Token must match [A-Za-z0-9_-]+, got {token!r}")
    return f"{sanitize_stem(hint)}_{token}"


def _join(directory: str, filename: str) -> str:
    directory = directory.strip("/")
    return f"{directory}/{filename}" if directory else filename


def primary_key(directory: str, base: str) -> str:
    return _join(directory, f"{base}.webp")


def sized_key(directory: str, base: str, size_name: str) -> str:
    return _join(directory, f"{base}_{size_name}.webp")


def original_key(directory: str, base: str, fmt: str) -> str:
    ext = fmt.strip().lower().lstrip(".")
    return _join(directory, f"{base}.{ext}")
