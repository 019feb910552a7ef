from __future__ import annotations

import io
from typing import Callable

import pytest
from PIL import Image, ImageDraw

from webp_shared.storage import MemoryBlobStore


def _make_image(width: int, height: int, fmt: str = "JPEG", alpha: bool = False) -> bytes:
    mode = "RGBA" if alpha else "RGB"
    background = (255, 255, 255, 0) if alpha else (255, 255, 255)
    image = Image.new(mode, (width, height), background)
    draw = ImageDraw.Draw(image)
    draw.rectangle(
        (width // 4, height // 4, 3 * width // 4, 3 * height // 4),
        fill=(200, 30, 30, 255) if alpha else (200, 30, 30),
    )
    draw.line((0, 0, width - 1, height - 1), fill=(0, 0, 255, 255) if alpha else (0, 0, 255), width=3)
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


ImageFactory = Callable[..., bytes]


@pytest.fixture
def make_image() -> ImageFactory:
    return _make_image


@pytest.fixture
def jpeg_bytes() -> bytes:
    return _make_image(1000, 800, "JPEG")


@pytest.fixture
def png_alpha_bytes() -> bytes:
    return _make_image(400, 300, "PNG", alpha=True)


@pytest.fixture
def store() -> MemoryBlobStore:
    return MemoryBlobStore(base_url="https://cdn.example.com")


def fixed_token(value: str = "tok") -> Callable[[], str]:
    return lambda: value


@pytest.fixture
def token() -> Callable[[], str]:
    return fixed_token()
