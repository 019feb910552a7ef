"""
Pillow-backed codec boundary.

Bytes in, pixels out, and back again. Nothing here touches a store or
the filesystem.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps

from webp_shared.files import normalize_format

from .analysis import alpha_is_opaque, frame_count, has_transparency, transparent_fraction

logger = logging.getLogger(__name__)

# Normalized format tag -> Pillow plugin name
DECODERS: dict[str, str] = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
}

DEFAULT_METHOD = 4


class CodecError(RuntimeError):
    """Raised when an image can't be decoded or encoded."""


class UnsupportedFormat(CodecError):
    """No decoder exists for the declared format."""

    def __init__(self, fmt: str):
        self.format = fmt
        super().__init__(f"Unsupported image format: {fmt!r}")


class CorruptInput(CodecError):
    """The bytes don't parse as the declared format."""


class EncodeFailure(CodecError):
    """The WebP encoder failed."""


class RasterImage:
    """
    Decoded pixels in RGB or RGBA mode.

    Use as a context manager; the pixel buffer is released on exit.
    """

    __slots__ = ("image",)

    def __init__(self, image: Image.Image):
        if image.mode not in ("RGB", "RGBA"):
            raise ValueError(f"RasterImage needs RGB or RGBA pixels, got {image.mode}")
        self.image = image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    @property
    def has_alpha(self) -> bool:
        return self.image.mode == "RGBA"

    def copy(self) -> RasterImage:
        return RasterImage(self.image.copy())

    def close(self) -> None:
        self.image.close()

    def __enter__(self) -> RasterImage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"RasterImage({self.width}x{self.height}, alpha={self.has_alpha})"


def _normalize(img: Image.Image) -> Image.Image:
    """Apply EXIF orientation and reduce to RGB or RGBA."""
    image = ImageOps.exif_transpose(img)
    if has_transparency(image):
        image = image.convert("RGBA")
        if alpha_is_opaque(image):
            image = image.convert("RGB")
        else:
            logger.debug("Alpha in use on %.1f%% of pixels", 100 * transparent_fraction(image))
    elif image.mode != "RGB":
        image = image.convert("RGB")
    return image


def decode(data: bytes, fmt: str) -> RasterImage:
    """
    Decode ``data`` as ``fmt``.

    Raises:
        UnsupportedFormat: no decoder for the tag
        CorruptInput: the bytes are not a readable image of that format
    """
    tag = normalize_format(fmt)
    plugin = DECODERS.get(tag)
    if plugin is None:
        raise UnsupportedFormat(fmt)

    try:
        with Image.open(io.BytesIO(data), formats=[plugin]) as img:
            frames = frame_count(img)
            if frames > 1:
                logger.debug("Using first of %d frames", frames)
                img.seek(0)
            img.load()
            image = _normalize(img)
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise CorruptInput(f"Cannot decode {tag} data: {e}") from e

    return RasterImage(image)


def encode_webp(raster: RasterImage, quality: int, *, method: int = DEFAULT_METHOD) -> bytes:
    """
    Encode a raster as lossy WebP.

    The alpha plane, when present, is kept losslessly.

    Raises:
        EncodeFailure: if Pillow's WebP encoder fails
    """
    params: dict[str, object] = {"quality": quality, "method": method}
    if raster.has_alpha:
        params["alpha_quality"] = 100

    buf = io.BytesIO()
    try:
        raster.image.save(buf, format="WEBP", **params)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeFailure(f"WebP encode failed: {e}") from e
    return buf.getvalue()
