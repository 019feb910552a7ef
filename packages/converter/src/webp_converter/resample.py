"""
Proportional resizing to a target width.

Heights are computed with integer arithmetic so the same input always
yields the same output dimensions on every platform.
"""

from __future__ import annotations

import logging

from PIL import Image

from .codec import RasterImage

logger = logging.getLogger(__name__)

FILTERS: dict[str, Image.Resampling] = {
    "bicubic": Image.Resampling.BICUBIC,
    "area": Image.Resampling.BOX,
    "lanczos": Image.Resampling.LANCZOS,
}


def target_height(width: int, height: int, target_width: int) -> int:
    """Height that keeps the aspect ratio at ``target_width`` (half rounds up, min 1)."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Source dimensions must be positive, got {width}x{height}")
    return max(1, (2 * height * target_width + width) // (2 * width))


def resize(raster: RasterImage, target_width: int, resample: str = "bicubic") -> RasterImage:
    """
    Resize ``raster`` to ``target_width`` keeping its aspect ratio.

    Widths above the source width upscale. The source raster is never
    modified; a new raster is always returned, even for the same width.
    """
    if target_width <= 0:
        raise ValueError(f"Target width must be positive, got {target_width}")
    try:
        resample_filter = FILTERS[resample]
    except KeyError:
        raise ValueError(f"Unknown resample filter: {resample!r}") from None

    if target_width == raster.width:
        return raster.copy()

    height = target_height(raster.width, raster.height, target_width)
    logger.debug("Resizing %dx%d -> %dx%d (%s)", raster.width, raster.height,
                 target_width, height, resample)
    return RasterImage(raster.image.resize((target_width, height), resample_filter))
