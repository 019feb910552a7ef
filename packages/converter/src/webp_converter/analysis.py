"""
Image inspection used while decoding.

Decides whether a decoded image really carries transparency, so opaque
PNGs are encoded without an alpha plane.
"""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

ALPHA_MODES = ("RGBA", "LA", "PA", "RGBa", "La")


def frame_count(img: Image.Image) -> int:
    return int(getattr(img, "n_frames", 1))


def has_transparency(img: Image.Image) -> bool:
    """True if the image has an alpha band or a transparency key."""
    return img.mode in ALPHA_MODES or "transparency" in img.info


def alpha_values(rgba: Image.Image) -> np.ndarray:
    return np.asarray(rgba.getchannel("A"), dtype=np.uint8)


def alpha_is_opaque(rgba: Image.Image) -> bool:
    """
    Check whether every pixel of an RGBA image is fully opaque.

    Returns True for an empty alpha plane.
    """
    alpha = alpha_values(rgba)
    return alpha.size == 0 or int(alpha.min()) == 255


def transparent_fraction(rgba: Image.Image) -> float:
    """
    Share of pixels that are not fully opaque.

    Returns fraction in range [0.0, 1.0]
    """
    alpha = alpha_values(rgba)
    if alpha.size == 0:
        return 0.0
    return float(np.count_nonzero(alpha < 255)) / alpha.size
