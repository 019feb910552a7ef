"""
File name and format tag helpers for the converter and the uploader
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

FORMAT_ALIASES: dict[str, str] = {
    "jpg": "jpeg",
    "jpe": "jpeg",
    "jfif": "jpeg",
}


def normalize_format(tag: str) -> str:
    """Lower-case a format tag and fold its aliases ("JPG" -> "jpeg")."""
    value = tag.strip().lower().lstrip(".")
    return FORMAT_ALIASES.get(value, value)


def format_from_filename(name: str) -> str:
    """Declared format tag of a file name, taken from its extension ("" if none)."""
    return PurePosixPath(name.replace("\\", "/")).suffix.lower().lstrip(".")


def safe_filename(name: str) -> str:
    """File name with directories and unsafe characters removed."""
    safe_name = secure_filename(name)
    if not safe_name:
        logger.warning("Invalid filename: %s", name)
    return safe_name


def is_in_dir(base: Path, target: Path) -> bool:
    """Check if target path is in base dir."""
    try:
        target.resolve().relative_to(base.resolve())
        return True
    except ValueError:
        return False
