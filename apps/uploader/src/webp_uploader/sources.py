"""Turning upload objects into ``SourceImage`` values."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from werkzeug.datastructures import FileStorage

from webp_shared.files import format_from_filename, safe_filename
from webp_shared.models import SourceImage

logger = logging.getLogger(__name__)


def is_upload(value: Any) -> bool:
    """True for values the pipeline can take: uploaded files and ready sources."""
    return isinstance(value, (FileStorage, SourceImage))


def source_from_upload(value: Any) -> SourceImage | None:
    """
    Resolve an upload to bytes plus a format tag.

    The tag is the client file name's extension. Returns None when ``value``
    is not an upload (e.g. an already stored key).
    """
    if isinstance(value, SourceImage):
        return value
    if not isinstance(value, FileStorage):
        return None

    filename = safe_filename(value.filename or "")
    data = value.read()
    logger.debug("Read upload %s (%d bytes)", filename or "<unnamed>", len(data))
    return SourceImage(
        data=data,
        format=format_from_filename(filename),
        filename=filename or None,
    )


def source_from_path(path: Path | str) -> SourceImage:
    """Read a local file; the format tag comes from its extension."""
    return SourceImage.from_path(path)
