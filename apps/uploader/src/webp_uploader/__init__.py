"""
This app sits between an upload source and the derivative pipeline. It:
1. Turns uploaded files into SourceImage values
2. Hooks into record persistence to swap uploads for stored WebP keys
3. Converts uploads that are already stored
4. Ships a CLI to convert local files into a directory-backed store

Deployment:
    pip install webp-derivatives
    webp-convert photo.jpg --store ./storage
"""

from .config import UploaderConfig
from .hooks import (
    ImageField,
    WebPAttributeHook,
    convert_stored_file,
    convert_stored_file_with_sizes,
    webp_url,
)
from .sources import is_upload, source_from_path, source_from_upload

__all__ = [
    "UploaderConfig",
    "ImageField",
    "WebPAttributeHook",
    "webp_url",
    "convert_stored_file",
    "convert_stored_file_with_sizes",
    "is_upload",
    "source_from_upload",
    "source_from_path",
]
