"""
Shared types for WebP derivative conversion

The package is a dependency of both the converter and the uploader:
- Converter uses it for the data model, the policy and the store protocol
- Uploader uses it to build sources and to open a store

Deployment:
    pip install webp-derivatives
"""

from .files import (
    format_from_filename,
    is_in_dir,
    normalize_format,
    safe_filename,
)
from .models import (
    CANONICAL,
    Derivative,
    DerivativeSpec,
    Manifest,
    SourceImage,
)
from .policy import (
    DEFAULT_SIZES,
    Policy,
    PolicyError,
    parse_formats,
    parse_sizes,
)
from .storage import (
    BlobStore,
    LocalBlobStore,
    MemoryBlobStore,
    ReadableBlobStore,
    StoreError,
)

__all__ = [
    # Model
    "CANONICAL",
    "SourceImage",
    "DerivativeSpec",
    "Derivative",
    "Manifest",
    # Policy
    "DEFAULT_SIZES",
    "Policy",
    "PolicyError",
    "parse_sizes",
    "parse_formats",
    # Storage
    "BlobStore",
    "ReadableBlobStore",
    "StoreError",
    "MemoryBlobStore",
    "LocalBlobStore",
    # Files
    "normalize_format",
    "format_from_filename",
    "safe_filename",
    "is_in_dir",
]
