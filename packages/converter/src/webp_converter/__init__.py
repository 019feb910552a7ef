"""
WebP Derivative Engine.

This package turns one uploaded image into a canonical WebP plus one WebP
per configured width, and commits them to a blob store all-or-nothing.

Deployment:
    pip install webp-derivatives

This package has no networking dependencies. It's pure image processing
over an injected store.

"""

from .analysis import alpha_is_opaque, has_transparency, transparent_fraction
from .codec import (
    CodecError,
    CorruptInput,
    EncodeFailure,
    RasterImage,
    UnsupportedFormat,
    decode,
    encode_webp,
)
from .convert import ConversionJob, DerivativePipeline, RenderedDerivative, convert
from .errors import ErrorKind, PipelineError, Stage, ValidationError
from .naming import (
    MonotonicTokens,
    base_name,
    original_key,
    primary_key,
    random_token,
    sanitize_stem,
    sized_key,
)
from .resample import resize, target_height

__all__ = [
    "has_transparency",
    "alpha_is_opaque",
    "transparent_fraction",
    "CodecError",
    "UnsupportedFormat",
    "CorruptInput",
    "EncodeFailure",
    "RasterImage",
    "decode",
    "encode_webp",
    "resize",
    "target_height",
    "sanitize_stem",
    "base_name",
    "primary_key",
    "sized_key",
    "original_key",
    "random_token",
    "MonotonicTokens",
    "ErrorKind",
    "Stage",
    "PipelineError",
    "ValidationError",
    "ConversionJob",
    "RenderedDerivative",
    "DerivativePipeline",
    "convert",
]
