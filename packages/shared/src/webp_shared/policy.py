"""Conversion policy: quality, derivative sizes and accepted source formats."""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from .files import normalize_format
from .models import CANONICAL, DerivativeSpec

ResampleName = Literal["bicubic", "area", "lanczos"]

RESAMPLE_NAMES: frozenset[str] = frozenset({"bicubic", "area", "lanczos"})
DEFAULT_SIZES: tuple[tuple[str, int], ...] = (
    ("thumbnail", 150),
    ("medium", 500),
    ("large", 1200),
)
DEFAULT_FORMATS: frozenset[str] = frozenset({"jpeg", "png"})

_SIZE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class PolicyError(ValueError):
    """Raised when a policy value is out of range or malformed."""


def parse_sizes(value: str | Mapping[str, Any] | Iterable[Any]) -> tuple[tuple[str, int], ...]:
    """
    Parse a size table.

    Accepts "thumbnail=150,large=1200", a mapping of name to width, or an
    iterable of (name, width) pairs. Order is preserved.
    """
    if isinstance(value, str):
        pairs: list[tuple[str, Any]] = []
        for chunk in value.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            name, sep, width = chunk.partition("=")
            if not sep:
                raise PolicyError(f"Size entry must be name=width, got {chunk!r}")
            pairs.append((name.strip(), width.strip()))
    elif isinstance(value, Mapping):
        pairs = list(value.items())
    else:
        pairs = [tuple(item) for item in value]

    sizes: list[tuple[str, int]] = []
    for name, width in pairs:
        try:
            sizes.append((str(name), int(width)))
        except (TypeError, ValueError) as e:
            raise PolicyError(f"Width for size {name!r} must be an integer") from e
    return tuple(sizes)


def parse_formats(value: str | Iterable[str]) -> frozenset[str]:
    """Format tags with aliases folded ("jpg,JPEG,.png" -> {"jpeg", "png"})."""
    items = value.split(",") if isinstance(value, str) else value
    return frozenset(normalize_format(item) for item in items if item.strip())


def _parse_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise PolicyError(f"{name} must be an integer, got {value!r}") from e


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise PolicyError(f"Expected a boolean, got {value!r}")


@dataclass(frozen=True)
class Policy:
    """
    Immutable conversion settings threaded into every pipeline call.

    ``sizes`` keeps declaration order; it decides the manifest order after
    the canonical derivative.
    """

    quality: int = 80
    keep_original: bool = True
    sizes: tuple[tuple[str, int], ...] = DEFAULT_SIZES
    allowed_formats: frozenset[str] = field(default=DEFAULT_FORMATS)
    resample: ResampleName = "bicubic"

    def __post_init__(self) -> None:
        object.__setattr__(self, "sizes", parse_sizes(self.sizes))
        object.__setattr__(self, "allowed_formats", parse_formats(self.allowed_formats))

        if isinstance(self.quality, bool) or not isinstance(self.quality, int):
            raise PolicyError(f"quality must be an integer, got {self.quality!r}")
        if not 0 <= self.quality <= 100:
            raise PolicyError(f"quality must be within 0..100, got {self.quality}")
        if not self.allowed_formats:
            raise PolicyError("allowed_formats must not be empty")
        if self.resample not in RESAMPLE_NAMES:
            raise PolicyError(f"Unknown resample filter: {self.resample!r}")

        seen: set[str] = set()
        for name, width in self.sizes:
            if not _SIZE_NAME.match(name):
                raise PolicyError(f"Size name must match [A-Za-z0-9_-]+, got {name!r}")
            if name == CANONICAL:
                raise PolicyError(f"Size name {CANONICAL!r} is reserved")
            if name in seen:
                raise PolicyError(f"Duplicate size name: {name!r}")
            if width <= 0:
                raise PolicyError(f"Width for size {name!r} must be positive, got {width}")
            seen.add(name)

    @classmethod
    def load(cls) -> Policy:
        """Load from environment variables."""
        return cls(
            quality=_parse_int("WEBP_QUALITY", os.getenv("WEBP_QUALITY", "80")),
            keep_original=_parse_bool(os.getenv("WEBP_KEEP_ORIGINAL", "true")),
            sizes=parse_sizes(os.getenv("WEBP_SIZES", "thumbnail=150,medium=500,large=1200")),
            allowed_formats=parse_formats(os.getenv("WEBP_ALLOWED_FORMATS", "jpg,jpeg,png")),
            resample=os.getenv("WEBP_RESAMPLE", "bicubic"),  # type: ignore[arg-type]
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Policy:
        """Build a policy from a config mapping; missing keys keep their defaults."""
        kwargs: dict[str, Any] = {}
        if "quality" in data:
            kwargs["quality"] = _parse_int("quality", data["quality"])
        if "keep_original" in data:
            kwargs["keep_original"] = _parse_bool(data["keep_original"])
        if "sizes" in data:
            kwargs["sizes"] = parse_sizes(data["sizes"])
        formats = data.get("allowed_formats", data.get("allowed_extensions"))
        if formats is not None:
            kwargs["allowed_formats"] = parse_formats(formats)
        if "resample" in data:
            kwargs["resample"] = data["resample"]
        return cls(**kwargs)

    def allows(self, fmt: str) -> bool:
        return normalize_format(fmt) in self.allowed_formats

    def derivative_specs(self) -> tuple[DerivativeSpec, ...]:
        """Canonical derivative first, then one per configured size."""
        return (DerivativeSpec(CANONICAL),) + tuple(
            DerivativeSpec(name, width) for name, width in self.sizes
        )
