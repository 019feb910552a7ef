"""
Data types exchanged between the uploader, the derivative pipeline and callers.

Flow:
    caller      -> pipeline : SourceImage (bytes + declared format tag)
    pipeline    -> workers  : DerivativeSpec (canonical, or one per size)
    pipeline    -> caller   : Manifest (ordered keys of committed blobs)
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

# Name of the unscaled derivative; matches the "webp" key callers read back.
CANONICAL = "webp"
DEFAULT_STEM = "image"


@dataclass(frozen=True)
class SourceImage:
    """An uploaded image, already resolved to bytes and a format tag."""

    data: bytes = field(repr=False)
    format: str
    filename: str | None = None

    @classmethod
    def from_path(cls, path: Path | str, format: str | None = None) -> "SourceImage":
        path = Path(path)
        tag = format if format is not None else path.suffix.lstrip(".")
        return cls(data=path.read_bytes(), format=tag, filename=path.name)

    @property
    def stem(self) -> str:
        if not self.filename:
            return DEFAULT_STEM
        return PurePosixPath(self.filename.replace("\\", "/")).stem or DEFAULT_STEM

    def fingerprint(self) -> str:
        """SHA-256 hex digest of the source bytes."""
        return hashlib.sha256(self.data).hexdigest()


@dataclass(frozen=True)
class DerivativeSpec:
    """One output of a conversion. ``target_width=None`` is the canonical one."""

    name: str
    target_width: int | None = None

    @property
    def is_canonical(self) -> bool:
        return self.target_width is None


@dataclass(frozen=True)
class Derivative:
    """A committed derivative blob."""

    name: str
    key: str
    width: int
    height: int
    size: int


@dataclass(frozen=True)
class Manifest:
    """
    Result of a successful conversion.

    Derivatives are ordered canonical first, then in the policy's size order.
    Every key listed here was present in the store when the manifest was
    returned.
    """

    base_name: str
    derivatives: tuple[Derivative, ...]
    original: str | None = None
    fingerprint: str = ""

    @property
    def keys(self) -> dict[str, str]:
        return {d.name: d.key for d in self.derivatives}

    @property
    def primary(self) -> str:
        return self.keys[CANONICAL]

    @property
    def sizes(self) -> dict[str, str]:
        return {d.name: d.key for d in self.derivatives if d.name != CANONICAL}

    def get(self, name: str) -> Derivative | None:
        for derivative in self.derivatives:
            if derivative.name == name:
                return derivative
        return None

    def all_keys(self) -> list[str]:
        """Every stored key, original first when retained."""
        keys = [self.original] if self.original else []
        keys.extend(d.key for d in self.derivatives)
        return keys

    def to_dict(self) -> dict[str, object]:
        return {
            "webp": self.primary,
            "original": self.original,
            "sizes": self.sizes,
            "fingerprint": self.fingerprint,
        }
