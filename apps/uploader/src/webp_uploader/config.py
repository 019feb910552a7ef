"""Configuration for the WebP uploader."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from webp_shared.storage import LocalBlobStore


@dataclass(frozen=True)
class UploaderConfig:
    """Uploader configuration."""

    store_root: Path = Path("storage")
    base_url: str = ""
    directory: str = "images"
    max_workers: int | None = None

    @classmethod
    def load(cls) -> UploaderConfig:
        """Load from environment variables."""
        workers = os.getenv("WEBP_MAX_WORKERS")
        return cls(
            store_root=Path(os.getenv("WEBP_STORE_ROOT", "storage")),
            base_url=os.getenv("WEBP_BASE_URL", ""),
            directory=os.getenv("WEBP_DIRECTORY", "images"),
            max_workers=int(workers) if workers else None,
        )

    def ensure_directories(self) -> None:
        self.store_root.mkdir(parents=True, exist_ok=True)

    def open_store(self) -> LocalBlobStore:
        self.ensure_directories()
        return LocalBlobStore(self.store_root, base_url=self.base_url)
