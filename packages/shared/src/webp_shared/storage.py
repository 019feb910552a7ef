"""
Blob stores the pipeline writes derivatives into.

The pipeline only depends on the ``BlobStore`` protocol. The two stores here
cover tests (``MemoryBlobStore``) and local disks (``LocalBlobStore``).
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from .files import is_in_dir

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


class StoreError(Exception):
    """Raised when a store operation fails."""

    def __init__(self, key: str, operation: str, message: str = ""):
        self.key = key
        self.operation = operation
        super().__init__(f"{operation} {key!r} failed" + (f": {message}" if message else ""))


@runtime_checkable
class BlobStore(Protocol):
    def put(self, key: str, data: bytes) -> None: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def url(self, key: str) -> str: ...


@runtime_checkable
class ReadableBlobStore(BlobStore, Protocol):
    def read(self, key: str) -> bytes: ...


def _join_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/{key.lstrip('/')}"


class MemoryBlobStore:
    """Dict-backed store. Safe to share between threads."""

    def __init__(self, base_url: str = ""):
        self.base_url = base_url
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._blobs[key] = bytes(data)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs

    def delete(self, key: str) -> None:
        with self._lock:
            self._blobs.pop(key, None)

    def read(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[key]
            except KeyError:
                raise StoreError(key, "read", "no such key") from None

    def url(self, key: str) -> str:
        return _join_url(self.base_url, key)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._blobs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


class LocalBlobStore:
    """
    Store keys as files below ``root``.

    Writes go to a temp file in the target directory and are moved into place
    with ``os.replace``, so a key is either absent or complete.
    """

    def __init__(self, root: Path | str, base_url: str = ""):
        self.root = Path(root)
        self.base_url = base_url
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key or key.startswith("/") or "\\" in key:
            raise StoreError(key, "resolve", "invalid key")
        path = self.root / key
        if not is_in_dir(self.root, path) or path.resolve() == self.root.resolve():
            logger.warning("Path traversal attempt: %s", key)
            raise StoreError(key, "resolve", "key escapes store root")
        return path

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=path.parent, prefix=TEMP_PREFIX, delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StoreError(key, "put", str(e)) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        logger.debug("Stored %s (%d bytes)", key, len(data))

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(key, "delete", str(e)) from e

    def read(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StoreError(key, "read", str(e)) from e

    def url(self, key: str) -> str:
        if self.base_url:
            return _join_url(self.base_url, key)
        return self._path(key).resolve().as_uri()

    def keys(self) -> list[str]:
        """All stored keys, temp files excluded."""
        return sorted(
            path.relative_to(self.root).as_posix()
            for path in self.root.rglob("*")
            if path.is_file() and not path.name.startswith(TEMP_PREFIX)
        )
