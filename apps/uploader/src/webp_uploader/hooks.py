"""
Persistence-side adapters around the derivative pipeline.

``WebPAttributeHook`` is called by the host right before a record is saved:
it receives the attribute name and the assigned value and returns the
assignments to persist instead. Uploaded files become the canonical WebP
key; size keys go to the sibling columns configured for that attribute.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from webp_converter import DerivativePipeline, PipelineError
from webp_shared.files import format_from_filename
from webp_shared.models import Manifest, SourceImage
from webp_shared.policy import Policy
from webp_shared.storage import BlobStore, ReadableBlobStore, StoreError

from .sources import is_upload, source_from_upload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageField:
    """An attribute whose uploads are converted."""

    name: str
    directory: str | None = None
    size_columns: Mapping[str, str] = field(default_factory=dict)


class WebPAttributeHook:
    """Swaps uploaded files for stored WebP keys before a record is persisted."""

    def __init__(
        self,
        pipeline: DerivativePipeline,
        policy: Policy,
        table: str,
        fields: Iterable[ImageField | str],
    ):
        self._pipeline = pipeline
        self._policy = policy
        self.table = table
        self._fields: dict[str, ImageField] = {}
        for item in fields:
            image_field = ImageField(item) if isinstance(item, str) else item
            self._fields[image_field.name] = image_field

    def should_convert(self, key: str, value: Any) -> bool:
        return key in self._fields and is_upload(value)

    def directory_for(self, key: str) -> str:
        image_field = self._fields.get(key)
        if image_field is not None and image_field.directory:
            return image_field.directory
        return f"{self.table}/{key}"

    def size_columns(self, key: str) -> Mapping[str, str]:
        image_field = self._fields.get(key)
        return image_field.size_columns if image_field is not None else {}

    def __call__(self, key: str, value: Any) -> dict[str, Any]:
        """
        Return the assignments to persist for ``key = value``.

        Values that are not uploads, or keys that are not configured, pass
        through unchanged. Pipeline errors propagate to the caller.
        """
        if not self.should_convert(key, value):
            return {key: value}
        source = source_from_upload(value)

        manifest = self._pipeline.convert(
            source, self.directory_for(key), source.stem, self._policy
        )

        assignments: dict[str, Any] = {key: manifest.primary}
        for size_name, column in self.size_columns(key).items():
            size_key = manifest.sizes.get(size_name)
            if size_key is not None:
                assignments[column] = size_key
        return assignments


def webp_url(
    store: BlobStore,
    record: Mapping[str, Any],
    attribute: str,
    size: str | None = None,
    size_columns: Mapping[str, str] | None = None,
) -> str | None:
    """Public URL of a stored attribute, or of one of its sizes."""
    column = attribute
    if size and size_columns and size in size_columns:
        column = size_columns[size]
    path = record.get(column)
    if not path:
        return None
    return store.url(path)


def _convert_stored(
    pipeline: DerivativePipeline,
    store: ReadableBlobStore,
    key: str,
    policy: Policy,
    directory: str | None,
) -> Manifest | None:
    fmt = format_from_filename(key)
    if not policy.allows(fmt):
        return None
    if not store.exists(key):
        return None

    source = SourceImage(data=store.read(key), format=fmt, filename=posixpath.basename(key))
    target = directory if directory is not None else posixpath.dirname(key)
    manifest = pipeline.convert(source, target, source.stem, policy)

    if not policy.keep_original:
        try:
            store.delete(key)
        except StoreError as e:
            logger.warning("Could not delete converted upload %s: %s", key, e)
    return manifest


def convert_stored_file(
    pipeline: DerivativePipeline,
    store: ReadableBlobStore,
    key: str | None,
    policy: Policy,
    directory: str | None = None,
) -> str | None:
    """
    Convert an upload that is already in ``store``.

    Returns the canonical WebP key. On any conversion or store failure the
    original ``key`` is returned and the failure is logged. Keys with a
    format the policy doesn't allow, or that don't exist, come back as-is.
    """
    if not key:
        return None
    try:
        manifest = _convert_stored(pipeline, store, key, policy, directory)
    except (PipelineError, StoreError) as e:
        logger.error("WebP conversion failed for %s: %s", key, e)
        return key
    return manifest.primary if manifest is not None else key


def convert_stored_file_with_sizes(
    pipeline: DerivativePipeline,
    store: ReadableBlobStore,
    key: str | None,
    policy: Policy,
    directory: str | None = None,
) -> dict[str, Any] | None:
    """Like ``convert_stored_file`` but returns the manifest as a dict."""
    if not key:
        return None
    fallback: dict[str, Any] = {"webp": key, "original": None, "sizes": {}}
    try:
        manifest = _convert_stored(pipeline, store, key, policy, directory)
    except (PipelineError, StoreError) as e:
        logger.error("WebP conversion failed for %s: %s", key, e)
        return fallback
    return manifest.to_dict() if manifest is not None else fallback
