from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest
from werkzeug.datastructures import FileStorage

from webp_converter import DerivativePipeline, PipelineError
from webp_shared.models import SourceImage
from webp_shared.policy import Policy
from webp_shared.storage import MemoryBlobStore
from webp_uploader.hooks import (
    ImageField,
    WebPAttributeHook,
    convert_stored_file,
    convert_stored_file_with_sizes,
    webp_url,
)
from webp_uploader.sources import is_upload, source_from_path, source_from_upload

POLICY = Policy(sizes=(("thumbnail", 150), ("medium", 500)), keep_original=False)


def _upload(data: bytes, filename: str) -> FileStorage:
    return FileStorage(stream=io.BytesIO(data), filename=filename)


def test_source_from_upload_reads_filestorage(jpeg_bytes: bytes) -> None:
    source = source_from_upload(_upload(jpeg_bytes, "Holiday Pic.JPG"))
    assert source is not None
    assert source.data == jpeg_bytes
    assert source.format == "jpg"
    assert source.stem == "Holiday_Pic"


def test_source_from_upload_ignores_plain_values() -> None:
    assert source_from_upload("images/already_stored.webp") is None
    assert source_from_upload(None) is None
    assert source_from_upload(Path("uploads/photo.jpg")) is None
    assert not is_upload("images/already_stored.webp")


def test_source_from_path(tmp_path: Path, make_image) -> None:
    path = tmp_path / "banner.png"
    path.write_bytes(make_image(20, 10, "PNG"))
    source = source_from_path(path)
    assert source.format == "png"
    assert source.stem == "banner"


def test_hook_swaps_upload_for_stored_keys(jpeg_bytes: bytes, store: MemoryBlobStore, token) -> None:
    hook = WebPAttributeHook(
        DerivativePipeline(store, token_source=token),
        POLICY,
        table="users",
        fields=[ImageField("avatar", size_columns={"thumbnail": "avatar_thumb"})],
    )

    assignments = hook("avatar", _upload(jpeg_bytes, "me.jpg"))

    assert assignments == {
        "avatar": "users/avatar/me_tok.webp",
        "avatar_thumb": "users/avatar/me_tok_thumbnail.webp",
    }
    assert store.exists("users/avatar/me_tok_medium.webp")


def test_hook_uses_custom_directory(jpeg_bytes: bytes, store: MemoryBlobStore, token) -> None:
    hook = WebPAttributeHook(
        DerivativePipeline(store, token_source=token),
        POLICY,
        table="posts",
        fields=[ImageField("cover", directory="covers")],
    )
    assert hook("cover", _upload(jpeg_bytes, "c.jpeg")) == {"cover": "covers/c_tok.webp"}


def test_hook_passes_through_other_values(jpeg_bytes: bytes, store: MemoryBlobStore) -> None:
    hook = WebPAttributeHook(DerivativePipeline(store), POLICY, "users", ["avatar"])

    assert hook("avatar", "users/avatar/existing.webp") == {"avatar": "users/avatar/existing.webp"}
    upload = _upload(jpeg_bytes, "x.jpg")
    assert hook("name", upload) == {"name": upload}
    assert hook.should_convert("avatar", upload)
    assert not hook.should_convert("name", upload)
    assert not hook.should_convert("avatar", "users/avatar/existing.webp")
    assert len(store) == 0


def test_hook_propagates_pipeline_errors(store: MemoryBlobStore) -> None:
    hook = WebPAttributeHook(DerivativePipeline(store), POLICY, "users", ["avatar"])
    with pytest.raises(PipelineError):
        hook("avatar", _upload(b"GIF89a", "anim.gif"))
    assert len(store) == 0


def test_webp_url() -> None:
    store = MemoryBlobStore(base_url="/storage")
    record = {"avatar": "users/avatar/a.webp", "avatar_thumb": "users/avatar/a_thumb.webp"}
    columns = {"thumbnail": "avatar_thumb"}

    assert webp_url(store, record, "avatar") == "/storage/users/avatar/a.webp"
    assert webp_url(store, record, "avatar", "thumbnail", columns) == "/storage/users/avatar/a_thumb.webp"
    assert webp_url(store, record, "avatar", "medium", columns) == "/storage/users/avatar/a.webp"
    assert webp_url(store, {"avatar": None}, "avatar") is None


def test_convert_stored_file(jpeg_bytes: bytes, store: MemoryBlobStore, token) -> None:
    store.put("uploads/cat.jpg", jpeg_bytes)
    pipeline = DerivativePipeline(store, token_source=token)

    key = convert_stored_file(pipeline, store, "uploads/cat.jpg", POLICY)

    assert key == "uploads/cat_tok.webp"
    assert store.exists(key)
    assert not store.exists("uploads/cat.jpg")


def test_convert_stored_file_keeps_source_when_configured(
    jpeg_bytes: bytes, store: MemoryBlobStore, token
) -> None:
    store.put("uploads/cat.jpg", jpeg_bytes)
    policy = Policy(sizes=(), keep_original=True)

    result = convert_stored_file_with_sizes(
        DerivativePipeline(store, token_source=token), store, "uploads/cat.jpg", policy, "webp"
    )

    assert result == {
        "webp": "webp/cat_tok.webp",
        "original": "webp/cat_tok.jpg",
        "sizes": {},
        "fingerprint": SourceImage(jpeg_bytes, "jpg").fingerprint(),
    }
    assert store.exists("uploads/cat.jpg")


def test_convert_stored_file_falls_back_on_error(
    store: MemoryBlobStore, caplog: pytest.LogCaptureFixture
) -> None:
    store.put("uploads/broken.png", b"not a png")
    pipeline = DerivativePipeline(store)

    with caplog.at_level(logging.ERROR, logger="webp_uploader.hooks"):
        key = convert_stored_file(pipeline, store, "uploads/broken.png", POLICY)

    assert key == "uploads/broken.png"
    assert store.keys() == ["uploads/broken.png"]
    assert "WebP conversion failed" in caplog.text


def test_convert_stored_file_skips_unconvertible(store: MemoryBlobStore) -> None:
    pipeline = DerivativePipeline(store)
    assert convert_stored_file(pipeline, store, None, POLICY) is None
    assert convert_stored_file(pipeline, store, "docs/readme.txt", POLICY) == "docs/readme.txt"
    assert convert_stored_file(pipeline, store, "missing.png", POLICY) == "missing.png"
    assert convert_stored_file_with_sizes(pipeline, store, "missing.png", POLICY) == {
        "webp": "missing.png",
        "original": None,
        "sizes": {},
    }
