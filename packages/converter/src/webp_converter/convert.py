"""
Derivative pipeline: one source image in, a committed set of WebP blobs out.

A request moves through these stages:
1. validating  - format and emptiness checks, nothing touched yet
2. decoding    - a single decode shared read-only by every derivative
3. fanning_out - resize + encode tasks submitted to a thread pool
4. collecting  - wait for every task; any failure aborts the request
5. committing  - sequential store writes, rolled back on failure

Nothing is written before stage 5, so a request that fails or is cancelled
earlier leaves the store untouched.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

from webp_shared.models import Derivative, DerivativeSpec, Manifest, SourceImage
from webp_shared.policy import Policy
from webp_shared.storage import BlobStore, StoreError

from .codec import CodecError, RasterImage, UnsupportedFormat, decode, encode_webp
from .errors import ErrorKind, PipelineError, Stage, ValidationError
from .naming import TokenSource, base_name, original_key, primary_key, random_token, sized_key
from .resample import resize

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


class JobCancelled(Exception):
    """Raised by a render task that was abandoned before it started."""


class _CommitCancelled(Exception):
    pass


@dataclass
class RenderedDerivative:
    """Encoded bytes of one derivative, not yet stored."""
    spec: DerivativeSpec
    data: bytes
    width: int
    height: int


def render_derivative(
    raster: RasterImage,
    spec: DerivativeSpec,
    quality: int,
    resample: str = "bicubic",
) -> RenderedDerivative:
    """Encode the canonical derivative, or resize then encode a sized one."""
    if spec.target_width is None:
        data = encode_webp(raster, quality)
        return RenderedDerivative(spec, data, raster.width, raster.height)

    with resize(raster, spec.target_width, resample) as resized:
        data = encode_webp(resized, quality)
        return RenderedDerivative(spec, data, resized.width, resized.height)


class ConversionJob:
    """
    State of a single conversion request.

    The source is borrowed for the duration of ``run``; the decoded raster
    is released before ``run`` returns on every path.
    """

    def __init__(
        self,
        store: BlobStore,
        source: SourceImage,
        directory: str,
        base_name_hint: str,
        policy: Policy,
        *,
        token: str,
        max_workers: int,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ):
        self._store = store
        self._cancel = cancel_event or threading.Event()
        self._abandon = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

        self.source = source
        self.directory = directory
        self.policy = policy
        self.base_name = base_name(base_name_hint, token)
        self.max_workers = max_workers
        self.specs = policy.derivative_specs()
        self.stage: Stage = "validating"

    def should_stop(self) -> bool:
        """Check if the caller cancelled or the deadline passed."""
        if self._cancel.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def run(self) -> Manifest:
        """Execute the conversion and return its manifest."""
        started = time.perf_counter()
        self._validate()

        self._enter("decoding")
        if self.should_stop():
            raise self._error("cancelled", "Conversion cancelled before decoding")

        with self._decode() as raster:
            rendered = self._render_all(raster)

        manifest = self._commit(rendered)
        logger.info(
            "Converted %s: %d derivative(s)%s in %.2fs",
            self.base_name,
            len(manifest.derivatives),
            " + original" if manifest.original else "",
            time.perf_counter() - started,
        )
        return manifest

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        logger.debug("%s: %s", self.base_name, stage)

    def _error(self, kind: ErrorKind, message: str, **details: object) -> PipelineError:
        return PipelineError(kind, self.stage, message, **details)  # type: ignore[arg-type]

    def _validate(self) -> None:
        if not self.policy.allows(self.source.format):
            allowed = ", ".join(sorted(self.policy.allowed_formats))
            raise ValidationError(
                "unsupported_format",
                f"Format {self.source.format!r} is not allowed (allowed: {allowed})",
            )
        if not self.source.data:
            raise ValidationError("empty_input", "Source image is empty")

    def _decode(self) -> RasterImage:
        try:
            return decode(self.source.data, self.source.format)
        except UnsupportedFormat as e:
            raise self._error("unsupported_format", str(e)) from e
        except CodecError as e:
            raise self._error("corrupt_input", str(e)) from e

    def _render_task(self, raster: RasterImage, spec: DerivativeSpec) -> RenderedDerivative:
        if self._abandon.is_set() or self.should_stop():
            raise JobCancelled(spec.name)
        started = time.perf_counter()
        rendered = render_derivative(raster, spec, self.policy.quality, self.policy.resample)
        logger.debug(
            "%s: rendered %s %dx%d (%d bytes) in %.3fs",
            self.base_name, spec.name, rendered.width, rendered.height,
            len(rendered.data), time.perf_counter() - started,
        )
        return rendered

    def _render_all(self, raster: RasterImage) -> list[RenderedDerivative]:
        self._enter("fanning_out")
        workers = max(1, min(self.max_workers, len(self.specs)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webp-derivative")
        futures: dict[Future[RenderedDerivative], DerivativeSpec] = {}
        try:
            for spec in self.specs:
                futures[executor.submit(self._render_task, raster, spec)] = spec
            self._enter("collecting")
            self._collect(futures)
        finally:
            # Running tasks still read the raster; wait for them before it is closed.
            executor.shutdown(wait=True, cancel_futures=True)
        return [future.result() for future in futures]

    def _collect(self, futures: dict[Future[RenderedDerivative], DerivativeSpec]) -> None:
        pending: set[Future[RenderedDerivative]] = set(futures)
        while pending:
            done, pending = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_EXCEPTION)
            if any(f.exception() is not None for f in done):
                break
            if pending and self.should_stop():
                break

        if pending:
            self._abandon.set()
            for future in pending:
                future.cancel()
            wait(pending)

        for future, spec in futures.items():
            if future.cancelled():
                continue
            exc = future.exception()
            if exc is not None and not isinstance(exc, JobCancelled):
                raise self._error(
                    "derivative_failed",
                    f"Derivative {spec.name!r} failed: {exc}",
                    derivative=spec.name,
                ) from exc

        if self.should_stop() or any(
            f.cancelled() or isinstance(f.exception(), JobCancelled) for f in futures
        ):
            raise self._error("cancelled", "Conversion cancelled before commit")

    def _key_for(self, spec: DerivativeSpec) -> str:
        if spec.is_canonical:
            return primary_key(self.directory, self.base_name)
        return sized_key(self.directory, self.base_name, spec.name)

    def _commit(self, rendered: list[RenderedDerivative]) -> Manifest:
        self._enter("committing")

        plan: list[tuple[str, bytes]] = []
        original: str | None = None
        if self.policy.keep_original:
            original = original_key(self.directory, self.base_name, self.source.format)
            plan.append((original, self.source.data))

        derivatives: list[Derivative] = []
        for item in rendered:
            key = self._key_for(item.spec)
            plan.append((key, item.data))
            derivatives.append(
                Derivative(item.spec.name, key, item.width, item.height, len(item.data))
            )

        if self.should_stop():
            raise self._error("cancelled", "Conversion cancelled before commit")

        try:
            taken = [key for key, _ in plan if self._store.exists(key)]
        except StoreError as e:
            raise self._error("store_failure", str(e), key=e.key) from e
        if taken:
            raise self._error(
                "key_collision",
                f"Refusing to overwrite existing key(s): {', '.join(taken)}",
                key=taken[0],
            )

        written: list[str] = []
        try:
            self._write_all(plan, written)
        except StoreError as e:
            incomplete = self._rollback(written)
            raise self._error(
                "store_failure", str(e), key=e.key, rollback_incomplete=incomplete
            ) from e
        except _CommitCancelled:
            incomplete = self._rollback(written)
            raise self._error(
                "cancelled", "Conversion cancelled during commit",
                rollback_incomplete=incomplete,
            ) from None
        except BaseException:
            self._rollback(written)
            raise

        return Manifest(
            base_name=self.base_name,
            derivatives=tuple(derivatives),
            original=original,
            fingerprint=self.source.fingerprint(),
        )

    def _write_all(self, plan: list[tuple[str, bytes]], written: list[str]) -> None:
        for key, data in plan:
            if self.should_stop():
                raise _CommitCancelled()
            self._store.put(key, data)
            written.append(key)

        for key, _ in plan:
            if not self._store.exists(key):
                raise StoreError(key, "put", "blob missing after write")

    def _rollback(self, written: list[str]) -> bool:
        """Delete ``written`` newest first. Returns True if any delete failed."""
        incomplete = False
        for key in reversed(written):
            try:
                self._store.delete(key)
            except (StoreError, OSError) as e:
                incomplete = True
                logger.warning("Rollback could not delete %s: %s", key, e)
        if written:
            logger.info(
                "Rolled back %s: %d blob(s)%s",
                self.base_name, len(written), ", some left behind" if incomplete else "",
            )
        return incomplete


class DerivativePipeline:
    """
    Converts uploads into WebP derivatives stored in ``store``.

    ``max_workers`` bounds the number of derivatives rendered at once
    (default: CPU count). The pipeline keeps no per-request state, so one
    instance can serve concurrent calls.
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        token_source: TokenSource | None = None,
        max_workers: int | None = None,
    ):
        if max_workers is None:
            max_workers = os.cpu_count() or 1
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.store = store
        self.token_source = token_source or random_token
        self.max_workers = max_workers

    def convert(
        self,
        source: SourceImage,
        directory: str,
        base_name_hint: str,
        policy: Policy,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Manifest:
        """
        Convert ``source`` and store every derivative under ``directory``.

        Raises:
            ValidationError: format not allowed or empty input; store untouched
            PipelineError: decode, render, store failure or cancellation
        """
        job = ConversionJob(
            self.store,
            source,
            directory,
            base_name_hint,
            policy,
            token=self.token_source(),
            max_workers=self.max_workers,
            cancel_event=cancel_event,
            timeout=timeout,
        )
        return job.run()


def convert(
    source: SourceImage,
    directory: str,
    base_name_hint: str,
    policy: Policy,
    *,
    store: BlobStore,
    token_source: TokenSource | None = None,
    max_workers: int | None = None,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> Manifest:
    """One-shot conversion without keeping a pipeline around."""
    pipeline = DerivativePipeline(store, token_source=token_source, max_workers=max_workers)
    return pipeline.convert(
        source, directory, base_name_hint, policy,
        cancel_event=cancel_event, timeout=timeout,
    )
