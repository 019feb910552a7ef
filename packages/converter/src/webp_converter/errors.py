"""Errors surfaced by the derivative pipeline."""

from __future__ import annotations

from typing import Literal

Stage = Literal["validating", "decoding", "fanning_out", "collecting", "committing"]
ErrorKind = Literal[
    "unsupported_format",
    "empty_input",
    "corrupt_input",
    "derivative_failed",
    "key_collision",
    "store_failure",
    "cancelled",
]


class PipelineError(RuntimeError):
    """
    A conversion request failed.

    ``stage`` is where it stopped, ``kind`` why. ``derivative`` names the
    failed derivative for ``derivative_failed``; ``key`` the offending key
    for store errors. ``rollback_incomplete`` is set when blobs written
    before the failure could not all be deleted again.
    """

    def __init__(
        self,
        kind: ErrorKind,
        stage: Stage,
        message: str,
        *,
        derivative: str | None = None,
        key: str | None = None,
        rollback_incomplete: bool = False,
    ):
        self.kind = kind
        self.stage = stage
        self.derivative = derivative
        self.key = key
        self.rollback_incomplete = rollback_incomplete
        super().__init__(message)

    def __str__(self) -> str:
        text = f"[{self.stage}/{self.kind}] {super().__str__()}"
        if self.rollback_incomplete:
            text += " (rollback incomplete)"
        return text


class ValidationError(PipelineError):
    """The request was rejected before any work started."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(kind, "validating", message)
