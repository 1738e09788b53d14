"""Custom exception types used by the ai302 adapters and task engine.

Every failure raised by this package belongs to exactly one ``kind`` so
callers can tell "upstream said no" apart from "we gave up waiting":

``transport``
    network failure or a non-2xx HTTP status.
``upstream``
    explicit error payload or a failed task status reported by the API.
``malformed-frame``
    a streaming frame that failed validation (reported in-band).
``timeout``
    the task poller exhausted its budget.
``cancelled``
    the caller triggered the abort signal.
"""

from __future__ import annotations

from typing import Any, ClassVar


class AdapterError(RuntimeError):
    """Raised when an adapter cannot fulfil a request."""

    kind: ClassVar[str] = "adapter"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class TransportError(AdapterError):
    """Network failure or unsuccessful HTTP status."""

    kind = "transport"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.body = body


class ArtifactDownloadError(TransportError):
    """Raised when a generated artifact cannot be downloaded."""

    def __init__(self, url: str, status_code: int, reason: str) -> None:
        super().__init__(
            f"Failed to download artifact: {status_code} {reason}".rstrip(),
            status_code=status_code,
            url=url,
        )
        self.reason = reason


class UpstreamError(AdapterError):
    """The API answered but reported a failure."""

    kind = "upstream"

    def __init__(self, message: str, *, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class TaskFailedError(UpstreamError):
    """An asynchronous generation task reached a failed state."""

    def __init__(self, task_id: str, reason: str | None = None, *, payload: Any = None) -> None:
        super().__init__(f"Task {task_id} failed: {reason or 'Unknown error'}", payload=payload)
        self.task_id = task_id
        self.reason = reason


class FrameParseError(AdapterError):
    """A streaming frame could not be parsed or validated."""

    kind = "malformed-frame"

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class PollingTimeoutError(AdapterError):
    """The task poller gave up before the task reached a terminal state."""

    kind = "timeout"

    def __init__(self, task_id: str, *, attempts: int, elapsed: float) -> None:
        super().__init__(f"Task polling timed out after {attempts} attempts: {task_id}")
        self.task_id = task_id
        self.attempts = attempts
        self.elapsed = elapsed


class CallAbortedError(AdapterError):
    """The caller cancelled the request through its abort signal."""

    kind = "cancelled"


class UnsupportedModelError(AdapterError, ValueError):
    """Raised when a model identifier has no registered handler."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unsupported model: {model_id}")
        self.model_id = model_id


__all__ = [
    "AdapterError",
    "ArtifactDownloadError",
    "CallAbortedError",
    "FrameParseError",
    "PollingTimeoutError",
    "TaskFailedError",
    "TransportError",
    "UnsupportedModelError",
    "UpstreamError",
]
