"""Fixed-interval polling of asynchronous generation tasks.

Every asynchronous backend follows the same state machine: submit, then
re-query a status endpoint until the task is terminal. Backends only differ
in their status vocabulary, which each one maps onto :class:`TaskStatus`
through the ``normalize`` callable handed to :func:`poll_task`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..core.errors import PollingTimeoutError, TaskFailedError, TransportError
from ..transport.abort import AbortSignal, raise_if_aborted, sleep_or_abort
from ..transport.http import HttpTransport

LOGGER = logging.getLogger(__name__)

ABORT_MESSAGE = "Task polling aborted"
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({503})


class StatusKind(str, Enum):
    PENDING = "pending"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


@dataclass(frozen=True, slots=True)
class TaskStatus:
    """Backend status normalized onto ``pending``, ``failed`` or ``succeeded``."""

    kind: StatusKind
    artifact_urls: tuple[str, ...] = ()
    reason: Optional[str] = None
    raw: Any = None

    @classmethod
    def pending(cls, raw: Any = None) -> "TaskStatus":
        return cls(StatusKind.PENDING, raw=raw)

    @classmethod
    def failed(cls, reason: str | None = None, raw: Any = None) -> "TaskStatus":
        return cls(StatusKind.FAILED, reason=reason, raw=raw)

    @classmethod
    def succeeded(cls, urls: Any, raw: Any = None) -> "TaskStatus":
        if isinstance(urls, str):
            urls = [urls]
        cleaned = tuple(url for url in (urls or ()) if isinstance(url, str) and url)
        return cls(StatusKind.SUCCEEDED, artifact_urls=cleaned, raw=raw)

    @property
    def terminal(self) -> bool:
        # A success flag without any artifact URL is published early by some backends.
        if self.kind is StatusKind.SUCCEEDED:
            return bool(self.artifact_urls)
        return self.kind is StatusKind.FAILED


@dataclass(frozen=True, slots=True)
class PollSettings:
    """Polling cadence and budget for one task.

    ``max_wait`` bounds elapsed wall-clock seconds and ``max_attempts`` bounds
    the number of status queries; at least one of them must be set.
    """

    interval: float
    max_wait: Optional[float] = None
    max_attempts: Optional[int] = None
    initial_delay: float = 0.0
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES

    def __post_init__(self) -> None:
        if self.interval < 0 or self.initial_delay < 0:
            raise ValueError("poll intervals must not be negative")
        if self.max_wait is None and self.max_attempts is None:
            raise ValueError("either max_wait or max_attempts must be provided")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass(frozen=True, slots=True)
class TaskHandle:
    """Submitted task together with the endpoint used to query its status."""

    task_id: str
    status_url: str
    settings: PollSettings
    method: str = "GET"
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


FetchStatus = Callable[[TaskHandle], Awaitable[Any]]
NormalizeStatus = Callable[[Any], TaskStatus]
Sleep = Callable[[float], Awaitable[None]]


def http_status_fetcher(
    transport: HttpTransport,
    *,
    abort_signal: AbortSignal | None = None,
) -> FetchStatus:
    """Return a ``fetch_status`` callable querying ``handle.status_url`` over HTTP."""

    async def fetch(handle: TaskHandle) -> Any:
        response = await transport.request_json(
            handle.method,
            handle.status_url,
            body=handle.body,
            headers=handle.headers,
            abort_signal=abort_signal,
        )
        return response.value

    return fetch


async def poll_task(
    handle: TaskHandle,
    *,
    fetch_status: FetchStatus,
    normalize: NormalizeStatus,
    abort_signal: AbortSignal | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep | None = None,
) -> TaskStatus:
    """Poll ``handle`` until it succeeds with an artifact, fails, or runs out of budget.

    The first query is issued immediately unless ``initial_delay`` is set.
    Transport errors with a retryable status count as an attempt and are
    retried after the regular interval; any other error propagates.

    Raises
    ------
    CallAbortedError
        ``abort_signal`` was set before a query or while sleeping.
    TaskFailedError
        The backend reported a failed task.
    PollingTimeoutError
        ``max_attempts`` queries or ``max_wait`` seconds passed without a
        terminal status.
    """

    settings = handle.settings
    if sleep is None:

        async def sleep(delay: float) -> None:
            await sleep_or_abort(delay, abort_signal, ABORT_MESSAGE)

    started = clock()
    attempts = 0

    if settings.initial_delay:
        await sleep(settings.initial_delay)

    while True:
        raise_if_aborted(abort_signal, ABORT_MESSAGE)
        attempts += 1
        LOGGER.debug("Polling task %s (attempt %d)", handle.task_id, attempts)

        try:
            payload = await fetch_status(handle)
        except TransportError as exc:
            if exc.status_code not in settings.retryable_status_codes:
                raise
            LOGGER.warning(
                "Task %s status query returned %s, retrying", handle.task_id, exc.status_code
            )
        else:
            status = normalize(payload)
            if status.kind is StatusKind.FAILED:
                raise TaskFailedError(handle.task_id, status.reason, payload=status.raw)
            if status.terminal:
                LOGGER.debug(
                    "Task %s succeeded after %d attempts", handle.task_id, attempts
                )
                return status

        elapsed = clock() - started
        if settings.max_attempts is not None and attempts >= settings.max_attempts:
            raise PollingTimeoutError(handle.task_id, attempts=attempts, elapsed=elapsed)
        if settings.max_wait is not None and elapsed >= settings.max_wait:
            raise PollingTimeoutError(handle.task_id, attempts=attempts, elapsed=elapsed)

        await sleep(settings.interval)


__all__ = [
    "ABORT_MESSAGE",
    "FetchStatus",
    "NormalizeStatus",
    "PollSettings",
    "StatusKind",
    "TaskHandle",
    "TaskStatus",
    "http_status_fetcher",
    "poll_task",
]
