from __future__ import annotations

import asyncio
import logging
from typing import Any, List

import pytest

from ai302.core.errors import CallAbortedError, PollingTimeoutError, TaskFailedError, TransportError
from ai302.tasks.poller import PollSettings, StatusKind, TaskHandle, TaskStatus, poll_task


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class ScriptedStatus:
    """Status endpoint replaying ``replies``; the last one repeats."""

    def __init__(self, *replies: Any) -> None:
        self._replies = list(replies)
        self.calls = 0

    async def __call__(self, handle: TaskHandle) -> Any:
        self.calls += 1
        reply = self._replies[min(self.calls, len(self._replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply


def normalize(payload: Any) -> TaskStatus:
    status = payload["status"]
    if status == "succeeded":
        return TaskStatus.succeeded(payload.get("url"), raw=payload)
    if status == "failed":
        return TaskStatus.failed(payload.get("error"), raw=payload)
    return TaskStatus.pending(payload)


def _handle(**settings: Any) -> TaskHandle:
    values: dict[str, Any] = {"interval": 1.0, "max_attempts": 5}
    values.update(settings)
    return TaskHandle(task_id="T1", status_url="https://api.test/tasks/T1", settings=PollSettings(**values))


def _poll(handle: TaskHandle, fetch: ScriptedStatus, clock: FakeClock, **kwargs: Any) -> TaskStatus:
    return asyncio.run(
        poll_task(
            handle,
            fetch_status=fetch,
            normalize=normalize,
            clock=clock,
            sleep=clock.sleep,
            **kwargs,
        )
    )


def test_terminal_first_response_returns_without_sleeping() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus({"status": "succeeded", "url": "https://cdn.test/U"})

    status = _poll(_handle(), fetch, clock)

    assert status.kind is StatusKind.SUCCEEDED
    assert status.artifact_urls == ("https://cdn.test/U",)
    assert fetch.calls == 1
    assert clock.sleeps == []


def test_pending_until_success_sleeps_the_fixed_interval() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus(
        {"status": "queued"},
        {"status": "processing"},
        {"status": "succeeded", "url": "https://cdn.test/U"},
    )

    status = _poll(_handle(interval=2.5), fetch, clock)

    assert status.raw == {"status": "succeeded", "url": "https://cdn.test/U"}
    assert fetch.calls == 3
    assert clock.sleeps == [2.5, 2.5]


def test_attempt_budget_is_never_exceeded() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus({"status": "processing"})

    with pytest.raises(PollingTimeoutError) as excinfo:
        _poll(_handle(max_attempts=3), fetch, clock)

    assert fetch.calls == 3
    assert excinfo.value.attempts == 3
    assert excinfo.value.kind == "timeout"
    assert "T1" in str(excinfo.value)
    # No sleep follows the last attempt.
    assert clock.sleeps == [1.0, 1.0]


def test_wall_clock_budget_times_out() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus({"status": "processing"})

    with pytest.raises(PollingTimeoutError) as excinfo:
        _poll(_handle(interval=2.0, max_attempts=None, max_wait=5.0), fetch, clock)

    assert fetch.calls == 4
    assert excinfo.value.elapsed == pytest.approx(6.0)


def test_initial_delay_precedes_the_first_query() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus({"status": "succeeded", "url": "u"})

    _poll(_handle(initial_delay=0.5), fetch, clock)

    assert clock.sleeps == [0.5]


def test_failed_status_raises_with_task_id_and_reason() -> None:
    clock = FakeClock()
    payload = {"status": "failed", "error": "content policy"}
    fetch = ScriptedStatus({"status": "processing"}, payload)

    with pytest.raises(TaskFailedError) as excinfo:
        _poll(_handle(), fetch, clock)

    assert "T1" in str(excinfo.value)
    assert "content policy" in str(excinfo.value)
    assert excinfo.value.task_id == "T1"
    assert excinfo.value.payload == payload
    assert excinfo.value.kind == "upstream"


def test_success_without_artifact_url_keeps_polling() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus(
        {"status": "succeeded"},
        {"status": "succeeded", "url": ""},
        {"status": "succeeded", "url": "https://cdn.test/U"},
    )

    status = _poll(_handle(), fetch, clock)

    assert fetch.calls == 3
    assert status.artifact_urls == ("https://cdn.test/U",)


def test_retryable_status_counts_as_attempt_and_is_retried(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger="ai302.tasks.poller")
    clock = FakeClock()
    fetch = ScriptedStatus(
        TransportError("Service Unavailable", status_code=503),
        {"status": "succeeded", "url": "u"},
    )

    status = _poll(_handle(), fetch, clock)

    assert status.kind is StatusKind.SUCCEEDED
    assert fetch.calls == 2
    assert clock.sleeps == [1.0]
    assert "503" in caplog.text


def test_retryable_statuses_still_respect_the_budget() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus(TransportError("Service Unavailable", status_code=503))

    with pytest.raises(PollingTimeoutError):
        _poll(_handle(max_attempts=2), fetch, clock)
    assert fetch.calls == 2


def test_other_transport_errors_propagate_immediately() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus(TransportError("boom", status_code=500))

    with pytest.raises(TransportError, match="boom"):
        _poll(_handle(), fetch, clock)
    assert fetch.calls == 1


def test_retryable_codes_are_configurable() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus(TransportError("Service Unavailable", status_code=503))

    with pytest.raises(TransportError):
        _poll(_handle(retryable_status_codes=frozenset()), fetch, clock)
    assert fetch.calls == 1


def test_abort_before_first_query_issues_no_request() -> None:
    clock = FakeClock()
    fetch = ScriptedStatus({"status": "processing"})
    signal = asyncio.Event()
    signal.set()

    with pytest.raises(CallAbortedError) as excinfo:
        _poll(_handle(), fetch, clock, abort_signal=signal)

    assert fetch.calls == 0
    assert excinfo.value.kind == "cancelled"


def test_abort_is_observed_before_every_following_query() -> None:
    clock = FakeClock()
    signal = asyncio.Event()

    async def fetch(handle: TaskHandle) -> Any:
        signal.set()
        return {"status": "processing"}

    with pytest.raises(CallAbortedError):
        asyncio.run(
            poll_task(
                _handle(),
                fetch_status=fetch,
                normalize=normalize,
                abort_signal=signal,
                clock=clock,
                sleep=clock.sleep,
            )
        )
    assert clock.sleeps == [1.0]


def test_abort_wakes_the_interval_sleep() -> None:
    fetch = ScriptedStatus({"status": "processing"})

    async def _run() -> None:
        signal = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, signal.set)
        await poll_task(
            _handle(interval=30.0),
            fetch_status=fetch,
            normalize=normalize,
            abort_signal=signal,
        )

    with pytest.raises(CallAbortedError, match="Task polling aborted"):
        asyncio.run(asyncio.wait_for(_run(), timeout=5))
    assert fetch.calls == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"interval": -1.0, "max_attempts": 1},
        {"interval": 1.0},
        {"interval": 1.0, "max_attempts": 0},
        {"interval": 1.0, "max_wait": 10.0, "initial_delay": -0.1},
    ],
)
def test_poll_settings_validation(kwargs: dict[str, Any]) -> None:
    with pytest.raises(ValueError):
        PollSettings(**kwargs)


def test_succeeded_status_accepts_single_url_or_list() -> None:
    assert TaskStatus.succeeded("u").artifact_urls == ("u",)
    assert TaskStatus.succeeded(["a", None, "", "b"]).artifact_urls == ("a", "b")
    assert not TaskStatus.succeeded(None).terminal
    assert TaskStatus.failed("x").terminal
    assert not TaskStatus.pending().terminal
