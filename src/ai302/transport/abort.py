"""Cooperative cancellation helpers built on :class:`asyncio.Event`."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable
from typing import Optional, TypeVar

from ..core.errors import CallAbortedError

T = TypeVar("T")

AbortSignal = asyncio.Event
"""Set the event to cancel every pending and future network call of a request."""


def raise_if_aborted(signal: Optional[AbortSignal], message: str = "Request aborted") -> None:
    if signal is not None and signal.is_set():
        raise CallAbortedError(message)


async def sleep_or_abort(
    delay: float,
    signal: Optional[AbortSignal],
    message: str = "Request aborted",
) -> None:
    """Sleep for ``delay`` seconds, waking early if ``signal`` is set."""

    if signal is None:
        await asyncio.sleep(delay)
        return

    raise_if_aborted(signal, message)
    try:
        await asyncio.wait_for(signal.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise CallAbortedError(message)


async def run_abortable(
    awaitable: Awaitable[T],
    signal: Optional[AbortSignal],
    message: str = "Request aborted",
) -> T:
    """Await ``awaitable`` unless ``signal`` fires first."""

    if signal is None:
        return await awaitable

    if signal.is_set():
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise CallAbortedError(message)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise CallAbortedError(message)


__all__ = ["AbortSignal", "raise_if_aborted", "run_abortable", "sleep_or_abort"]
