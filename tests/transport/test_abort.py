from __future__ import annotations

import asyncio

import pytest

from ai302.core.errors import CallAbortedError
from ai302.transport.abort import run_abortable, sleep_or_abort


async def _slow_call(cleaned: list[str]) -> str:
    try:
        await asyncio.sleep(10)
    except asyncio.CancelledError:
        await asyncio.sleep(0.01)
        cleaned.append("closed")
        raise
    return "never"


def test_result_is_returned_when_signal_stays_clear() -> None:
    async def _run() -> str:
        return await run_abortable(asyncio.sleep(0, result="done"), asyncio.Event())

    assert asyncio.run(_run()) == "done"


def test_abort_cancels_and_waits_for_the_inner_call() -> None:
    cleaned: list[str] = []

    async def _run() -> None:
        signal = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, signal.set)
        with pytest.raises(CallAbortedError, match="stop"):
            await run_abortable(_slow_call(cleaned), signal, "stop")
        assert cleaned == ["closed"]

    asyncio.run(_run())


def test_outer_cancellation_waits_for_the_inner_call() -> None:
    cleaned: list[str] = []

    async def _run() -> None:
        outer = asyncio.ensure_future(run_abortable(_slow_call(cleaned), asyncio.Event()))
        await asyncio.sleep(0.01)
        outer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await outer
        assert cleaned == ["closed"]
        assert asyncio.all_tasks() == {asyncio.current_task()}

    asyncio.run(_run())


def test_set_signal_skips_the_call() -> None:
    signal = asyncio.Event()
    signal.set()

    async def _run() -> None:
        with pytest.raises(CallAbortedError):
            await run_abortable(asyncio.sleep(10), signal)
        with pytest.raises(CallAbortedError):
            await sleep_or_abort(10, signal)

    asyncio.run(_run())
