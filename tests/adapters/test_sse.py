from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, List

import pytest

from ai302.core.errors import CallAbortedError
from ai302.transport.sse import iter_chat_frames, iter_sse_data


async def _lines(items: List[str]) -> AsyncIterator[str]:
    for item in items:
        yield item


def _collect(iterator: AsyncIterator[Any]) -> List[Any]:
    async def _run() -> List[Any]:
        return [item async for item in iterator]

    return asyncio.run(_run())


def test_data_fields_are_yielded_per_event() -> None:
    lines = [
        ": keep-alive",
        "event: message",
        'data: {"a": 1}',
        "",
        "id: 7",
        'data:{"b": 2}',
        "",
    ]

    assert _collect(iter_sse_data(_lines(lines))) == ['{"a": 1}', '{"b": 2}']


def test_multiline_data_is_joined_with_newlines() -> None:
    lines = ["data: first", "data: second", ""]

    assert _collect(iter_sse_data(_lines(lines))) == ["first\nsecond"]


def test_done_sentinel_stops_the_stream() -> None:
    lines = ['data: {"a": 1}', "", "data: [DONE]", "", 'data: {"ignored": true}', ""]

    assert _collect(iter_sse_data(_lines(lines))) == ['{"a": 1}']


def test_trailing_event_without_blank_line_is_flushed() -> None:
    lines = ['data: {"a": 1}', "", 'data: {"tail": true}']

    assert _collect(iter_sse_data(_lines(lines))) == ['{"a": 1}', '{"tail": true}']


def test_chat_frames_parse_each_payload() -> None:
    lines = ['data: {"id": "c1", "choices": []}', "", "data: {broken", "", "data: [DONE]", ""]

    frames = _collect(iter_chat_frames(_lines(lines)))

    assert [frame.success for frame in frames] == [True, False]
    assert frames[0].value.id == "c1"
    assert frames[1].raw == "{broken"


def test_chat_frames_observe_the_abort_signal() -> None:
    signal = asyncio.Event()
    signal.set()
    lines = ['data: {"id": "c1"}', ""]

    with pytest.raises(CallAbortedError):
        _collect(iter_chat_frames(_lines(lines), abort_signal=signal))
