from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import is_dataclass
from typing import Any, Dict, Iterable, List

import pytest

from ai302.core.adapters.stream import (
    BaseStreamIterator,
    ErrorEvent,
    FinishEvent,
    ReasoningDeltaEvent,
    StreamEvent,
    StreamNormalizer,
    TextDeltaEvent,
    TextStartEvent,
    ToolCallEvent,
    Usage,
    collect_reasoning,
    collect_text,
    replay_stream,
)
from ai302.core.errors import TransportError, UpstreamError


def test_event_dataclasses_are_slot_based() -> None:
    for cls, expected_slots in (
        (TextDeltaEvent, {"id", "delta"}),
        (ToolCallEvent, {"tool_call_id", "tool_name", "input"}),
        (ErrorEvent, {"error"}),
        (FinishEvent, {"finish_reason", "usage"}),
    ):
        assert is_dataclass(cls)
        assert set(getattr(cls, "__slots__")) == expected_slots


def test_event_type_tags_are_class_level() -> None:
    assert TextDeltaEvent(id="t", delta="x").type == "text-delta"
    assert ToolCallEvent.type == "tool-call"
    assert FinishEvent(finish_reason="stop", usage=Usage()).type == "finish"


def test_usage_merge_keeps_unreported_fields() -> None:
    base = Usage(input_tokens=3, output_tokens=1)
    merged = base.merged(Usage(output_tokens=7, total_tokens=10))

    assert merged == Usage(input_tokens=3, output_tokens=7, total_tokens=10)


class DummyNormalizer(StreamNormalizer[Dict[str, Any]]):
    def __init__(
        self,
        responses: Iterable[List[StreamEvent]],
        *,
        closing: List[StreamEvent] | None = None,
    ) -> None:
        self._responses = iter(responses)
        self._closing = closing or []
        self.seen_chunks: List[Dict[str, Any]] = []
        self.flushed = 0

    def normalize_chunk(self, chunk: Dict[str, Any]) -> List[StreamEvent]:
        self.seen_chunks.append(chunk)
        try:
            return next(self._responses)
        except StopIteration:
            return []

    def flush(self) -> List[StreamEvent]:
        self.flushed += 1
        return list(self._closing)


class DummyStream(BaseStreamIterator[Dict[str, Any]]):
    def __init__(self, *, chunks: Iterable[Any], normalizer: DummyNormalizer) -> None:
        super().__init__(normalizer)
        self._chunks = iter(chunks)
        self.close_count = 0

    async def _get_next_chunk(self) -> Dict[str, Any]:
        try:
            chunk = next(self._chunks)
        except StopIteration as exc:
            raise StopAsyncIteration from exc
        if isinstance(chunk, Exception):
            raise chunk
        return chunk

    async def _on_close(self) -> None:
        self.close_count += 1


def _gather(stream: AsyncIterator[StreamEvent]) -> List[StreamEvent]:
    async def _run() -> List[StreamEvent]:
        return [event async for event in stream]

    return asyncio.run(_run())


def test_iterator_streams_normalized_events_then_flushes() -> None:
    chunks = [{"id": 1}, {"id": 2}]
    finish = FinishEvent(finish_reason="stop", usage=Usage(total_tokens=4))
    normalizer = DummyNormalizer(
        responses=[
            [TextStartEvent(id="txt-0"), TextDeltaEvent(id="txt-0", delta="Hel")],
            [TextDeltaEvent(id="txt-0", delta="lo")],
        ],
        closing=[finish],
    )
    stream = DummyStream(chunks=chunks, normalizer=normalizer)

    events = _gather(stream)

    assert events == [
        TextStartEvent(id="txt-0"),
        TextDeltaEvent(id="txt-0", delta="Hel"),
        TextDeltaEvent(id="txt-0", delta="lo"),
        finish,
    ]
    assert normalizer.seen_chunks == chunks
    assert normalizer.flushed == 1
    assert stream.close_count == 1
    assert stream.closed


def test_iterator_skips_empty_batches() -> None:
    normalizer = DummyNormalizer(
        responses=[[], [TextDeltaEvent(id="txt-0", delta="A")], []],
        closing=[FinishEvent(finish_reason="unknown", usage=Usage())],
    )
    stream = DummyStream(chunks=[{"id": "a"}, {"id": "b"}, {"id": "c"}], normalizer=normalizer)

    events = _gather(stream)

    assert [event.type for event in events] == ["text-delta", "finish"]
    assert len(normalizer.seen_chunks) == 3


def test_close_is_idempotent_and_prevents_additional_reads() -> None:
    normalizer = DummyNormalizer(responses=[[TextDeltaEvent(id="txt-0", delta="x")]])
    stream = DummyStream(chunks=[{"id": 1}], normalizer=normalizer)

    asyncio.run(stream.close())
    asyncio.run(stream.close())

    assert stream.close_count == 1
    assert stream.closed

    async def _anext() -> StreamEvent:
        return await anext(stream)

    with pytest.raises(StopAsyncIteration):
        asyncio.run(_anext())
    assert normalizer.seen_chunks == []


def test_unexpected_source_errors_are_wrapped_and_close_the_stream() -> None:
    normalizer = DummyNormalizer(responses=[[TextDeltaEvent(id="txt-0", delta="x")]])
    stream = DummyStream(chunks=[{"id": 1}, OSError("connection reset")], normalizer=normalizer)

    with pytest.raises(TransportError) as excinfo:
        _gather(stream)

    assert isinstance(excinfo.value.__cause__, OSError)
    assert stream.close_count == 1


def test_adapter_errors_from_the_source_propagate_unchanged() -> None:
    normalizer = DummyNormalizer(responses=[])
    stream = DummyStream(chunks=[UpstreamError("bad gateway")], normalizer=normalizer)

    with pytest.raises(UpstreamError, match="bad gateway"):
        _gather(stream)
    assert stream.closed


def test_replay_helpers_collect_text_and_reasoning() -> None:
    async def _events() -> AsyncIterator[StreamEvent]:
        yield ReasoningDeltaEvent(id="reasoning-0", delta="Think")
        yield TextDeltaEvent(id="txt-0", delta="Alpha")
        yield TextDeltaEvent(id="txt-0", delta="Beta")
        yield FinishEvent(finish_reason="stop", usage=Usage())

    events = asyncio.run(replay_stream(_events()))

    assert collect_text(events) == "AlphaBeta"
    assert collect_reasoning(events) == "Think"
    assert events[-1].type == "finish"
