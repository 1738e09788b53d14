from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import List

import pytest

from ai302.core.adapters.decoder import (
    DecodedStream,
    DecoderState,
    StreamDecoder,
    decode_frames,
    flush_state,
    process_frame,
)
from ai302.core.adapters.frames import ChatChunk, ParseResult
from ai302.core.adapters.stream import (
    ErrorEvent,
    FinishEvent,
    ReasoningDeltaEvent,
    ResponseMetadataEvent,
    StreamEvent,
    StreamStartEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolInputDeltaEvent,
    ToolInputEndEvent,
    ToolInputStartEvent,
    Usage,
    replay_stream,
)
from ai302.core.errors import AdapterError, FrameParseError, UpstreamError
from ai302.core.warnings import CallWarning

from tests.fixtures.chat_frames import chunk, parsed, thinking_frames, tool_call_frames, tool_fragment

_CONTENT_TYPES = {
    "text-start",
    "text-delta",
    "text-end",
    "reasoning-start",
    "reasoning-delta",
    "reasoning-end",
    "tool-input-start",
    "tool-input-delta",
    "tool-input-end",
    "tool-call",
}


def _types(events: List[StreamEvent]) -> list[str]:
    return [event.type for event in events]


def assert_well_formed(events: List[StreamEvent]) -> None:
    """Check the ordering guarantees every decoded stream must satisfy."""

    types = _types(events)
    assert types[0] == "stream-start"
    assert types.count("response-metadata") == 1
    first_content = next((i for i, kind in enumerate(types) if kind in _CONTENT_TYPES), len(types))
    assert types.index("response-metadata") < first_content
    assert types.count("finish") == 1
    assert types[-1] == "finish"

    open_spans: dict[tuple[str, str], bool] = {}
    for event in events:
        family, _, phase = event.type.rpartition("-")
        if event.type == "tool-call" or family not in ("text", "reasoning", "tool-input"):
            continue
        key = (family, event.id)
        if phase == "start":
            assert key not in open_spans
            open_spans[key] = True
        elif phase == "delta":
            assert open_spans.get(key) is True, f"delta outside of span {key}"
        elif phase == "end":
            assert open_spans.get(key) is True, f"end without open span {key}"
            open_spans[key] = False
    assert all(state is False for state in open_spans.values())


def test_reasoning_then_text_scenario() -> None:
    events = decode_frames(parsed(thinking_frames()))

    assert_well_formed(events)
    assert _types(events[1:]) == [
        "response-metadata",
        "reasoning-start",
        "reasoning-delta",
        "reasoning-delta",
        "reasoning-end",
        "text-start",
        "text-delta",
        "text-end",
        "finish",
    ]
    deltas = [event.delta for event in events if isinstance(event, ReasoningDeltaEvent)]
    assert deltas == ["Let", " me think"]
    assert [event.delta for event in events if isinstance(event, TextDeltaEvent)] == ["42"]

    finish = events[-1]
    assert isinstance(finish, FinishEvent)
    assert finish.finish_reason == "stop"
    assert finish.usage == Usage(input_tokens=10, output_tokens=5, total_tokens=15)


def test_reasoning_resumed_after_text_opens_a_fresh_span() -> None:
    events = decode_frames(
        parsed(
            [
                chunk(reasoning_content="plan"),
                chunk(content="Draft."),
                chunk(reasoning_content="check"),
                chunk(content=" Done.", finish_reason="stop"),
            ]
        )
    )

    assert_well_formed(events)
    assert [(event.type, getattr(event, "id", None)) for event in events[2:-1]] == [
        ("reasoning-start", "reasoning-0"),
        ("reasoning-delta", "reasoning-0"),
        ("reasoning-end", "reasoning-0"),
        ("text-start", "txt-0"),
        ("text-delta", "txt-0"),
        ("reasoning-start", "reasoning-1"),
        ("reasoning-delta", "reasoning-1"),
        ("reasoning-end", "reasoning-1"),
        ("text-delta", "txt-0"),
        ("text-end", "txt-0"),
    ]


def test_reasoning_only_stream_closes_its_span_at_flush() -> None:
    events = decode_frames(parsed([chunk(reasoning="hmm", finish_reason="length")]))

    assert_well_formed(events)
    assert _types(events[2:]) == ["reasoning-start", "reasoning-delta", "reasoning-end", "finish"]
    assert events[-1].finish_reason == "length"


def test_response_metadata_comes_from_first_frame() -> None:
    events = decode_frames(parsed([chunk(content="a", id="first"), chunk(content="b", id="second")]))

    metadata = [event for event in events if isinstance(event, ResponseMetadataEvent)]
    assert len(metadata) == 1
    assert metadata[0].id == "first"
    assert metadata[0].model_id == "deepseek-reasoner"
    assert metadata[0].timestamp is not None
    assert metadata[0].timestamp.year == 2023


def test_stream_start_carries_request_warnings() -> None:
    warning = CallWarning.unsupported("topK")
    events = decode_frames(parsed([chunk(content="hi")]), [warning])

    assert isinstance(events[0], StreamStartEvent)
    assert events[0].warnings == (warning,)


def test_empty_stream_still_starts_and_finishes() -> None:
    events = decode_frames([])

    assert _types(events) == ["stream-start", "finish"]
    assert events[-1].finish_reason == "unknown"


def test_usage_fields_accumulate_with_later_frames_winning() -> None:
    frames = [
        chunk(content="a", usage={"prompt_tokens": 10}),
        chunk(content="b", usage={"completion_tokens": 3, "total_tokens": 13}),
        chunk(
            finish_reason="stop",
            usage={
                "prompt_tokens": 12,
                "completion_tokens_details": {"reasoning_tokens": 2},
                "prompt_tokens_details": {"cached_tokens": 4},
            },
        ),
    ]

    finish = decode_frames(parsed(frames))[-1]

    assert finish.usage == Usage(
        input_tokens=12,
        output_tokens=3,
        total_tokens=13,
        reasoning_tokens=2,
        cached_input_tokens=4,
    )


def test_tool_input_deltas_concatenate_to_tool_call_input() -> None:
    events = decode_frames(parsed(tool_call_frames()))

    assert_well_formed(events)
    calls = [event for event in events if isinstance(event, ToolCallEvent)]
    assert [(call.tool_call_id, call.tool_name) for call in calls] == [
        ("call_a", "lookup"),
        ("call_b", "sum"),
    ]
    for call in calls:
        fragments = [
            event.delta
            for event in events
            if isinstance(event, ToolInputDeltaEvent) and event.id == call.tool_call_id
        ]
        assert "".join(fragments) == call.input
    assert calls[0].input == '{"q": "weather"}'
    assert calls[1].input == '{"a": 1, "b": 2}'
    assert events[-1].finish_reason == "tool-calls"


def test_tool_call_completes_as_soon_as_arguments_parse() -> None:
    frames = [
        chunk(tool_calls=[tool_fragment(0, id="call_a", name="lookup", arguments='{"q": 1}')]),
        chunk(content="after"),
    ]

    types = _types(decode_frames(parsed(frames)))

    assert types.index("tool-call") < types.index("text-start")
    assert types.count("tool-input-end") == 1


def test_fragments_after_completion_are_ignored() -> None:
    frames = [
        chunk(tool_calls=[tool_fragment(0, id="call_a", name="f", arguments="{}")]),
        chunk(tool_calls=[tool_fragment(0, arguments='{"late": true}')]),
    ]

    events = decode_frames(parsed(frames))

    deltas = [event for event in events if isinstance(event, ToolInputDeltaEvent)]
    assert [event.delta for event in deltas] == ["{}"]


def test_pending_tool_calls_flush_in_ascending_index_order() -> None:
    frames = [
        chunk(tool_calls=[tool_fragment(1, id="call_1", name="second", arguments='{"x": 1')]),
        chunk(tool_calls=[tool_fragment(0, id="call_0", name="first", arguments='{"y": 2')]),
    ]

    events = decode_frames(parsed(frames))

    calls = [event for event in events if isinstance(event, ToolCallEvent)]
    assert [call.tool_call_id for call in calls] == ["call_0", "call_1"]
    assert calls[0].input == '{"y": 2'
    ends = [event.id for event in events if isinstance(event, ToolInputEndEvent)]
    assert ends == ["call_0", "call_1"]
    assert_well_formed(events)


def test_missing_tool_call_id_uses_generated_identifier() -> None:
    frames = [chunk(tool_calls=[tool_fragment(0, name="f", arguments='{"a": true}')])]

    events = decode_frames(parsed(frames), id_factory=lambda: "call_generated")

    starts = [event for event in events if isinstance(event, ToolInputStartEvent)]
    assert starts[0].id == "call_generated"
    assert starts[0].tool_name == "f"


def test_malformed_frame_is_reported_in_band_and_sticks() -> None:
    frames = [
        chunk(content="Hello"),
        "{not json",
        chunk(content=" world", finish_reason="stop"),
    ]

    events = decode_frames(parsed(frames))

    errors = [event for event in events if isinstance(event, ErrorEvent)]
    assert len(errors) == 1
    assert isinstance(errors[0].error, FrameParseError)
    assert errors[0].error.raw == "{not json"
    # Delivery continues after the bad frame.
    assert "".join(e.delta for e in events if isinstance(e, TextDeltaEvent)) == "Hello world"
    assert events[-1].finish_reason == "error"
    assert_well_formed(events)


def test_upstream_error_chunk_becomes_error_event() -> None:
    frames = [chunk(content="partial"), {"error": {"message": "rate limited", "code": 429}}]

    events = decode_frames(parsed(frames))

    errors = [event for event in events if isinstance(event, ErrorEvent)]
    assert isinstance(errors[0].error, UpstreamError)
    assert str(errors[0].error) == "rate limited"
    assert events[-1].finish_reason == "error"


def test_unknown_finish_code_maps_to_unknown() -> None:
    events = decode_frames(parsed([chunk(content="x", finish_reason="insufficient_system_resource")]))

    assert events[-1].finish_reason == "unknown"


def test_reasoning_content_wins_when_both_fields_are_present(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger="ai302.core.adapters.decoder")
    frames = [chunk(reasoning_content="primary", reasoning="legacy")]

    events = decode_frames(parsed(frames))

    deltas = [event.delta for event in events if isinstance(event, ReasoningDeltaEvent)]
    assert deltas == ["primary"]
    assert "reasoning_content" in caplog.text


def test_state_rejects_frames_after_flush() -> None:
    state = DecoderState()
    process_frame(state, parsed([chunk(content="a")])[0])
    first = flush_state(state)

    assert _types(first) == ["text-end", "finish"]
    assert flush_state(state) == []
    with pytest.raises(AdapterError):
        process_frame(state, parsed([chunk(content="b")])[0])


class _Resource:
    def __init__(self) -> None:
        self.closed = 0

    async def aclose(self) -> None:
        self.closed += 1


async def _frames(items: List[ParseResult[ChatChunk]]) -> AsyncIterator[ParseResult[ChatChunk]]:
    for item in items:
        await asyncio.sleep(0)
        yield item


def test_decoded_stream_matches_batch_decode_and_closes_resource() -> None:
    resource = _Resource()
    frames = parsed(tool_call_frames())
    stream = DecodedStream(_frames(frames), decoder=StreamDecoder(), resource=resource)

    events = asyncio.run(replay_stream(stream))

    assert events == decode_frames(frames)
    assert stream.closed
    assert resource.closed == 1
