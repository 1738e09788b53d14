"""Incremental decoder turning chat completion frames into canonical events.

The decoder is purely reactive: every inbound frame is folded into an explicit
:class:`DecoderState` by :func:`process_frame`, and :func:`flush_state` closes
whatever is still open once the transport signals end-of-stream. Frame level
problems never raise; they are reported as :class:`ErrorEvent` values and
degrade the finish reason to ``"error"``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, List
from uuid import uuid4

from ..errors import AdapterError, UpstreamError
from ..warnings import CallWarning
from .frames import ChatChunk, ChunkDelta, ParseResult, ToolCallDelta, epoch_to_datetime, map_finish_reason
from .stream import (
    BaseStreamIterator,
    ErrorEvent,
    FinishEvent,
    FinishReason,
    ReasoningDeltaEvent,
    ReasoningEndEvent,
    ReasoningStartEvent,
    ResponseMetadataEvent,
    StreamEvent,
    StreamStartEvent,
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    ToolCallEvent,
    ToolInputDeltaEvent,
    ToolInputEndEvent,
    ToolInputStartEvent,
    Usage,
    close_quietly,
)

LOGGER = logging.getLogger(__name__)

TEXT_SPAN_ID = "txt-0"
REASONING_SPAN_ID = "reasoning-0"


def generate_id() -> str:
    """Return a fresh identifier for tool calls the upstream left unnamed."""

    return f"call_{uuid4().hex[:24]}"


@dataclass(slots=True)
class ToolCallAccumulator:
    """In-progress tool invocation tracked by its position in the frame."""

    id: str
    name: str
    arguments: str = ""
    finished: bool = False


@dataclass(slots=True)
class DecoderState:
    """Mutable state owned by exactly one decode call."""

    metadata_emitted: bool = False
    text_open: bool = False
    reasoning_open: bool = False
    reasoning_id: str = REASONING_SPAN_ID
    reasoning_spans: int = 0
    tool_calls: dict[int, ToolCallAccumulator] = field(default_factory=dict)
    finish_reason: FinishReason = "unknown"
    usage: Usage = field(default_factory=Usage)
    flushed: bool = False


def process_frame(
    state: DecoderState,
    frame: ParseResult[ChatChunk],
    *,
    id_factory: Callable[[], str] = generate_id,
) -> List[StreamEvent]:
    """Fold one frame into ``state`` and return the events it produces."""

    if state.flushed:
        msg = "decoder state was already flushed"
        raise AdapterError(msg)

    if not frame.success or frame.value is None:
        state.finish_reason = "error"
        return [ErrorEvent(error=frame.error or AdapterError("empty frame"))]

    chunk = frame.value
    if chunk.error is not None:
        state.finish_reason = "error"
        message = chunk.error.message or json.dumps(chunk.error.model_dump(exclude_none=True))
        return [ErrorEvent(error=UpstreamError(message, payload=chunk.error.model_dump()))]

    events: List[StreamEvent] = []
    if not state.metadata_emitted:
        state.metadata_emitted = True
        events.append(
            ResponseMetadataEvent(
                id=chunk.id,
                model_id=chunk.model,
                timestamp=epoch_to_datetime(chunk.created),
            )
        )

    if chunk.usage is not None:
        state.usage = state.usage.merged(chunk.usage.to_usage())

    if not chunk.choices:
        return events
    choice = chunk.choices[0]

    if choice.finish_reason is not None and state.finish_reason != "error":
        state.finish_reason = map_finish_reason(choice.finish_reason)

    delta = choice.delta
    if delta is None:
        return events

    reasoning = _reasoning_text(delta)
    if reasoning:
        if not state.reasoning_open:
            # A reasoning run resumed after text gets a fresh span id.
            state.reasoning_id = f"reasoning-{state.reasoning_spans}"
            state.reasoning_spans += 1
            state.reasoning_open = True
            events.append(ReasoningStartEvent(id=state.reasoning_id))
        events.append(ReasoningDeltaEvent(id=state.reasoning_id, delta=reasoning))

    if delta.content:
        if state.reasoning_open:
            state.reasoning_open = False
            events.append(ReasoningEndEvent(id=state.reasoning_id))
        if not state.text_open:
            state.text_open = True
            events.append(TextStartEvent(id=TEXT_SPAN_ID))
        events.append(TextDeltaEvent(id=TEXT_SPAN_ID, delta=delta.content))

    for fragment in delta.tool_calls or ():
        events.extend(_apply_tool_fragment(state, fragment, id_factory))

    return events


def flush_state(state: DecoderState) -> List[StreamEvent]:
    """Close open spans, complete pending tool calls, and emit ``finish``."""

    if state.flushed:
        return []
    state.flushed = True

    events: List[StreamEvent] = []
    if state.reasoning_open:
        state.reasoning_open = False
        events.append(ReasoningEndEvent(id=state.reasoning_id))

    if state.text_open:
        state.text_open = False
        events.append(TextEndEvent(id=TEXT_SPAN_ID))

    for index in sorted(state.tool_calls):
        call = state.tool_calls[index]
        if not call.finished:
            events.extend(_complete(call))

    events.append(FinishEvent(finish_reason=state.finish_reason, usage=state.usage))
    return events


def _reasoning_text(delta: ChunkDelta) -> str | None:
    # Two vocabularies exist upstream; reasoning_content takes precedence.
    primary, legacy = delta.reasoning_content, delta.reasoning
    if primary and legacy and primary != legacy:
        LOGGER.warning(
            "frame carries both reasoning_content and reasoning; using reasoning_content"
        )
    return primary or legacy


def _apply_tool_fragment(
    state: DecoderState,
    fragment: ToolCallDelta,
    id_factory: Callable[[], str],
) -> List[StreamEvent]:
    function = fragment.function
    name = function.name if function is not None else None
    arguments = function.arguments if function is not None else None

    call = state.tool_calls.get(fragment.index)
    if call is None:
        call = ToolCallAccumulator(
            id=fragment.id or id_factory(),
            name=name or "",
            arguments=arguments or "",
        )
        state.tool_calls[fragment.index] = call
        events: List[StreamEvent] = [ToolInputStartEvent(id=call.id, tool_name=call.name)]
        if call.arguments:
            events.append(ToolInputDeltaEvent(id=call.id, delta=call.arguments))
            events.extend(_complete_if_parsable(call))
        return events

    if call.finished:
        return []

    if name and not call.name:
        call.name = name

    if not arguments:
        return []

    call.arguments += arguments
    events = [ToolInputDeltaEvent(id=call.id, delta=arguments)]
    events.extend(_complete_if_parsable(call))
    return events


def _complete_if_parsable(call: ToolCallAccumulator) -> List[StreamEvent]:
    if not call.name or not _is_complete_json_object(call.arguments):
        return []
    return _complete(call)


def _complete(call: ToolCallAccumulator) -> List[StreamEvent]:
    call.finished = True
    return [
        ToolInputEndEvent(id=call.id),
        ToolCallEvent(tool_call_id=call.id, tool_name=call.name, input=call.arguments),
    ]


def _is_complete_json_object(text: str) -> bool:
    try:
        parsed = json.loads(text)
    except ValueError:
        return False
    return isinstance(parsed, dict)


class StreamDecoder:
    """Stream normalizer emitting ``stream-start`` followed by decoded events."""

    def __init__(
        self,
        warnings: Sequence[CallWarning] = (),
        *,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        self.state = DecoderState()
        self._warnings = tuple(warnings)
        self._id_factory = id_factory
        self._started = False

    def normalize_chunk(self, chunk: ParseResult[ChatChunk]) -> List[StreamEvent]:
        events = self._start()
        events.extend(process_frame(self.state, chunk, id_factory=self._id_factory))
        return events

    def flush(self) -> List[StreamEvent]:
        events = self._start()
        events.extend(flush_state(self.state))
        return events

    def _start(self) -> List[StreamEvent]:
        if self._started:
            return []
        self._started = True
        return [StreamStartEvent(warnings=self._warnings)]


def decode_frames(
    frames: Iterable[ParseResult[ChatChunk]],
    warnings: Sequence[CallWarning] = (),
    *,
    id_factory: Callable[[], str] = generate_id,
) -> List[StreamEvent]:
    """Decode an already collected frame sequence in one go."""

    decoder = StreamDecoder(warnings, id_factory=id_factory)
    events: List[StreamEvent] = []
    for frame in frames:
        events.extend(decoder.normalize_chunk(frame))
    events.extend(decoder.flush())
    return events


class DecodedStream(BaseStreamIterator[ParseResult[ChatChunk]]):
    """Async iterator decoding frames pulled from an upstream frame source."""

    def __init__(
        self,
        frames: AsyncIterator[ParseResult[ChatChunk]],
        *,
        decoder: StreamDecoder | None = None,
        resource: Any = None,
    ) -> None:
        self._frames = frames
        self._resource = resource
        super().__init__(decoder or StreamDecoder())

    async def _get_next_chunk(self) -> ParseResult[ChatChunk]:
        return await self._frames.__anext__()

    async def _on_close(self) -> None:
        await close_quietly(self._frames)
        if self._resource is not None:
            await close_quietly(self._resource)


__all__ = [
    "DecodedStream",
    "DecoderState",
    "StreamDecoder",
    "ToolCallAccumulator",
    "decode_frames",
    "flush_state",
    "generate_id",
    "process_frame",
]
