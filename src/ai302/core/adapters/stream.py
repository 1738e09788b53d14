"""Canonical streaming event schema and base iterator primitives."""

from __future__ import annotations

import abc
import asyncio
import inspect
from collections import deque
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, AsyncIterator, ClassVar, Deque, Generic, List, Literal, Optional, Protocol, TypeVar, Union

from ..errors import AdapterError, TransportError
from ..warnings import CallWarning

FinishReason = Literal["stop", "length", "content-filter", "tool-calls", "error", "unknown"]


@dataclass(frozen=True, slots=True)
class Usage:
    """Token accounting shared by streaming and non-streaming results."""

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    reasoning_tokens: Optional[int] = None
    cached_input_tokens: Optional[int] = None

    def merged(self, update: Usage) -> Usage:
        """Return a copy where every field reported by ``update`` wins."""

        values = {}
        for item in fields(self):
            newer = getattr(update, item.name)
            values[item.name] = newer if newer is not None else getattr(self, item.name)
        return Usage(**values)


@dataclass(frozen=True, slots=True)
class StreamStartEvent:
    """First event of every stream, carrying request construction warnings."""

    type: ClassVar[str] = "stream-start"

    warnings: tuple[CallWarning, ...] = ()


@dataclass(frozen=True, slots=True)
class ResponseMetadataEvent:
    """Identifiers reported by the first successfully parsed frame."""

    type: ClassVar[str] = "response-metadata"

    id: Optional[str] = None
    model_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class TextStartEvent:
    type: ClassVar[str] = "text-start"

    id: str


@dataclass(frozen=True, slots=True)
class TextDeltaEvent:
    type: ClassVar[str] = "text-delta"

    id: str
    delta: str


@dataclass(frozen=True, slots=True)
class TextEndEvent:
    type: ClassVar[str] = "text-end"

    id: str


@dataclass(frozen=True, slots=True)
class ReasoningStartEvent:
    type: ClassVar[str] = "reasoning-start"

    id: str


@dataclass(frozen=True, slots=True)
class ReasoningDeltaEvent:
    type: ClassVar[str] = "reasoning-delta"

    id: str
    delta: str


@dataclass(frozen=True, slots=True)
class ReasoningEndEvent:
    type: ClassVar[str] = "reasoning-end"

    id: str


@dataclass(frozen=True, slots=True)
class ToolInputStartEvent:
    """A tool invocation was announced; its name may still be incomplete."""

    type: ClassVar[str] = "tool-input-start"

    id: str
    tool_name: str


@dataclass(frozen=True, slots=True)
class ToolInputDeltaEvent:
    """Fragment of a tool invocation's JSON argument text."""

    type: ClassVar[str] = "tool-input-delta"

    id: str
    delta: str


@dataclass(frozen=True, slots=True)
class ToolInputEndEvent:
    type: ClassVar[str] = "tool-input-end"

    id: str


@dataclass(frozen=True, slots=True)
class ToolCallEvent:
    """Complete tool invocation with its accumulated argument text."""

    type: ClassVar[str] = "tool-call"

    tool_call_id: str
    tool_name: str
    input: str


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """In-band failure; the stream keeps going after it."""

    type: ClassVar[str] = "error"

    error: Exception


@dataclass(frozen=True, slots=True)
class FinishEvent:
    """Terminal event containing the finish reason and aggregated usage."""

    type: ClassVar[str] = "finish"

    finish_reason: FinishReason
    usage: Usage


StreamEvent = Union[
    StreamStartEvent,
    ResponseMetadataEvent,
    TextStartEvent,
    TextDeltaEvent,
    TextEndEvent,
    ReasoningStartEvent,
    ReasoningDeltaEvent,
    ReasoningEndEvent,
    ToolInputStartEvent,
    ToolInputDeltaEvent,
    ToolInputEndEvent,
    ToolCallEvent,
    ErrorEvent,
    FinishEvent,
]

ChunkT = TypeVar("ChunkT")
ChunkT_contra = TypeVar("ChunkT_contra", contravariant=True)


class StreamNormalizer(Protocol[ChunkT_contra]):
    def normalize_chunk(self, chunk: ChunkT_contra) -> List[StreamEvent]:
        """Map one raw frame into canonical stream events."""

    def flush(self) -> List[StreamEvent]:
        """Emit the closing events once the frame source is exhausted."""


class BaseStreamIterator(AsyncIterator[StreamEvent], Generic[ChunkT], metaclass=abc.ABCMeta):
    """Shared async iterator driving provider-specific streaming adapters.

    Subclasses are responsible for sourcing raw frames by implementing
    :meth:`_get_next_chunk`. Each frame is normalized into zero or more
    :data:`StreamEvent` instances via a :class:`StreamNormalizer`; once the
    source is exhausted the normalizer is flushed so the closing events
    (span ends, pending tool calls, ``finish``) are delivered. The iterator
    buffers normalized events so consumers receive a linear stream of
    canonical event objects regardless of how providers batch their updates.
    """

    def __init__(self, normalizer: StreamNormalizer[ChunkT]) -> None:
        self._normalizer = normalizer
        self._buffer: Deque[StreamEvent] = deque()
        self._closed = False
        self._exhausted = False
        self._close_lock = asyncio.Lock()

    def __aiter__(self) -> BaseStreamIterator[ChunkT]:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed and not self._buffer:
            raise StopAsyncIteration

        buffered = self._pop_buffered_event()
        if buffered is not None:
            return await self._finalize_if_needed(buffered)

        while True:
            if self._closed:
                raise StopAsyncIteration

            if self._exhausted:
                await self.close()
                raise StopAsyncIteration

            try:
                chunk = await self._consume_chunk()
            except StopAsyncIteration:
                self._exhausted = True
                self._buffer.extend(self._normalizer.flush())
            else:
                self._buffer.extend(self._normalizer.normalize_chunk(chunk))

            buffered = self._pop_buffered_event()
            if buffered is not None:
                return await self._finalize_if_needed(buffered)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Release provider resources and prevent additional iteration."""

        async with self._close_lock:
            if self._closed:
                return

            self._closed = True
            await self._on_close()

    aclose = close

    async def _consume_chunk(self) -> ChunkT:
        try:
            return await self._get_next_chunk()
        except StopAsyncIteration:
            raise
        except AdapterError:
            await self._abandon()
            raise
        except Exception as exc:
            await self._abandon()
            msg = "upstream stream raised an unexpected error"
            raise TransportError(msg) from exc

    async def _abandon(self) -> None:
        await self.close()
        self._buffer.clear()

    async def _finalize_if_needed(self, event: StreamEvent) -> StreamEvent:
        if isinstance(event, FinishEvent) and not self._buffer:
            await self.close()
        return event

    def _pop_buffered_event(self) -> StreamEvent | None:
        if not self._buffer:
            return None
        return self._buffer.popleft()

    @abc.abstractmethod
    async def _get_next_chunk(self) -> ChunkT:
        """Retrieve the next raw frame, raising ``StopAsyncIteration`` at the end."""

    async def _on_close(self) -> None:
        """Allow subclasses to dispose provider resources when closing."""


async def close_quietly(resource: Any) -> None:
    """Call ``aclose()`` or ``close()`` on ``resource`` when it defines one."""

    for closer_name in ("aclose", "close"):
        closer = getattr(resource, closer_name, None)
        if closer is None or not callable(closer):
            continue
        result = closer()
        if inspect.isawaitable(result):
            await result
        return


async def replay_stream(iterator: AsyncIterator[StreamEvent]) -> List[StreamEvent]:
    """Collect all events emitted by a stream iterator."""

    events: List[StreamEvent] = []
    try:
        async for event in iterator:
            events.append(event)
    finally:
        await close_quietly(iterator)
    return events


def collect_text(events: List[StreamEvent]) -> str:
    """Concatenate the text deltas of a recorded stream."""

    return "".join(event.delta for event in events if isinstance(event, TextDeltaEvent))


def collect_reasoning(events: List[StreamEvent]) -> str:
    """Concatenate the reasoning deltas of a recorded stream."""

    return "".join(event.delta for event in events if isinstance(event, ReasoningDeltaEvent))
