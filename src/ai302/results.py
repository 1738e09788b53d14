"""Canonical result shapes returned by every model, plus their assembly.

Whatever the backend (synchronous JSON, server-sent events or a polled
task), callers receive one of the frozen result types below. Warnings
collected while building the request are attached here and never dropped.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Union

from .core.adapters.decoder import DecodedStream, StreamDecoder, generate_id
from .core.adapters.frames import ChatChunk, ChatResponse, ParseResult, epoch_to_datetime, map_finish_reason
from .core.adapters.stream import FinishReason, StreamEvent, Usage
from .core.errors import UpstreamError
from .core.warnings import CallWarning


@dataclass(frozen=True, slots=True)
class RequestMetadata:
    """Serialized request body as sent upstream."""

    body: Optional[str] = None

    @classmethod
    def from_body(cls, body: Any) -> "RequestMetadata":
        return cls(json.dumps(body) if body is not None else None)


@dataclass(frozen=True, slots=True)
class ResponseMetadata:
    id: Optional[str] = None
    model_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True, slots=True)
class TextPart:
    type: ClassVar[str] = "text"

    text: str


@dataclass(frozen=True, slots=True)
class ReasoningPart:
    type: ClassVar[str] = "reasoning"

    text: str


@dataclass(frozen=True, slots=True)
class ToolCallPart:
    """Complete tool invocation; ``input`` is the raw JSON argument text."""

    type: ClassVar[str] = "tool-call"

    tool_call_id: str
    tool_name: str
    input: str


ContentPart = Union[ReasoningPart, TextPart, ToolCallPart]


@dataclass(frozen=True, slots=True)
class GenerateResult:
    """Outcome of a non-streaming chat call."""

    content: tuple[ContentPart, ...]
    finish_reason: FinishReason
    usage: Usage
    warnings: tuple[CallWarning, ...] = ()
    request: RequestMetadata = field(default_factory=RequestMetadata)
    response: ResponseMetadata = field(default_factory=ResponseMetadata)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    @property
    def reasoning(self) -> str:
        return "".join(part.text for part in self.content if isinstance(part, ReasoningPart))

    @property
    def tool_calls(self) -> tuple[ToolCallPart, ...]:
        return tuple(part for part in self.content if isinstance(part, ToolCallPart))


@dataclass(frozen=True, slots=True)
class StreamResult:
    """A streaming chat call: the decoded events plus request/response metadata."""

    stream: AsyncIterator[StreamEvent]
    warnings: tuple[CallWarning, ...] = ()
    request: RequestMetadata = field(default_factory=RequestMetadata)
    response: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True, slots=True)
class ImageResult:
    images: tuple[bytes, ...]
    warnings: tuple[CallWarning, ...] = ()
    response: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True, slots=True)
class SpeechResult:
    audio: bytes
    warnings: tuple[CallWarning, ...] = ()
    request: RequestMetadata = field(default_factory=RequestMetadata)
    response: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True, slots=True)
class TranscriptionSegment:
    text: str
    start_second: float
    end_second: float


@dataclass(frozen=True, slots=True)
class TranscriptionResult:
    """Transcript text; ``language`` is an ISO-639-1 code when the backend reports one."""

    text: str
    segments: tuple[TranscriptionSegment, ...] = ()
    language: Optional[str] = None
    duration_in_seconds: Optional[float] = None
    warnings: tuple[CallWarning, ...] = ()
    response: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    embeddings: tuple[tuple[float, ...], ...]
    usage: Usage = field(default_factory=Usage)
    warnings: tuple[CallWarning, ...] = ()
    response: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True, slots=True)
class RankedDocument:
    index: int
    relevance_score: float


@dataclass(frozen=True, slots=True)
class RerankResult:
    ranking: tuple[RankedDocument, ...]
    warnings: tuple[CallWarning, ...] = ()
    response: ResponseMetadata = field(default_factory=ResponseMetadata)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def assemble_generate_result(
    response: ChatResponse,
    *,
    warnings: Sequence[CallWarning] = (),
    request_body: Any = None,
    headers: Mapping[str, str] | None = None,
    raw_body: Any = None,
    id_factory: Callable[[], str] = generate_id,
) -> GenerateResult:
    """Wrap a decoded chat completion body.

    Reasoning comes before text, followed by tool calls in response order.
    """

    if not response.choices:
        raise UpstreamError("chat completion response contained no choices", payload=raw_body)

    choice = response.choices[0]
    message = choice.message
    content: list[ContentPart] = []

    reasoning = message.reasoning_content if message.reasoning_content is not None else message.reasoning
    if reasoning:
        content.append(ReasoningPart(reasoning))
    if message.content:
        content.append(TextPart(message.content))
    for call in message.tool_calls or ():
        content.append(
            ToolCallPart(
                tool_call_id=call.id or id_factory(),
                tool_name=call.function.name,
                input=call.function.arguments,
            )
        )

    return GenerateResult(
        content=tuple(content),
        finish_reason=map_finish_reason(choice.finish_reason),
        usage=response.usage.to_usage() if response.usage is not None else Usage(),
        warnings=tuple(warnings),
        request=RequestMetadata.from_body(request_body),
        response=ResponseMetadata(
            id=response.id,
            model_id=response.model,
            timestamp=epoch_to_datetime(response.created),
            headers=dict(headers or {}),
            body=raw_body,
        ),
    )


def assemble_stream_result(
    frames: AsyncIterator[ParseResult[ChatChunk]],
    *,
    warnings: Sequence[CallWarning] = (),
    request_body: Any = None,
    headers: Mapping[str, str] | None = None,
    resource: Any = None,
    id_factory: Callable[[], str] = generate_id,
    clock: Callable[[], datetime] = _now,
) -> StreamResult:
    """Wrap an upstream frame source in a decoding event stream.

    ``resource`` (typically the open HTTP response) is closed together with
    the stream.
    """

    decoder = StreamDecoder(warnings, id_factory=id_factory)
    return StreamResult(
        stream=DecodedStream(frames, decoder=decoder, resource=resource),
        warnings=tuple(warnings),
        request=RequestMetadata.from_body(request_body),
        response=ResponseMetadata(timestamp=clock(), headers=dict(headers or {})),
    )


def assemble_image_result(
    images: Sequence[bytes],
    *,
    model_id: str,
    warnings: Sequence[CallWarning] = (),
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    clock: Callable[[], datetime] = _now,
) -> ImageResult:
    return ImageResult(
        images=tuple(images),
        warnings=tuple(warnings),
        response=ResponseMetadata(
            model_id=model_id, timestamp=clock(), headers=dict(headers or {}), body=body
        ),
    )


def assemble_speech_result(
    audio: bytes,
    *,
    model_id: str,
    warnings: Sequence[CallWarning] = (),
    request_body: Any = None,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    clock: Callable[[], datetime] = _now,
) -> SpeechResult:
    return SpeechResult(
        audio=audio,
        warnings=tuple(warnings),
        request=RequestMetadata.from_body(request_body),
        response=ResponseMetadata(
            model_id=model_id, timestamp=clock(), headers=dict(headers or {}), body=body
        ),
    )



def assemble_transcription_result(
    text: str,
    *,
    model_id: str,
    segments: Sequence[TranscriptionSegment] = (),
    language: str | None = None,
    duration_in_seconds: float | None = None,
    warnings: Sequence[CallWarning] = (),
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    clock: Callable[[], datetime] = _now,
) -> TranscriptionResult:
    return TranscriptionResult(
        text=text,
        segments=tuple(segments),
        language=language,
        duration_in_seconds=duration_in_seconds,
        warnings=tuple(warnings),
        response=ResponseMetadata(
            model_id=model_id, timestamp=clock(), headers=dict(headers or {}), body=body
        ),
    )


__all__ = [
    "ContentPart",
    "EmbeddingResult",
    "GenerateResult",
    "ImageResult",
    "RankedDocument",
    "ReasoningPart",
    "RequestMetadata",
    "RerankResult",
    "ResponseMetadata",
    "SpeechResult",
    "StreamResult",
    "TextPart",
    "ToolCallPart",
    "TranscriptionResult",
    "TranscriptionSegment",
    "assemble_generate_result",
    "assemble_image_result",
    "assemble_speech_result",
    "assemble_stream_result",
    "assemble_transcription_result",
]
