"""Pydantic schemas for chat completion payloads and frame parsing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import FrameParseError
from .stream import FinishReason, Usage

ModelT = TypeVar("ModelT", bound=BaseModel)


class _Payload(BaseModel):
    """Upstream payloads are validated leniently; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class PromptTokensDetails(_Payload):
    cached_tokens: Optional[int] = None
    audio_tokens: Optional[int] = None


class CompletionTokensDetails(_Payload):
    reasoning_tokens: Optional[int] = None
    audio_tokens: Optional[int] = None
    accepted_prediction_tokens: Optional[int] = None
    rejected_prediction_tokens: Optional[int] = None


class TokenUsage(_Payload):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    prompt_tokens_details: Optional[PromptTokensDetails] = None
    completion_tokens_details: Optional[CompletionTokensDetails] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    def to_usage(self) -> Usage:
        """Convert to the canonical shape; unreported fields stay ``None``."""

        cached = self.prompt_tokens_details.cached_tokens if self.prompt_tokens_details else None
        reasoning = (
            self.completion_tokens_details.reasoning_tokens if self.completion_tokens_details else None
        )
        return Usage(
            input_tokens=self.prompt_tokens if self.prompt_tokens is not None else self.input_tokens,
            output_tokens=self.completion_tokens if self.completion_tokens is not None else self.output_tokens,
            total_tokens=self.total_tokens,
            reasoning_tokens=reasoning,
            cached_input_tokens=cached,
        )


class FunctionDelta(_Payload):
    name: Optional[str] = None
    arguments: Optional[str] = None


class ToolCallDelta(_Payload):
    index: int
    id: Optional[str] = None
    type: Optional[Literal["function"]] = None
    function: Optional[FunctionDelta] = None


class ChunkDelta(_Payload):
    role: Optional[str] = None
    content: Optional[str] = None
    refusal: Optional[str] = None
    reasoning_content: Optional[str] = None
    reasoning: Optional[str] = None
    tool_calls: Optional[List[ToolCallDelta]] = None


class ChunkChoice(_Payload):
    index: Optional[int] = None
    delta: Optional[ChunkDelta] = None
    finish_reason: Optional[str] = None


class ErrorPayload(_Payload):
    message: Optional[str] = None
    type: Optional[str] = None
    code: Optional[Any] = None


class ChatChunk(_Payload):
    """One streamed ``chat.completion.chunk`` frame."""

    id: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    system_fingerprint: Optional[str] = None
    choices: List[ChunkChoice] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None
    error: Optional[ErrorPayload] = None


class FunctionCall(_Payload):
    name: str
    arguments: str


class ResponseToolCall(_Payload):
    id: Optional[str] = None
    function: FunctionCall


class ResponseMessage(_Payload):
    role: Optional[str] = None
    content: Optional[str] = None
    refusal: Optional[str] = None
    reasoning_content: Optional[str] = None
    reasoning: Optional[str] = None
    tool_calls: Optional[List[ResponseToolCall]] = None


class ResponseChoice(_Payload):
    index: Optional[int] = None
    message: ResponseMessage
    finish_reason: Optional[str] = None


class ChatResponse(_Payload):
    """Non-streaming ``chat.completion`` response body."""

    id: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    system_fingerprint: Optional[str] = None
    choices: List[ResponseChoice]
    usage: Optional[TokenUsage] = None


@dataclass(frozen=True, slots=True)
class ParseResult(Generic[ModelT]):
    """Outcome of validating one raw frame: either ``value`` or ``error``."""

    value: Optional[ModelT] = None
    error: Optional[FrameParseError] = None
    raw: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, value: ModelT, *, raw: str | None = None) -> "ParseResult[ModelT]":
        return cls(value=value, raw=raw)

    @classmethod
    def failed(cls, error: FrameParseError) -> "ParseResult[ModelT]":
        return cls(error=error, raw=error.raw)


def parse_frame(raw: str | bytes, schema: type[ModelT] = ChatChunk) -> ParseResult[ModelT]:  # type: ignore[assignment]
    """Validate one raw JSON frame against ``schema`` without raising."""

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        value = schema.model_validate_json(text)
    except ValidationError as exc:
        error = FrameParseError(f"invalid {schema.__name__} frame: {exc}", raw=text)
        return ParseResult.failed(error)
    return ParseResult.ok(value, raw=text)


def parse_payload(payload: Any, schema: type[ModelT]) -> ModelT:
    """Validate an already decoded JSON payload, raising :class:`FrameParseError`."""

    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        msg = f"invalid {schema.__name__} payload: {exc}"
        raise FrameParseError(msg) from exc


_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "length": "length",
    "content_filter": "content-filter",
    "function_call": "tool-calls",
    "tool_calls": "tool-calls",
}


def map_finish_reason(code: str | None) -> FinishReason:
    """Map an upstream finish code onto the closed canonical vocabulary."""

    if code is None:
        return "unknown"
    return _FINISH_REASONS.get(code, "unknown")


def epoch_to_datetime(created: int | None) -> datetime | None:
    if created is None:
        return None
    return datetime.fromtimestamp(created, tz=timezone.utc)


__all__ = [
    "ChatChunk",
    "ChatResponse",
    "ChunkChoice",
    "ChunkDelta",
    "ParseResult",
    "ResponseMessage",
    "TokenUsage",
    "ToolCallDelta",
    "epoch_to_datetime",
    "map_finish_reason",
    "parse_frame",
    "parse_payload",
]
