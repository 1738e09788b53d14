"""Prompt message schema shared across adapters."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
import json
import math
from types import MappingProxyType
from typing import Any


class MessageRole(str, Enum):
    """Canonical role names supported by the chat adapter."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool/function invocation previously emitted by the assistant."""

    id: str
    name: str
    arguments: Mapping[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            msg = "tool call id must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.name, str) or not self.name:
            msg = "tool call name must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.arguments, Mapping):
            msg = "tool call arguments must be a mapping"
            raise TypeError(msg)

        plain_arguments = _thaw_json_structure(dict(self.arguments))
        _ensure_json_compatible(plain_arguments, path="ToolCall.arguments")

        sanitized = json.loads(json.dumps(plain_arguments, allow_nan=False))
        frozen = _freeze_json_structure(sanitized)
        object.__setattr__(self, "arguments", frozen)


@dataclass(frozen=True, slots=True)
class ImagePart:
    """Image attached to a user message, either raw bytes or a URL."""

    data: bytes | str
    media_type: str = "image/*"

    def __post_init__(self) -> None:
        if not isinstance(self.data, (bytes, str)) or not self.data:
            msg = "image data must be non-empty bytes or a URL string"
            raise TypeError(msg)
        if not self.media_type.startswith("image/"):
            msg = f"Unsupported file media type: {self.media_type}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Output returned to the model for an earlier tool call."""

    tool_call_id: str
    output: Any
    is_error: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.tool_call_id, str) or not self.tool_call_id:
            msg = "tool result must reference a tool call id"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Message:
    """A single prompt message exchanged with a language model."""

    role: MessageRole
    content: str = ""
    images: tuple[ImagePart, ...] = ()
    reasoning: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_results: tuple[ToolResult, ...] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):  # pragma: no cover - defensive
            msg = "message content must be a string"
            raise TypeError(msg)

        role = MessageRole(self.role)
        object.__setattr__(self, "role", role)
        object.__setattr__(self, "images", tuple(self.images))

        if self.images and role is not MessageRole.USER:
            msg = "only user messages may carry images"
            raise ValueError(msg)

        if self.tool_calls is not None:
            calls = _as_tuple(self.tool_calls, ToolCall, name="tool_calls")
            if role is not MessageRole.ASSISTANT:
                msg = "only assistant messages may carry tool calls"
                raise ValueError(msg)
            object.__setattr__(self, "tool_calls", calls)

        if self.tool_results is not None:
            results = _as_tuple(self.tool_results, ToolResult, name="tool_results")
            object.__setattr__(self, "tool_results", results)

        if role is MessageRole.TOOL and not self.tool_results:
            msg = "tool messages must carry at least one tool result"
            raise ValueError(msg)

        if role in (MessageRole.SYSTEM, MessageRole.USER):
            if self.content == "" and not self.images:
                msg = "message content cannot be empty"
                raise ValueError(msg)


def _as_tuple(values: Any, item_type: type, *, name: str) -> tuple[Any, ...]:
    if not isinstance(values, Sequence) or isinstance(values, (str, bytes, bytearray)):
        msg = f"{name} must be a sequence of {item_type.__name__} instances"
        raise TypeError(msg)
    candidates = tuple(values)
    if not candidates:
        msg = f"{name} cannot be empty"
        raise ValueError(msg)
    for item in candidates:
        if not isinstance(item, item_type):
            msg = f"{name} must contain {item_type.__name__} instances"
            raise TypeError(msg)
    return candidates


def _ensure_json_compatible(value: Any, *, path: str) -> None:
    if isinstance(value, Mapping):
        for key, inner in value.items():
            if not isinstance(key, str) or not key:
                msg = f"{path} keys must be non-empty strings"
                raise TypeError(msg)
            _ensure_json_compatible(inner, path=f"{path}.{key}")
        return

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for index, item in enumerate(value):
            _ensure_json_compatible(item, path=f"{path}[{index}]")
        return

    if isinstance(value, (bool, type(None), str)):
        return

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            msg = f"{path} contains non-finite float values"
            raise ValueError(msg)
        return

    msg = f"{path} contains unsupported value type {type(value).__name__}"
    raise TypeError(msg)


def _freeze_json_structure(value: Any) -> Any:
    if isinstance(value, dict):
        frozen_dict = {key: _freeze_json_structure(inner) for key, inner in value.items()}
        return MappingProxyType(frozen_dict)

    if isinstance(value, list):
        return tuple(_freeze_json_structure(inner) for inner in value)

    return value


def thaw_json_structure(value: Any) -> Any:
    """Return plain ``dict``/``list`` copies of a frozen JSON structure."""

    return _thaw_json_structure(value)


def _thaw_json_structure(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw_json_structure(inner) for key, inner in value.items()}

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_thaw_json_structure(inner) for inner in value]

    return value
