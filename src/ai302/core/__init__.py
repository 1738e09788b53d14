"""Core data structures and adapter interfaces for ai302."""

from __future__ import annotations

from .errors import (
    AdapterError,
    ArtifactDownloadError,
    CallAbortedError,
    FrameParseError,
    PollingTimeoutError,
    TaskFailedError,
    TransportError,
    UnsupportedModelError,
    UpstreamError,
)
from .message import ImagePart, Message, MessageRole, ToolCall, ToolResult
from .warnings import CallWarning
from .adapters.toolbridge import ToolChoice, ToolSpec

__all__ = [
    "AdapterError",
    "ArtifactDownloadError",
    "CallAbortedError",
    "CallWarning",
    "FrameParseError",
    "ImagePart",
    "Message",
    "MessageRole",
    "PollingTimeoutError",
    "TaskFailedError",
    "ToolCall",
    "ToolChoice",
    "ToolResult",
    "ToolSpec",
    "TransportError",
    "UnsupportedModelError",
    "UpstreamError",
]
