"""Adapter for the 302.AI generation API.

Chat completions are decoded into one canonical stream event vocabulary,
and asynchronous image and speech backends are driven through a single task
poller and artifact fetcher, so callers never branch on the backend.
"""

from __future__ import annotations

from .config import (
    ChatSettings,
    EmbeddingOptions,
    ProviderSettings,
    RerankingOptions,
    SpeechOptions,
    TranscriptionOptions,
)
from .core import (
    AdapterError,
    CallAbortedError,
    CallWarning,
    ImagePart,
    Message,
    MessageRole,
    PollingTimeoutError,
    TaskFailedError,
    ToolCall,
    ToolChoice,
    ToolResult,
    ToolSpec,
    TransportError,
    UpstreamError,
)
from .provider import Ai302Provider, create_ai302
from .results import (
    EmbeddingResult,
    GenerateResult,
    ImageResult,
    RerankResult,
    SpeechResult,
    StreamResult,
    TranscriptionResult,
)

__all__ = [
    "AdapterError",
    "Ai302Provider",
    "CallAbortedError",
    "CallWarning",
    "ChatSettings",
    "EmbeddingOptions",
    "EmbeddingResult",
    "GenerateResult",
    "ImagePart",
    "ImageResult",
    "Message",
    "MessageRole",
    "PollingTimeoutError",
    "ProviderSettings",
    "RerankResult",
    "RerankingOptions",
    "SpeechOptions",
    "SpeechResult",
    "StreamResult",
    "TaskFailedError",
    "ToolCall",
    "ToolChoice",
    "ToolResult",
    "ToolSpec",
    "TranscriptionOptions",
    "TranscriptionResult",
    "TransportError",
    "UpstreamError",
    "create_ai302",
]

__version__ = "0.1.0"
