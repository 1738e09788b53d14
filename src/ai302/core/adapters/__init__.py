"""Canonical stream events, the chat frame decoder and model interfaces.

The chat model itself lives in :mod:`ai302.core.adapters.chat`; it depends
on the result assembler and is imported from there directly.
"""

from __future__ import annotations

from .base import (
    EmbeddingModel,
    ImageModel,
    LanguageModel,
    Model,
    RerankingModel,
    SpeechModel,
    TranscriptionModel,
)
from .decoder import DecodedStream, DecoderState, StreamDecoder, decode_frames, flush_state, process_frame
from .frames import ChatChunk, ChatResponse, ParseResult, map_finish_reason, parse_frame
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
    StreamNormalizer,
    StreamStartEvent,
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    ToolCallEvent,
    ToolInputDeltaEvent,
    ToolInputEndEvent,
    ToolInputStartEvent,
    Usage,
    replay_stream,
)
from .toolbridge import ProviderTool, ToolChoice, ToolSpec, prepare_tools
from .utils import messages_to_chat

__all__ = [
    "BaseStreamIterator",
    "ChatChunk",
    "ChatResponse",
    "DecodedStream",
    "DecoderState",
    "EmbeddingModel",
    "ErrorEvent",
    "FinishEvent",
    "FinishReason",
    "ImageModel",
    "LanguageModel",
    "Model",
    "ParseResult",
    "ProviderTool",
    "ReasoningDeltaEvent",
    "ReasoningEndEvent",
    "ReasoningStartEvent",
    "RerankingModel",
    "ResponseMetadataEvent",
    "SpeechModel",
    "StreamDecoder",
    "StreamEvent",
    "StreamNormalizer",
    "StreamStartEvent",
    "TextDeltaEvent",
    "TextEndEvent",
    "TextStartEvent",
    "ToolCallEvent",
    "ToolChoice",
    "ToolInputDeltaEvent",
    "ToolInputEndEvent",
    "ToolInputStartEvent",
    "ToolSpec",
    "TranscriptionModel",
    "Usage",
    "decode_frames",
    "flush_state",
    "map_finish_reason",
    "messages_to_chat",
    "parse_frame",
    "prepare_tools",
    "process_frame",
    "replay_stream",
]
