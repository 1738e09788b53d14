"""HTTP transport, cancellation and server-sent event helpers."""

from __future__ import annotations

from .abort import AbortSignal, raise_if_aborted, run_abortable, sleep_or_abort
from .http import EventStreamResponse, HttpTransport, JsonResponse, TextResponse, combine_headers
from .sse import iter_chat_frames, iter_sse_data

__all__ = [
    "AbortSignal",
    "EventStreamResponse",
    "HttpTransport",
    "JsonResponse",
    "TextResponse",
    "combine_headers",
    "iter_chat_frames",
    "iter_sse_data",
    "raise_if_aborted",
    "run_abortable",
    "sleep_or_abort",
]
