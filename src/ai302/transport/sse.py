"""Server-sent event decoding for streamed chat completions."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Optional

from ..core.adapters.frames import ChatChunk, ParseResult, parse_frame
from .abort import AbortSignal, raise_if_aborted

DONE_SENTINEL = "[DONE]"


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the ``data`` payload of each event until ``[DONE]``.

    Multi-line ``data:`` fields are joined with newlines; comments and other
    fields (``event:``, ``id:``, ``retry:``) are ignored.
    """

    pending: list[str] = []
    async for line in lines:
        if line == "":
            if pending:
                payload = "\n".join(pending)
                pending = []
                if payload.strip() == DONE_SENTINEL:
                    return
                yield payload
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field != "data":
            continue
        pending.append(value[1:] if value.startswith(" ") else value)

    if pending:
        payload = "\n".join(pending)
        if payload.strip() != DONE_SENTINEL:
            yield payload


async def iter_chat_frames(
    lines: AsyncIterator[str],
    *,
    abort_signal: Optional[AbortSignal] = None,
) -> AsyncIterator[ParseResult[ChatChunk]]:
    """Parse every event payload into a :class:`ParseResult` frame."""

    async for payload in iter_sse_data(lines):
        raise_if_aborted(abort_signal)
        yield parse_frame(payload, ChatChunk)


__all__ = ["DONE_SENTINEL", "iter_chat_frames", "iter_sse_data"]
