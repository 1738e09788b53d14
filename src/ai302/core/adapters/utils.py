"""Pure conversion helpers shared by the chat model."""

from __future__ import annotations

import base64
import json
from collections.abc import Mapping, Sequence
from typing import Any

from ..errors import AdapterError
from ..message import ImagePart, Message, MessageRole, ToolResult, thaw_json_structure
from .toolbridge import tool_call_to_chat


def image_part_to_url(image: ImagePart) -> str:
    """Return a URL for ``image``, inlining raw bytes as a base64 data URL."""

    if isinstance(image.data, str):
        return image.data
    media_type = "image/jpeg" if image.media_type == "image/*" else image.media_type
    encoded = base64.b64encode(image.data).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def tool_result_content(result: ToolResult) -> str:
    if isinstance(result.output, str):
        return result.output
    if result.output is None:
        return ""
    return json.dumps(thaw_json_structure(result.output))


def messages_to_chat(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert prompt messages into chat-completions message payloads.

    Tool messages expand into one ``tool`` payload per result. Assistant
    reasoning is sent back as ``reasoning_content`` so thinking models keep
    their chain of thought across tool call continuations.
    """

    converted: list[dict[str, Any]] = []
    for message in messages:
        role = message.role
        if role is MessageRole.SYSTEM:
            converted.append({"role": "system", "content": message.content})
        elif role is MessageRole.USER:
            converted.append(_user_message(message))
        elif role is MessageRole.ASSISTANT:
            payload: dict[str, Any] = {"role": "assistant", "content": message.content or None}
            if message.reasoning:
                payload["reasoning_content"] = message.reasoning
            if message.tool_calls:
                payload["tool_calls"] = [tool_call_to_chat(call) for call in message.tool_calls]
            converted.append(payload)
        elif role is MessageRole.TOOL:
            for result in message.tool_results or ():
                converted.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.tool_call_id,
                        "content": tool_result_content(result),
                    }
                )
        else:  # pragma: no cover - MessageRole is closed
            msg = f"Unsupported role: {role}"
            raise AdapterError(msg)

    return converted


def _user_message(message: Message) -> dict[str, Any]:
    if not message.images:
        return {"role": "user", "content": message.content}

    parts: list[Mapping[str, Any]] = []
    if message.content:
        parts.append({"type": "text", "text": message.content})
    for image in message.images:
        parts.append({"type": "image_url", "image_url": {"url": image_part_to_url(image)}})
    return {"role": "user", "content": parts}


__all__ = ["image_part_to_url", "messages_to_chat", "tool_result_content"]
