"""Chat completions model with streaming decode."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Optional

from ...config import ChatSettings, ProviderSettings
from ...results import GenerateResult, StreamResult, assemble_generate_result, assemble_stream_result
from ...transport.abort import AbortSignal
from ...transport.http import HttpTransport, combine_headers
from ...transport.sse import iter_chat_frames
from ..errors import AdapterError, UpstreamError
from ..message import Message
from ..warnings import CallWarning
from .base import LanguageModel
from .decoder import generate_id
from .frames import ChatResponse, parse_payload
from .toolbridge import AnyTool, ToolChoice, prepare_tools
from .utils import messages_to_chat

LOGGER = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


@dataclass(frozen=True, slots=True)
class ResponseFormat:
    """Requested output format; ``json`` with a ``schema`` enables structured output."""

    type: Literal["text", "json"] = "text"
    schema: Optional[Mapping[str, Any]] = None
    name: Optional[str] = None
    description: Optional[str] = None

    def to_chat(self) -> dict[str, Any] | None:
        if self.type != "json":
            return None
        if self.schema is None:
            return {"type": "json_object"}
        json_schema: dict[str, Any] = {"schema": dict(self.schema), "name": self.name or "response"}
        if self.description is not None:
            json_schema["description"] = self.description
        return {"type": "json_schema", "json_schema": json_schema}


@dataclass(frozen=True, slots=True)
class CallOptions:
    """Per-call generation options accepted by :class:`ChatLanguageModel`."""

    max_output_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop_sequences: Optional[Sequence[str]] = None
    seed: Optional[int] = None
    response_format: Optional[ResponseFormat] = None
    tools: Optional[Sequence[AnyTool]] = None
    tool_choice: Optional[ToolChoice] = None
    headers: Optional[Mapping[str, str]] = None
    abort_signal: Optional[AbortSignal] = None


class ChatLanguageModel(LanguageModel):
    """OpenAI compatible chat completions served by the 302.AI gateway."""

    def __init__(
        self,
        model_id: str,
        *,
        settings: ProviderSettings,
        transport: HttpTransport,
        chat_settings: ChatSettings | None = None,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        super().__init__(model_id)
        self._settings = settings
        self._transport = transport
        self._chat_settings = chat_settings or ChatSettings()
        self._id_factory = id_factory

    async def generate(self, messages: Sequence[Message], /, **options: Any) -> GenerateResult:
        call = _call_options(options)
        body, warnings = self.build_request(messages, call)

        response = await self._transport.post_json(
            self._settings.url(self.model_id, CHAT_COMPLETIONS_PATH),
            body,
            headers=self._headers(call),
            abort_signal=call.abort_signal,
        )
        payload = response.value
        if isinstance(payload, Mapping) and payload.get("error"):
            raise UpstreamError(_upstream_message(payload), payload=payload)

        parsed = parse_payload(payload, ChatResponse)
        return assemble_generate_result(
            parsed,
            warnings=warnings,
            request_body=body,
            headers=response.headers,
            raw_body=payload,
            id_factory=self._id_factory,
        )

    async def stream(self, messages: Sequence[Message], /, **options: Any) -> StreamResult:
        call = _call_options(options)
        args, warnings = self.build_request(messages, call)
        body = {**args, "stream": True}

        upstream = await self._transport.open_event_stream(
            self._settings.url(self.model_id, CHAT_COMPLETIONS_PATH),
            body,
            headers=self._headers(call),
            abort_signal=call.abort_signal,
        )
        frames = iter_chat_frames(upstream.lines(), abort_signal=call.abort_signal)
        return assemble_stream_result(
            frames,
            warnings=warnings,
            request_body=body,
            headers=upstream.headers,
            resource=upstream,
            id_factory=self._id_factory,
        )

    def build_request(
        self,
        messages: Sequence[Message],
        call: CallOptions,
    ) -> tuple[dict[str, Any], list[CallWarning]]:
        """Return the chat-completions body and the warnings it produced."""

        if not messages:
            msg = "at least one message is required"
            raise AdapterError(msg)

        warnings: list[CallWarning] = []
        if call.top_k is not None:
            warnings.append(CallWarning.unsupported("topK"))

        tools, tool_choice, tool_warnings = prepare_tools(call.tools, call.tool_choice)
        warnings.extend(tool_warnings)

        candidates: dict[str, Any] = {
            "model": self.model_id,
            "max_tokens": call.max_output_tokens,
            "temperature": call.temperature,
            "top_p": call.top_p,
            "frequency_penalty": call.frequency_penalty,
            "presence_penalty": call.presence_penalty,
            "stop": list(call.stop_sequences) if call.stop_sequences else None,
            "seed": call.seed,
            "response_format": call.response_format.to_chat() if call.response_format else None,
            "messages": messages_to_chat(messages),
            "tools": tools,
            "tool_choice": tool_choice,
        }
        if self._chat_settings.thinking:
            candidates["thinking"] = self._chat_settings.thinking

        body = {key: value for key, value in candidates.items() if value is not None}
        LOGGER.debug("Prepared chat request for %s with %d warning(s)", self.model_id, len(warnings))
        return body, warnings

    def _headers(self, call: CallOptions) -> dict[str, str]:
        return combine_headers(self._settings.request_headers(), call.headers)


def _call_options(options: Mapping[str, Any]) -> CallOptions:
    try:
        return CallOptions(**options)
    except TypeError as exc:
        msg = f"unsupported chat option: {exc}"
        raise AdapterError(msg) from exc


def _upstream_message(payload: Mapping[str, Any]) -> str:
    error = payload.get("error")
    if isinstance(error, Mapping) and isinstance(error.get("message"), str):
        return error["message"]
    return str(error)


__all__ = ["CHAT_COMPLETIONS_PATH", "CallOptions", "ChatLanguageModel", "ResponseFormat"]
