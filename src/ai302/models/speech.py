"""Text-to-speech model with optional asynchronous task polling."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal, Optional
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import ProviderSettings, SpeechOptions
from ..core.adapters.base import SpeechModel
from ..core.adapters.frames import parse_payload
from ..core.errors import AdapterError, TaskFailedError, UpstreamError
from ..core.warnings import CallWarning
from ..results import SpeechResult, assemble_speech_result
from ..tasks.artifacts import complete_task, fetch_artifact
from ..tasks.poller import PollSettings, TaskHandle, TaskStatus
from ..transport.abort import AbortSignal
from ..transport.http import HttpTransport, combine_headers

LOGGER = logging.getLogger(__name__)

TTS_PATH = "/302/v2/audio/tts"
FETCH_PATH = "/302/v2/audio/fetch/{task_id}"

TtsStatus = Literal["pending", "processing", "completed", "failed"]


class _AudioRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    content_type: Optional[str] = None
    file_size: Optional[int] = None


class _RawResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audio: Optional[_AudioRef] = None


class TtsResponse(BaseModel):
    """Body of both the submission and the status endpoints."""

    model_config = ConfigDict(extra="ignore")

    task_id: str
    status: TtsStatus
    audio_url: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    execution_time: Optional[str] = None
    raw_response: Optional[_RawResponse] = None

    def resolved_audio_url(self) -> str | None:
        if self.audio_url:
            return self.audio_url
        if self.raw_response is not None and self.raw_response.audio is not None:
            return self.raw_response.audio.url
        return None


def normalize_tts_status(payload: Any) -> TaskStatus:
    status = parse_payload(payload, TtsResponse)
    if status.status == "failed":
        return TaskStatus.failed("TTS task failed", raw=payload)
    if status.status == "completed":
        return TaskStatus.succeeded(status.resolved_audio_url(), raw=payload)
    return TaskStatus.pending(payload)


def parse_speech_model_id(model_id: str) -> tuple[str, Optional[str], str]:
    """Split ``provider/voice`` or ``provider/model/voice`` into its parts."""

    parts = model_id.split("/")
    if len(parts) == 2 and all(parts):
        return parts[0], None, parts[1]
    if len(parts) >= 3 and all(parts[:2]):
        return parts[0], parts[1], "/".join(parts[2:])
    msg = (
        f'Invalid speech model ID format: {model_id}. '
        'Expected "provider/voice" or "provider/model/voice"'
    )
    raise ValueError(msg)


class Ai302SpeechModel(SpeechModel):
    def __init__(
        self,
        model_id: str,
        *,
        settings: ProviderSettings,
        transport: HttpTransport,
    ) -> None:
        super().__init__(model_id)
        self._provider_name, self._model, self._voice = parse_speech_model_id(model_id)
        self._settings = settings
        self._transport = transport

    def build_request(
        self,
        text: str,
        *,
        voice: str | None = None,
        output_format: str | None = None,
        speed: float | None = None,
        options: SpeechOptions,
    ) -> tuple[dict[str, Any], dict[str, str], list[CallWarning]]:
        """Return ``(body, query, warnings)`` for the TTS endpoint."""

        if not text:
            msg = "text to synthesize must not be empty"
            raise AdapterError(msg)

        body: dict[str, Any] = {
            "text": text,
            "provider": self._provider_name,
            "voice": voice or self._voice,
        }
        model = options.model or self._model
        if model:
            body["model"] = model
        if speed is not None:
            body["speed"] = speed
        if options.volume is not None:
            body["volume"] = options.volume
        if options.emotion:
            body["emotion"] = options.emotion
        if output_format:
            body["output_format"] = output_format
        if options.timeout:
            body["timeout"] = options.timeout

        query: dict[str, str] = {}
        if options.run_async:
            query["run_async"] = "true"
        if options.webhook:
            query["webhook"] = options.webhook
        return body, query, []

    async def generate(
        self,
        text: str,
        /,
        *,
        voice: str | None = None,
        output_format: str | None = None,
        speed: float | None = None,
        provider_options: SpeechOptions | Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> SpeechResult:
        options = _speech_options(provider_options)
        body, query, warnings = self.build_request(
            text, voice=voice, output_format=output_format, speed=speed, options=options
        )
        request_headers = combine_headers(self._settings.request_headers(), headers)

        url = self._settings.url(self.model_id, TTS_PATH)
        if query:
            url = f"{url}?{urlencode(query)}"
        response = await self._transport.post_json(
            url, body, headers=request_headers, abort_signal=abort_signal
        )
        submitted = parse_payload(response.value, TtsResponse)

        if submitted.status in ("pending", "processing"):
            LOGGER.debug("TTS task %s queued, polling for audio", submitted.task_id)
            handle = TaskHandle(
                task_id=submitted.task_id,
                status_url=self._settings.url(
                    self.model_id, FETCH_PATH.format(task_id=submitted.task_id)
                ),
                settings=PollSettings(
                    interval=options.poll_interval,
                    max_attempts=options.max_poll_attempts,
                    retryable_status_codes=frozenset(),
                ),
                method="POST",
                body={},
                headers=request_headers,
            )
            artifacts, _ = await complete_task(
                self._transport, handle, normalize_tts_status, abort_signal=abort_signal
            )
            audio = artifacts[0]
        elif submitted.status == "completed" and submitted.resolved_audio_url():
            audio = await fetch_artifact(
                self._transport, submitted.resolved_audio_url(), abort_signal=abort_signal
            )
        elif submitted.status == "failed":
            raise TaskFailedError(submitted.task_id, "TTS generation failed", payload=response.value)
        else:
            raise UpstreamError(
                f"Unexpected TTS response status: {submitted.status}", payload=response.value
            )

        return assemble_speech_result(
            audio,
            model_id=self.model_id,
            warnings=warnings,
            request_body=body,
            headers=response.headers,
            body=response.value,
        )


def _speech_options(value: SpeechOptions | Mapping[str, Any] | None) -> SpeechOptions:
    if isinstance(value, SpeechOptions):
        return value
    try:
        return SpeechOptions.model_validate(dict(value or {}))
    except ValidationError as exc:
        msg = f"invalid speech options: {exc}"
        raise AdapterError(msg) from exc


__all__ = ["Ai302SpeechModel", "TtsResponse", "normalize_tts_status", "parse_speech_model_id"]
