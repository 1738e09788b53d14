"""Speech-to-text model posting audio to the OpenAI compatible transcription endpoint."""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import ProviderSettings, TranscriptionFormat, TranscriptionOptions
from ..core.adapters.base import TranscriptionModel
from ..core.adapters.frames import parse_payload
from ..core.errors import AdapterError
from ..core.warnings import CallWarning
from ..results import TranscriptionResult, TranscriptionSegment, assemble_transcription_result
from ..transport.abort import AbortSignal
from ..transport.http import HttpTransport, Upload, combine_headers

LOGGER = logging.getLogger(__name__)

TRANSCRIPTIONS_PATH = "/302/v1/audio/transcriptions"

TEXT_FORMATS = frozenset({"text", "srt", "vtt"})
JSON_ONLY_MODELS = frozenset({"gpt-4o-transcribe", "gpt-4o-mini-transcribe"})

# verbose_json reports the language by name.
LANGUAGE_CODES = {
    "afrikaans": "af",
    "arabic": "ar",
    "armenian": "hy",
    "azerbaijani": "az",
    "belarusian": "be",
    "bosnian": "bs",
    "bulgarian": "bg",
    "catalan": "ca",
    "chinese": "zh",
    "croatian": "hr",
    "czech": "cs",
    "danish": "da",
    "dutch": "nl",
    "english": "en",
    "estonian": "et",
    "finnish": "fi",
    "french": "fr",
    "galician": "gl",
    "german": "de",
    "greek": "el",
    "hebrew": "he",
    "hindi": "hi",
    "hungarian": "hu",
    "icelandic": "is",
    "indonesian": "id",
    "italian": "it",
    "japanese": "ja",
    "kannada": "kn",
    "kazakh": "kk",
    "korean": "ko",
    "latvian": "lv",
    "lithuanian": "lt",
    "macedonian": "mk",
    "malay": "ms",
    "marathi": "mr",
    "maori": "mi",
    "nepali": "ne",
    "norwegian": "no",
    "persian": "fa",
    "polish": "pl",
    "portuguese": "pt",
    "romanian": "ro",
    "russian": "ru",
    "serbian": "sr",
    "slovak": "sk",
    "slovenian": "sl",
    "spanish": "es",
    "swahili": "sw",
    "swedish": "sv",
    "tagalog": "tl",
    "tamil": "ta",
    "thai": "th",
    "turkish": "tr",
    "ukrainian": "uk",
    "urdu": "ur",
    "vietnamese": "vi",
    "welsh": "cy",
}

_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/opus": "ogg",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/flac": "flac",
    "audio/aac": "aac",
}


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _Word(_Payload):
    word: str
    start: float
    end: float


class _Segment(_Payload):
    text: str
    start: float
    end: float


class _SpeakerSegment(_Segment):
    speaker: str


class VerboseTranscription(_Payload):
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None
    words: Optional[list[_Word]] = None
    segments: Optional[list[_Segment]] = None


class JsonTranscription(_Payload):
    text: str


class DiarizedTranscription(_Payload):
    text: str
    segments: Optional[list[_SpeakerSegment]] = None


def default_response_format(model_id: str) -> TranscriptionFormat:
    return "json" if model_id in JSON_ONLY_MODELS else "verbose_json"


def media_type_extension(media_type: str) -> str:
    """Return the file extension used for uploads of ``media_type``."""

    base = media_type.split(";", 1)[0].strip().lower()
    if base in _EXTENSIONS:
        return _EXTENSIONS[base]
    return base.rpartition("/")[2] or "bin"


def _audio_bytes(audio: bytes | str) -> bytes:
    if isinstance(audio, (bytes, bytearray)):
        return bytes(audio)
    try:
        return base64.b64decode(audio, validate=True)
    except binascii.Error as exc:
        msg = "audio must be raw bytes or a base64 encoded string"
        raise AdapterError(msg) from exc


class Ai302TranscriptionModel(TranscriptionModel):
    """Transcription through ``/302/v1/audio/transcriptions``.

    The response format decides how the answer is read: ``text``, ``srt``
    and ``vtt`` come back as raw text, ``verbose_json`` carries segments or
    words with timings, and ``diarized_json`` prefixes each segment with its
    speaker.
    """

    def __init__(
        self,
        model_id: str,
        *,
        settings: ProviderSettings,
        transport: HttpTransport,
    ) -> None:
        super().__init__(model_id)
        self._settings = settings
        self._transport = transport

    def build_request(
        self,
        audio: bytes | str,
        *,
        media_type: str,
        options: TranscriptionOptions,
    ) -> tuple[dict[str, Any], dict[str, Upload], TranscriptionFormat, list[CallWarning]]:
        """Return ``(form, files, response_format, warnings)`` for one upload."""

        data = _audio_bytes(audio)
        if not data:
            msg = "audio to transcribe must not be empty"
            raise AdapterError(msg)

        response_format = options.response_format or default_response_format(self.model_id)
        form: dict[str, Any] = {
            "model": self.model_id,
            "response_format": response_format,
            "language": options.language or None,
            "prompt": options.prompt or None,
            "temperature": options.temperature,
            "timestamp_granularities": options.timestamp_granularities,
            "include": options.include,
        }
        files = {"file": (f"audio.{media_type_extension(media_type)}", data, media_type)}
        return form, files, response_format, []

    async def transcribe(
        self,
        audio: bytes | str,
        /,
        *,
        media_type: str = "audio/mpeg",
        provider_options: TranscriptionOptions | Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> TranscriptionResult:
        options = _transcription_options(provider_options)
        form, files, response_format, warnings = self.build_request(
            audio, media_type=media_type, options=options
        )
        request_headers = combine_headers(self._settings.request_headers(), headers)
        url = self._settings.url(self.model_id, TRANSCRIPTIONS_PATH)
        LOGGER.debug("transcribing %d bytes as %s", len(files["file"][1]), response_format)

        if response_format in TEXT_FORMATS:
            text_response = await self._transport.post_form_text(
                url, form=form, files=files, headers=request_headers, abort_signal=abort_signal
            )
            return assemble_transcription_result(
                text_response.text,
                model_id=self.model_id,
                warnings=warnings,
                headers=text_response.headers,
                body=text_response.text,
            )

        response = await self._transport.post_json(
            url, None, form=form, files=files, headers=request_headers, abort_signal=abort_signal
        )
        segments: list[TranscriptionSegment] = []
        language = None
        duration = None
        if response_format == "diarized_json":
            diarized = parse_payload(response.value, DiarizedTranscription)
            text = diarized.text
            segments = [
                TranscriptionSegment(f"[{segment.speaker}] {segment.text}", segment.start, segment.end)
                for segment in diarized.segments or ()
            ]
        elif response_format == "json":
            text = parse_payload(response.value, JsonTranscription).text
        else:
            verbose = parse_payload(response.value, VerboseTranscription)
            text = verbose.text
            language = LANGUAGE_CODES.get(verbose.language or "")
            duration = verbose.duration
            if verbose.segments:
                segments = [
                    TranscriptionSegment(segment.text, segment.start, segment.end)
                    for segment in verbose.segments
                ]
            elif verbose.words:
                segments = [
                    TranscriptionSegment(word.word, word.start, word.end) for word in verbose.words
                ]

        return assemble_transcription_result(
            text,
            model_id=self.model_id,
            segments=segments,
            language=language,
            duration_in_seconds=duration,
            warnings=warnings,
            headers=response.headers,
            body=response.value,
        )


def _transcription_options(
    value: TranscriptionOptions | Mapping[str, Any] | None,
) -> TranscriptionOptions:
    if isinstance(value, TranscriptionOptions):
        return value
    try:
        return TranscriptionOptions.model_validate(dict(value or {}))
    except ValidationError as exc:
        msg = f"invalid transcription options: {exc}"
        raise AdapterError(msg) from exc


__all__ = [
    "Ai302TranscriptionModel",
    "DiarizedTranscription",
    "JsonTranscription",
    "VerboseTranscription",
    "default_response_format",
    "media_type_extension",
]
