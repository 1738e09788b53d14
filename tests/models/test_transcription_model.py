from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from ai302.core.errors import AdapterError, TransportError
from ai302.models.transcription import (
    Ai302TranscriptionModel,
    default_response_format,
    media_type_extension,
)
from ai302.results import TranscriptionSegment

from tests.fixtures.fake_api import FakeApi, settings

PATH = "/302/v1/audio/transcriptions"
AUDIO = b"ID3\x03fake-mp3"


def _model(api: FakeApi, model_id: str = "whisper-1") -> Ai302TranscriptionModel:
    return Ai302TranscriptionModel(model_id, settings=settings(), transport=api.transport())


def _field(name: str, value: str) -> bytes:
    return f'name="{name}"\r\n\r\n{value}\r\n'.encode()


def test_verbose_json_maps_language_duration_and_segments() -> None:
    api = FakeApi().add(
        "POST",
        PATH,
        {
            "task": "transcribe",
            "text": "Hello world",
            "language": "english",
            "duration": 2.5,
            "segments": [
                {"id": 0, "seek": 0, "start": 0.0, "end": 1.2, "text": "Hello", "tokens": [1]},
                {"id": 1, "seek": 0, "start": 1.2, "end": 2.5, "text": " world", "tokens": [2]},
            ],
        },
    )

    result = asyncio.run(
        _model(api).transcribe(
            AUDIO,
            provider_options={"timestampGranularities": ["segment", "word"], "temperature": 0.5},
        )
    )

    assert result.text == "Hello world"
    assert result.language == "en"
    assert result.duration_in_seconds == 2.5
    assert result.segments == (
        TranscriptionSegment("Hello", 0.0, 1.2),
        TranscriptionSegment(" world", 1.2, 2.5),
    )
    assert result.response.model_id == "whisper-1"
    assert result.response.timestamp is not None

    (request,) = api.requests
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert request.headers["authorization"] == "Bearer test-key"
    content = request.content
    assert _field("model", "whisper-1") in content
    assert _field("response_format", "verbose_json") in content
    assert _field("temperature", "0.5") in content
    assert _field("timestamp_granularities[]", "segment") in content
    assert _field("timestamp_granularities[]", "word") in content
    assert b'name="file"; filename="audio.mp3"\r\nContent-Type: audio/mpeg\r\n\r\n' + AUDIO in content
    assert b'name="language"' not in content


def test_verbose_json_falls_back_to_words() -> None:
    api = FakeApi().add(
        "POST",
        PATH,
        {
            "text": "Hi there",
            "language": "klingon",
            "words": [{"word": "Hi", "start": 0, "end": 0.4}, {"word": "there", "start": 0.4, "end": 0.9}],
        },
    )

    result = asyncio.run(_model(api).transcribe(AUDIO, media_type="audio/wav"))

    assert result.language is None
    assert result.duration_in_seconds is None
    assert [segment.text for segment in result.segments] == ["Hi", "there"]
    assert b'filename="audio.wav"' in api.requests[0].content


def test_json_only_models_default_to_plain_json() -> None:
    api = FakeApi().add("POST", PATH, {"text": "Bonjour", "usage": {"total_tokens": 12}})

    result = asyncio.run(
        _model(api, "gpt-4o-transcribe").transcribe(AUDIO, provider_options={"language": "fr"})
    )

    assert result.text == "Bonjour"
    assert result.segments == ()
    assert result.language is None
    content = api.requests[0].content
    assert _field("response_format", "json") in content
    assert _field("language", "fr") in content


def test_diarized_segments_carry_the_speaker() -> None:
    api = FakeApi().add(
        "POST",
        PATH,
        {
            "text": "Hi. Hello.",
            "segments": [
                {"id": "s0", "speaker": "A", "start": 0.0, "end": 0.8, "text": "Hi."},
                {"id": "s1", "speaker": "B", "start": 0.8, "end": 1.6, "text": "Hello."},
            ],
        },
    )

    result = asyncio.run(
        _model(api, "gpt-4o-transcribe-diarize").transcribe(
            AUDIO, provider_options={"responseFormat": "diarized_json"}
        )
    )

    assert [segment.text for segment in result.segments] == ["[A] Hi.", "[B] Hello."]
    assert result.segments[1].end_second == 1.6


def test_subtitle_formats_return_the_raw_body() -> None:
    srt = "1\n00:00:00,000 --> 00:00:01,200\nHello\n"
    api = FakeApi().add(
        "POST",
        PATH,
        httpx.Response(200, text=srt, headers={"x-request-id": "req-9"}),
    )

    result = asyncio.run(_model(api).transcribe(AUDIO, provider_options={"responseFormat": "srt"}))

    assert result.text == srt
    assert result.response.body == srt
    assert result.response.headers["x-request-id"] == "req-9"
    assert _field("response_format", "srt") in api.requests[0].content


def test_text_format_failures_keep_the_upstream_message() -> None:
    api = FakeApi().add(
        "POST", PATH, httpx.Response(400, json={"error": {"message": "unsupported audio"}})
    )

    with pytest.raises(TransportError, match="unsupported audio") as excinfo:
        asyncio.run(_model(api).transcribe(AUDIO, provider_options={"responseFormat": "text"}))
    assert excinfo.value.status_code == 400


def test_base64_audio_is_decoded_before_upload() -> None:
    api = FakeApi().add("POST", PATH, {"text": "ok"})

    asyncio.run(
        _model(api).transcribe(
            base64.b64encode(AUDIO).decode(), provider_options={"responseFormat": "json"}
        )
    )

    assert AUDIO in api.requests[0].content


def test_invalid_audio_and_options_are_rejected_before_any_request() -> None:
    api = FakeApi()
    model = _model(api)

    with pytest.raises(AdapterError, match="base64"):
        asyncio.run(model.transcribe("not base64!"))
    with pytest.raises(AdapterError, match="must not be empty"):
        asyncio.run(model.transcribe(b""))
    with pytest.raises(AdapterError, match="invalid transcription options"):
        asyncio.run(model.transcribe(AUDIO, provider_options={"temperature": 2}))
    with pytest.raises(AdapterError, match="invalid transcription options"):
        asyncio.run(model.transcribe(AUDIO, provider_options={"responseFormat": "xml"}))
    assert api.requests == []


def test_format_and_extension_helpers() -> None:
    assert default_response_format("gpt-4o-mini-transcribe") == "json"
    assert default_response_format("sensevoice") == "verbose_json"
    assert media_type_extension("audio/x-m4a") == "m4a"
    assert media_type_extension("audio/mpeg; codecs=mp3") == "mp3"
    assert media_type_extension("audio/amr") == "amr"
