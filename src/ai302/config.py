"""Provider and per-model configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BASE_URL = "https://api.302.ai"
API_KEY_ENV = "AI302_API_KEY"
BASE_URL_ENV = "AI302_BASE_URL"
DEFAULT_TIMEOUT = 60.0


@dataclass(slots=True)
class ProviderSettings:
    """Connection settings shared by every model of one provider instance.

    Attributes
    ----------
    api_key:
        The 302.AI API key. It is only required once request headers are
        built, so a provider can be constructed before the key is known.
    base_url:
        Prefix for every endpoint. A trailing slash is removed.
    headers:
        Extra headers sent with every request. They override the
        authentication headers when keys collide.
    timeout:
        Seconds before an HTTP request is abandoned; ``None`` disables it.
    """

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        base_url = (self.base_url or "").strip().rstrip("/")
        self.base_url = base_url or DEFAULT_BASE_URL
        self.headers = dict(self.headers)

    @classmethod
    def from_env(
        cls,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        environ: Mapping[str, str] | None = None,
    ) -> "ProviderSettings":
        """Build settings, falling back to ``AI302_API_KEY``/``AI302_BASE_URL``."""

        env = os.environ if environ is None else environ
        return cls(
            api_key=api_key or env.get(API_KEY_ENV),
            base_url=base_url or env.get(BASE_URL_ENV) or DEFAULT_BASE_URL,
            headers=headers or {},
            timeout=timeout,
        )

    def resolve_api_key(self) -> str:
        if not self.api_key:
            msg = (
                "302 AI API key is missing. Pass it using the 'api_key' parameter "
                f"or the {API_KEY_ENV} environment variable."
            )
            raise ValueError(msg)
        return self.api_key

    def url(self, model_id: str, path: str) -> str:
        """Resolve the endpoint serving ``path`` for ``model_id``."""

        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def request_headers(self) -> dict[str, str]:
        key = self.resolve_api_key()
        return {
            "Authorization": f"Bearer {key}",
            "mj-api-secret": key,
            **self.headers,
        }


class _Options(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class ChatSettings(_Options):
    """Model level chat settings.

    ``thinking`` is forwarded verbatim, e.g. ``{"type": "enabled"}`` for
    DeepSeek style reasoning models.
    """

    thinking: Optional[dict[str, Any]] = None


class SpeechOptions(_Options):
    run_async: bool = Field(default=False, alias="runAsync")
    webhook: Optional[str] = None
    timeout: Optional[float] = None
    model: Optional[str] = None
    volume: Optional[float] = Field(default=None, ge=0, le=2)
    emotion: Optional[str] = None
    poll_interval: float = Field(default=2.0, gt=0, alias="pollInterval")
    max_poll_attempts: int = Field(default=90, ge=1, alias="maxPollAttempts")


class EmbeddingOptions(_Options):
    dimensions: Optional[int] = Field(default=None, gt=0)
    user: Optional[str] = None


class RerankingOptions(_Options):
    return_documents: bool = Field(default=True, alias="returnDocuments")


TranscriptionFormat = Literal["json", "text", "srt", "vtt", "verbose_json", "diarized_json"]


class TranscriptionOptions(_Options):
    """Options of the transcription endpoint.

    ``response_format`` defaults per model: ``json`` for the GPT-4o
    transcribe models, ``verbose_json`` otherwise.
    """

    language: Optional[str] = None
    prompt: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=1)
    response_format: Optional[TranscriptionFormat] = Field(default=None, alias="responseFormat")
    timestamp_granularities: Optional[list[Literal["word", "segment"]]] = Field(
        default=None, alias="timestampGranularities"
    )
    include: Optional[list[str]] = None


__all__ = [
    "API_KEY_ENV",
    "BASE_URL_ENV",
    "ChatSettings",
    "DEFAULT_BASE_URL",
    "EmbeddingOptions",
    "ProviderSettings",
    "RerankingOptions",
    "SpeechOptions",
    "TranscriptionFormat",
    "TranscriptionOptions",
]
