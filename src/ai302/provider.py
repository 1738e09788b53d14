"""Provider factory handing out models that share settings and an HTTP client."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from .config import DEFAULT_TIMEOUT, ChatSettings, ProviderSettings
from .core.adapters.chat import ChatLanguageModel
from .models.embedding import Ai302EmbeddingModel
from .models.image import Ai302ImageModel
from .models.reranking import Ai302RerankingModel
from .models.speech import Ai302SpeechModel
from .models.transcription import Ai302TranscriptionModel
from .tasks.poller import PollSettings
from .transport.http import HttpTransport


class Ai302Provider:
    """Entry point exposing every model family of the 302.AI gateway.

    Calling the provider directly is a shortcut for :meth:`chat`.
    """

    def __init__(self, settings: ProviderSettings, transport: HttpTransport) -> None:
        self.settings = settings
        self.transport = transport

    def __call__(self, model_id: str, **kwargs: Any) -> ChatLanguageModel:
        return self.chat(model_id, **kwargs)

    def chat(
        self,
        model_id: str,
        *,
        settings: ChatSettings | Mapping[str, Any] | None = None,
    ) -> ChatLanguageModel:
        if settings is not None and not isinstance(settings, ChatSettings):
            settings = ChatSettings.model_validate(dict(settings))
        return ChatLanguageModel(
            model_id, settings=self.settings, transport=self.transport, chat_settings=settings
        )

    language_model = chat

    def image(self, model_id: str, *, poll_settings: PollSettings | None = None) -> Ai302ImageModel:
        return Ai302ImageModel(
            model_id, settings=self.settings, transport=self.transport, poll_settings=poll_settings
        )

    def speech(self, model_id: str) -> Ai302SpeechModel:
        return Ai302SpeechModel(model_id, settings=self.settings, transport=self.transport)

    def transcription(self, model_id: str) -> Ai302TranscriptionModel:
        return Ai302TranscriptionModel(model_id, settings=self.settings, transport=self.transport)

    def embedding(self, model_id: str) -> Ai302EmbeddingModel:
        return Ai302EmbeddingModel(model_id, settings=self.settings, transport=self.transport)

    def reranking(self, model_id: str) -> Ai302RerankingModel:
        return Ai302RerankingModel(model_id, settings=self.settings, transport=self.transport)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> Ai302Provider:
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.aclose()


def create_ai302(
    *,
    api_key: str | None = None,
    base_url: str | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float | None = DEFAULT_TIMEOUT,
    client: httpx.AsyncClient | None = None,
) -> Ai302Provider:
    """Create a provider; unset values fall back to ``AI302_API_KEY``/``AI302_BASE_URL``.

    Pass ``client`` to route requests through a custom
    :class:`httpx.AsyncClient`, for instance one using a mock transport.
    """

    settings = ProviderSettings.from_env(
        api_key=api_key, base_url=base_url, headers=headers, timeout=timeout
    )
    return Ai302Provider(settings, HttpTransport(client, timeout=timeout))


__all__ = ["Ai302Provider", "create_ai302"]
