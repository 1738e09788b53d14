from __future__ import annotations

import asyncio

import httpx
import pytest

from ai302 import Ai302Provider, ChatSettings, Message, MessageRole, create_ai302
from ai302.core.adapters.chat import ChatLanguageModel
from ai302.models import (
    Ai302EmbeddingModel,
    Ai302ImageModel,
    Ai302RerankingModel,
    Ai302SpeechModel,
    Ai302TranscriptionModel,
)


def test_factory_hands_out_every_model_kind() -> None:
    provider = create_ai302(api_key="k")

    chat = provider("gpt-4o")
    assert isinstance(chat, ChatLanguageModel)
    assert chat.provider == "ai302.chat"
    assert isinstance(provider.language_model("gpt-4o"), ChatLanguageModel)
    assert isinstance(provider.image("dall-e-3"), Ai302ImageModel)
    assert isinstance(provider.speech("openai/alloy"), Ai302SpeechModel)
    assert isinstance(provider.transcription("whisper-1"), Ai302TranscriptionModel)
    assert isinstance(provider.embedding("text-embedding-3-small"), Ai302EmbeddingModel)
    assert provider.reranking("bge-reranker").provider == "ai302.reranking"
    assert isinstance(provider.reranking("bge-reranker"), Ai302RerankingModel)


def test_factory_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AI302_API_KEY", "env-key")
    monkeypatch.setenv("AI302_BASE_URL", "https://proxy.test/")

    provider = create_ai302()

    assert provider.settings.api_key == "env-key"
    assert provider.settings.base_url == "https://proxy.test"


def test_chat_settings_and_custom_client_reach_the_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"content": "hi"}, "finish_reason": "stop"}]},
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = create_ai302(
        api_key="k", base_url="https://api.test", headers={"X-App": "demo"}, client=client
    )
    model = provider.chat("deepseek-reasoner", settings={"thinking": {"type": "enabled"}})

    async def _run() -> str:
        async with provider:
            result = await model.generate([Message(MessageRole.USER, "hello")])
        return result.text

    assert asyncio.run(_run()) == "hi"
    (request,) = seen
    assert str(request.url) == "https://api.test/v1/chat/completions"
    assert request.headers["x-app"] == "demo"
    assert b'"thinking"' in request.content
    assert isinstance(provider, Ai302Provider)
    assert ChatSettings(thinking={"type": "enabled"}).thinking == {"type": "enabled"}
