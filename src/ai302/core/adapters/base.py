"""Model interfaces exposed to the host framework.

Each capability (chat, image, speech, transcription, embedding, reranking) is a
separate interface; one provider instance hands out implementations keyed by
model identifier.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from ..message import Message

if TYPE_CHECKING:  # pragma: no cover
    from ...results import (
        EmbeddingResult,
        GenerateResult,
        ImageResult,
        RerankResult,
        SpeechResult,
        StreamResult,
        TranscriptionResult,
    )


class Model(ABC):
    """Attributes shared by every model handed out by the provider."""

    kind: ClassVar[str] = "model"

    def __init__(self, model_id: str) -> None:
        if not isinstance(model_id, str) or not model_id.strip():
            msg = "model id must be a non-empty string"
            raise ValueError(msg)
        self.model_id = model_id

    @property
    def provider(self) -> str:
        return f"ai302.{self.kind}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.model_id!r})"


class LanguageModel(Model):
    kind = "chat"

    @abstractmethod
    async def generate(self, messages: Sequence[Message], /, **options: Any) -> GenerateResult:
        """Run one non-streaming completion."""

    @abstractmethod
    async def stream(self, messages: Sequence[Message], /, **options: Any) -> StreamResult:
        """Open a streaming completion and return its decoded event stream."""


class ImageModel(Model):
    kind = "image"

    @abstractmethod
    async def generate(self, prompt: str, /, **options: Any) -> ImageResult:
        """Generate images for ``prompt`` and return their bytes."""


class SpeechModel(Model):
    kind = "speech"

    @abstractmethod
    async def generate(self, text: str, /, **options: Any) -> SpeechResult:
        """Synthesize ``text`` and return the audio bytes."""


class EmbeddingModel(Model):
    kind = "embedding"
    max_embeddings_per_call: ClassVar[int] = 2048

    @abstractmethod
    async def embed(self, values: Sequence[str], /, **options: Any) -> EmbeddingResult:
        """Embed every value, preserving order."""


class TranscriptionModel(Model):
    kind = "transcription"

    @abstractmethod
    async def transcribe(self, audio: bytes | str, /, **options: Any) -> TranscriptionResult:
        """Transcribe raw or base64 encoded ``audio``."""


class RerankingModel(Model):
    kind = "reranking"

    @abstractmethod
    async def rerank(
        self, query: str, documents: Sequence[Any], /, **options: Any
    ) -> RerankResult:
        """Order ``documents`` by relevance to ``query``."""


__all__ = [
    "EmbeddingModel",
    "ImageModel",
    "LanguageModel",
    "Model",
    "RerankingModel",
    "SpeechModel",
    "TranscriptionModel",
]
