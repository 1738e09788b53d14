"""Image, speech, transcription, embedding and reranking models."""

from __future__ import annotations

from .embedding import Ai302EmbeddingModel, TooManyEmbeddingValuesError
from .image import Ai302ImageModel
from .image_backends import BACKENDS, ImageRequest, resolve_backend
from .reranking import Ai302RerankingModel
from .speech import Ai302SpeechModel
from .transcription import Ai302TranscriptionModel

__all__ = [
    "Ai302EmbeddingModel",
    "Ai302ImageModel",
    "Ai302RerankingModel",
    "Ai302SpeechModel",
    "Ai302TranscriptionModel",
    "BACKENDS",
    "ImageRequest",
    "TooManyEmbeddingValuesError",
    "resolve_backend",
]
