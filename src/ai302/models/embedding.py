"""OpenAI compatible embedding model."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import EmbeddingOptions, ProviderSettings
from ..core.adapters.base import EmbeddingModel
from ..core.adapters.frames import parse_payload
from ..core.adapters.stream import Usage
from ..core.errors import AdapterError
from ..results import EmbeddingResult, ResponseMetadata
from ..transport.abort import AbortSignal
from ..transport.http import HttpTransport, combine_headers

EMBEDDINGS_PATH = "/embeddings"


class _EmbeddingItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    embedding: List[float]


class _EmbeddingUsage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_tokens: Optional[int] = None


class EmbeddingResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[_EmbeddingItem]
    usage: Optional[_EmbeddingUsage] = None


class TooManyEmbeddingValuesError(AdapterError, ValueError):
    def __init__(self, model_id: str, limit: int, count: int) -> None:
        super().__init__(
            f"Too many values for a single embedding call. The ai302.embedding model "
            f'"{model_id}" can only embed up to {limit} values per call, but {count} values were provided.'
        )
        self.limit = limit
        self.count = count


class Ai302EmbeddingModel(EmbeddingModel):
    supports_parallel_calls = True

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

    async def embed(
        self,
        values: Sequence[str],
        /,
        *,
        provider_options: EmbeddingOptions | Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> EmbeddingResult:
        values = list(values)
        if len(values) > self.max_embeddings_per_call:
            raise TooManyEmbeddingValuesError(self.model_id, self.max_embeddings_per_call, len(values))

        options = _embedding_options(provider_options)
        body: dict[str, Any] = {
            "model": self.model_id,
            "input": values,
            "encoding_format": "float",
        }
        if options.dimensions is not None:
            body["dimensions"] = options.dimensions
        if options.user is not None:
            body["user"] = options.user

        response = await self._transport.post_json(
            self._settings.url(self.model_id, EMBEDDINGS_PATH),
            body,
            headers=combine_headers(self._settings.request_headers(), headers),
            abort_signal=abort_signal,
        )
        parsed = parse_payload(response.value, EmbeddingResponse)
        usage = Usage(input_tokens=parsed.usage.prompt_tokens) if parsed.usage else Usage()
        return EmbeddingResult(
            embeddings=tuple(tuple(item.embedding) for item in parsed.data),
            usage=usage,
            response=ResponseMetadata(headers=response.headers, body=response.value),
        )


def _embedding_options(value: EmbeddingOptions | Mapping[str, Any] | None) -> EmbeddingOptions:
    if isinstance(value, EmbeddingOptions):
        return value
    try:
        return EmbeddingOptions.model_validate(dict(value or {}))
    except ValidationError as exc:
        msg = f"invalid embedding options: {exc}"
        raise AdapterError(msg) from exc


__all__ = ["Ai302EmbeddingModel", "EmbeddingResponse", "TooManyEmbeddingValuesError"]
