"""Document reranking model."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any, List

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import ProviderSettings, RerankingOptions
from ..core.adapters.base import RerankingModel
from ..core.adapters.frames import parse_payload
from ..core.errors import AdapterError
from ..core.warnings import CallWarning
from ..results import RankedDocument, RerankResult, ResponseMetadata
from ..transport.abort import AbortSignal
from ..transport.http import HttpTransport, combine_headers

RERANK_PATH = "/v1/rerank"


class _RerankItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int
    relevance_score: float


class RerankResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: List[_RerankItem]


class Ai302RerankingModel(RerankingModel):
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

    async def rerank(
        self,
        query: str,
        documents: Sequence[Any],
        /,
        *,
        top_n: int | None = None,
        provider_options: RerankingOptions | Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> RerankResult:
        """Rank ``documents`` against ``query``.

        Documents that are not strings are sent as their JSON encoding and a
        warning is attached to the result.
        """

        options = _reranking_options(provider_options)
        warnings: list[CallWarning] = []
        texts = [
            document if isinstance(document, str) else json.dumps(document)
            for document in documents
        ]
        if any(not isinstance(document, str) for document in documents):
            warnings.append(
                CallWarning.unsupported(
                    "object documents", "Object documents are converted to strings."
                )
            )

        body: dict[str, Any] = {
            "model": self.model_id,
            "query": query,
            "documents": texts,
            "return_documents": options.return_documents,
        }
        if top_n is not None:
            body["top_n"] = top_n

        response = await self._transport.post_json(
            self._settings.url(self.model_id, RERANK_PATH),
            body,
            headers=combine_headers(self._settings.request_headers(), headers),
            abort_signal=abort_signal,
        )
        parsed = parse_payload(response.value, RerankResponse)
        return RerankResult(
            ranking=tuple(
                RankedDocument(index=item.index, relevance_score=item.relevance_score)
                for item in parsed.results
            ),
            warnings=tuple(warnings),
            response=ResponseMetadata(headers=response.headers, body=response.value),
        )


def _reranking_options(value: RerankingOptions | Mapping[str, Any] | None) -> RerankingOptions:
    if isinstance(value, RerankingOptions):
        return value
    try:
        return RerankingOptions.model_validate(dict(value or {}))
    except ValidationError as exc:
        msg = f"invalid reranking options: {exc}"
        raise AdapterError(msg) from exc


__all__ = ["Ai302RerankingModel", "RerankResponse"]
