"""Async HTTP transport shared by every model adapter."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ..core.errors import ArtifactDownloadError, FrameParseError, TransportError
from .abort import AbortSignal, run_abortable

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

Upload = tuple[str, bytes, str]
"""``(filename, content, content_type)`` of one uploaded file."""


def combine_headers(*sources: Optional[Mapping[str, Optional[str]]]) -> dict[str, str]:
    """Merge header mappings left to right, dropping ``None`` values."""

    merged: dict[str, str] = {}
    for source in sources:
        if not source:
            continue
        for key, value in source.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
    return merged


@dataclass(frozen=True, slots=True)
class JsonResponse:
    """Decoded JSON body together with the raw text and response headers."""

    value: Any
    raw_body: str
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TextResponse:
    """Undecoded text body, for endpoints answering with plain text or subtitles."""

    text: str
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)


class EventStreamResponse:
    """Open streaming response whose body is consumed line by line."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.status_code = response.status_code
        self.headers: dict[str, str] = dict(response.headers)

    def lines(self) -> AsyncIterator[str]:
        return self._response.aiter_lines()

    async def aclose(self) -> None:
        await self._response.aclose()


class HttpTransport:
    """Thin wrapper around :class:`httpx.AsyncClient` with uniform error mapping.

    Every non-2xx answer raises :class:`TransportError` carrying the status
    code and the upstream ``error.message`` when the body provides one.
    Network failures raise :class:`TransportError` without a status code.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.aclose()

    async def post_json(
        self,
        url: str,
        body: Any,
        *,
        form: Mapping[str, Any] | None = None,
        files: Mapping[str, Upload] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> JsonResponse:
        return await self.request_json(
            "POST",
            url,
            body=body,
            form=form,
            files=files,
            headers=headers,
            abort_signal=abort_signal,
        )

    async def get_json(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> JsonResponse:
        return await self.request_json("GET", url, headers=headers, abort_signal=abort_signal)

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        body: Any = None,
        form: Mapping[str, Any] | None = None,
        files: Mapping[str, Upload] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> JsonResponse:
        """Send ``body`` as JSON, or ``form`` and ``files`` as ``multipart/form-data``, and decode the reply."""

        LOGGER.debug("%s %s", method, url)
        kwargs: dict[str, Any] = {"headers": dict(headers or {})}
        if form is not None or files is not None:
            kwargs["files"] = _multipart(form, files)
        elif body is not None:
            kwargs["json"] = body

        response = await self._send(
            self.client.request(method, url, **kwargs),
            url=url,
            abort_signal=abort_signal,
        )
        if response.is_error:
            raise self._status_error(response, url)

        raw_body = response.text
        try:
            value = json.loads(raw_body) if raw_body else None
        except ValueError as exc:
            msg = f"invalid JSON response from {url}"
            raise FrameParseError(msg, raw=raw_body) from exc
        return JsonResponse(
            value=value,
            raw_body=raw_body,
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    async def post_form_text(
        self,
        url: str,
        *,
        form: Mapping[str, Any] | None = None,
        files: Mapping[str, Upload] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> TextResponse:
        """POST a multipart form and return the body as text, without JSON decoding."""

        LOGGER.debug("POST %s (text)", url)
        response = await self._send(
            self.client.post(url, files=_multipart(form, files), headers=dict(headers or {})),
            url=url,
            abort_signal=abort_signal,
        )
        if response.is_error:
            raise self._status_error(response, url)
        return TextResponse(
            text=response.text,
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    async def open_event_stream(
        self,
        url: str,
        body: Any,
        *,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> EventStreamResponse:
        """POST ``body`` and return the still-open server-sent event response."""

        LOGGER.debug("POST %s (stream)", url)
        request = self.client.build_request(
            "POST",
            url,
            json=body,
            headers=combine_headers({"Accept": "text/event-stream"}, headers),
        )
        response = await self._send(
            self.client.send(request, stream=True),
            url=url,
            abort_signal=abort_signal,
        )
        if response.is_error:
            await response.aread()
            await response.aclose()
            raise self._status_error(response, url)
        return EventStreamResponse(response)

    async def get_bytes(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> bytes:
        """Download ``url`` in full; failures keep the status and reason text."""

        LOGGER.debug("GET %s (artifact)", url)
        response = await self._send(
            self.client.get(url, headers=dict(headers or {})),
            url=url,
            abort_signal=abort_signal,
        )
        if response.is_error:
            raise ArtifactDownloadError(url, response.status_code, response.reason_phrase)
        return response.content

    async def _send(
        self,
        call: Any,
        *,
        url: str,
        abort_signal: AbortSignal | None,
    ) -> httpx.Response:
        try:
            return await run_abortable(call, abort_signal)
        except httpx.RequestError as exc:
            msg = f"request to {url} failed: {exc}"
            raise TransportError(msg, url=url) from exc

    def _status_error(self, response: httpx.Response, url: str) -> TransportError:
        body = response.text
        message = _error_message(body) or f"HTTP error! status: {response.status_code}"
        return TransportError(message, status_code=response.status_code, url=url, body=body)


def _multipart(
    form: Mapping[str, Any] | None,
    files: Mapping[str, Upload] | None,
) -> list[tuple[str, Any]]:
    # List values repeat as ``key[]`` fields; ``None`` values are left out.
    parts: list[tuple[str, Any]] = []
    for key, value in (form or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            parts.extend((f"{key}[]", (None, str(item))) for item in value)
        else:
            parts.append((key, (None, str(value))))
    parts.extend((key, upload) for key, upload in (files or {}).items())
    return parts


def _error_message(body: str) -> str | None:
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return body
    if isinstance(data, Mapping):
        error = data.get("error")
        if isinstance(error, Mapping) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
        if isinstance(data.get("message"), str):
            return data["message"]
    return json.dumps(data)


__all__ = [
    "EventStreamResponse",
    "HttpTransport",
    "JsonResponse",
    "TextResponse",
    "Upload",
    "combine_headers",
]
