"""Image generation model driving the backend table through poller and fetcher."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from ..config import ProviderSettings
from ..core.adapters.base import ImageModel
from ..core.errors import UpstreamError
from ..core.warnings import CallWarning
from ..results import ImageResult, assemble_image_result
from ..tasks.artifacts import complete_task, fetch_artifacts
from ..tasks.poller import PollSettings, StatusKind, TaskHandle, TaskStatus, http_status_fetcher, poll_task
from ..transport.abort import AbortSignal
from ..transport.http import HttpTransport, combine_headers
from .image_backends import (
    AsyncBackend,
    ImageBackend,
    ImageRequest,
    MidjourneyBackend,
    SyncBackend,
    resolve_backend,
    upscale_custom_id,
)

LOGGER = logging.getLogger(__name__)


def _require_mapping(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise UpstreamError("image API returned a non-object JSON payload", payload=payload)
    return payload


class Ai302ImageModel(ImageModel):
    """Image model whose behaviour is selected by ``model_id``.

    ``poll_settings`` replaces the backend's polling cadence, which is
    mostly useful to shorten intervals in tests.
    """

    max_images_per_call = 1

    def __init__(
        self,
        model_id: str,
        *,
        settings: ProviderSettings,
        transport: HttpTransport,
        backend: ImageBackend | None = None,
        poll_settings: PollSettings | None = None,
    ) -> None:
        super().__init__(model_id)
        self._settings = settings
        self._transport = transport
        self._backend = backend or resolve_backend(model_id)
        self._poll_settings = poll_settings

    @property
    def backend(self) -> ImageBackend:
        return self._backend

    async def generate(
        self,
        prompt: str,
        /,
        *,
        n: int | None = None,
        size: str | None = None,
        aspect_ratio: str | None = None,
        seed: int | None = None,
        provider_options: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        abort_signal: AbortSignal | None = None,
    ) -> ImageResult:
        request = ImageRequest(
            prompt=prompt,
            n=n,
            size=size,
            aspect_ratio=aspect_ratio,
            seed=seed,
            provider_options=dict(provider_options or {}),
        )
        warnings: list[CallWarning] = []
        body = self._backend.build_body(self.model_id, request, warnings)
        request_headers = combine_headers(self._settings.request_headers(), headers)

        backend = self._backend
        submit_url = self._settings.url(self.model_id, backend.path(self.model_id))
        LOGGER.debug("Submitting %s image request to %s", self.model_id, submit_url)
        if isinstance(backend, SyncBackend) and backend.form:
            response = await self._transport.post_json(
                submit_url, None, form=body, headers=request_headers, abort_signal=abort_signal
            )
        else:
            response = await self._transport.post_json(
                submit_url, body, headers=request_headers, abort_signal=abort_signal
            )
        payload = _require_mapping(response.value)

        if isinstance(backend, SyncBackend):
            images = await self._collect_sync(backend, payload, abort_signal)
        elif isinstance(backend, MidjourneyBackend):
            images = await self._collect_midjourney(
                backend, payload, request, request_headers, abort_signal
            )
        else:
            images, _ = await complete_task(
                self._transport,
                self._handle(backend, backend.task_id(payload), request_headers),
                lambda raw: backend.normalize(_require_mapping(raw)),
                abort_signal=abort_signal,
            )

        return assemble_image_result(
            images,
            model_id=self.model_id,
            warnings=warnings,
            headers=response.headers,
        )

    async def _collect_sync(
        self,
        backend: SyncBackend,
        payload: Mapping[str, Any],
        abort_signal: AbortSignal | None,
    ) -> list[bytes]:
        status = backend.extract(payload)
        if status.kind is not StatusKind.SUCCEEDED or not status.artifact_urls:
            reason = status.reason or "No image URL in the response"
            raise UpstreamError(f"Image generation failed: {reason}", payload=payload)
        return await fetch_artifacts(self._transport, status.artifact_urls, abort_signal=abort_signal)

    async def _collect_midjourney(
        self,
        backend: MidjourneyBackend,
        payload: Mapping[str, Any],
        request: ImageRequest,
        request_headers: Mapping[str, str],
        abort_signal: AbortSignal | None,
    ) -> list[bytes]:
        task_id = backend.task_id(payload)
        grid = await self._poll(backend, task_id, request_headers, abort_signal)

        count = min(request.n or 1, backend.max_images)
        action_url = self._settings.url(self.model_id, backend.action_path)

        async def upscale(index: int) -> TaskStatus:
            action = await self._transport.post_json(
                action_url,
                {"customId": upscale_custom_id(grid.raw, index), "taskId": task_id},
                headers=request_headers,
                abort_signal=abort_signal,
            )
            upscale_id = backend.task_id(_require_mapping(action.value))
            return await self._poll(backend, upscale_id, request_headers, abort_signal)

        tasks = [asyncio.ensure_future(upscale(index)) for index in range(1, count + 1)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        urls = [url for status in results for url in status.artifact_urls[:1]]
        return await fetch_artifacts(self._transport, urls, abort_signal=abort_signal)

    async def _poll(
        self,
        backend: AsyncBackend | MidjourneyBackend,
        task_id: str,
        request_headers: Mapping[str, str],
        abort_signal: AbortSignal | None,
    ) -> TaskStatus:
        return await poll_task(
            self._handle(backend, task_id, request_headers),
            fetch_status=http_status_fetcher(self._transport, abort_signal=abort_signal),
            normalize=lambda raw: backend.normalize(_require_mapping(raw)),
            abort_signal=abort_signal,
        )

    def _handle(
        self,
        backend: AsyncBackend | MidjourneyBackend,
        task_id: str,
        request_headers: Mapping[str, str],
    ) -> TaskHandle:
        poll = backend.poll
        if self._poll_settings is not None:
            poll = replace(self._poll_settings, retryable_status_codes=poll.retryable_status_codes)
        return TaskHandle(
            task_id=task_id,
            status_url=self._settings.url(self.model_id, backend.status_path(task_id)),
            settings=poll,
            headers=dict(request_headers),
        )


__all__ = ["Ai302ImageModel"]
