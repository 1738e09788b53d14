"""Download generated artifacts referenced by URL."""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Mapping, Sequence
from urllib.parse import unquote_to_bytes

from ..core.errors import FrameParseError
from ..transport.abort import AbortSignal, raise_if_aborted
from ..transport.http import HttpTransport
from .poller import FetchStatus, NormalizeStatus, TaskHandle, http_status_fetcher, poll_task

LOGGER = logging.getLogger(__name__)


def decode_data_url(url: str) -> bytes:
    """Decode an inline ``data:`` URL."""

    header, sep, payload = url.partition(",")
    if not sep:
        raise FrameParseError("data URL has no payload separator", raw=url[:64])
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise FrameParseError("data URL carries invalid base64 content", raw=url[:64]) from exc
    return unquote_to_bytes(payload)


async def fetch_artifact(
    transport: HttpTransport,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    abort_signal: AbortSignal | None = None,
) -> bytes:
    """Exchange ``url`` for its raw bytes with a single request.

    Failures raise :class:`~ai302.core.errors.ArtifactDownloadError`
    carrying the status code and reason; nothing is retried.
    """

    raise_if_aborted(abort_signal, "Artifact download aborted")
    if url.startswith("data:"):
        return decode_data_url(url)
    return await transport.get_bytes(url, headers=headers, abort_signal=abort_signal)


async def fetch_artifacts(
    transport: HttpTransport,
    urls: Sequence[str],
    *,
    headers: Mapping[str, str] | None = None,
    abort_signal: AbortSignal | None = None,
) -> list[bytes]:
    artifacts = []
    for url in urls:
        artifacts.append(
            await fetch_artifact(transport, url, headers=headers, abort_signal=abort_signal)
        )
    return artifacts


async def complete_task(
    transport: HttpTransport,
    handle: TaskHandle,
    normalize: NormalizeStatus,
    *,
    fetch_status: FetchStatus | None = None,
    abort_signal: AbortSignal | None = None,
) -> tuple[list[bytes], object]:
    """Poll ``handle`` to success and download every artifact it references.

    Returns the downloaded payloads and the raw terminal status payload.
    """

    status = await poll_task(
        handle,
        fetch_status=fetch_status or http_status_fetcher(transport, abort_signal=abort_signal),
        normalize=normalize,
        abort_signal=abort_signal,
    )
    LOGGER.debug("Task %s produced %d artifact(s)", handle.task_id, len(status.artifact_urls))
    artifacts = await fetch_artifacts(transport, status.artifact_urls, abort_signal=abort_signal)
    return artifacts, status.raw


__all__ = ["complete_task", "decode_data_url", "fetch_artifact", "fetch_artifacts"]
