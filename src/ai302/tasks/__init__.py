"""Asynchronous task completion: polling and artifact download."""

from __future__ import annotations

from .artifacts import complete_task, decode_data_url, fetch_artifact, fetch_artifacts
from .poller import (
    PollSettings,
    StatusKind,
    TaskHandle,
    TaskStatus,
    http_status_fetcher,
    poll_task,
)

__all__ = [
    "PollSettings",
    "StatusKind",
    "TaskHandle",
    "TaskStatus",
    "complete_task",
    "decode_data_url",
    "fetch_artifact",
    "fetch_artifacts",
    "http_status_fetcher",
    "poll_task",
]
