"""Compatibility warnings collected while building upstream requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

WarningType = Literal["unsupported", "other"]


@dataclass(frozen=True, slots=True)
class CallWarning:
    """A call setting the upstream backend ignores or adjusts.

    ``unsupported`` warnings name the ignored ``feature``; ``other`` warnings
    carry a free form ``message``.
    """

    type: WarningType
    feature: str | None = None
    details: str | None = None
    message: str | None = None

    @classmethod
    def unsupported(cls, feature: str, details: str | None = None) -> "CallWarning":
        return cls("unsupported", feature=feature, details=details)

    @classmethod
    def other(cls, message: str) -> "CallWarning":
        return cls("other", message=message)


__all__ = ["CallWarning", "WarningType"]
