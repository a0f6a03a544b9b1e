# fcm_registration/_typing.py
"""Shared typing helpers for the registration handshake."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

if TYPE_CHECKING:
    from .models import CheckinRecord, InstallationRecord

JSONDict: TypeAlias = dict[str, Any]

# Invoked by the executor with either the response body or the error.
CompletionCallable: TypeAlias = Callable[[bytes | None, BaseException | None], None]


class CheckinUpdatedCallable(Protocol):
    """Callable protocol for check-in record notifications."""

    def __call__(self, checkin: CheckinRecord) -> None:
        """Persist or react to a refreshed check-in record."""


class InstallationUpdatedCallable(Protocol):
    """Callable protocol for installation record notifications."""

    def __call__(self, installation: InstallationRecord) -> None:
        """Persist or react to a refreshed installation record."""


class PushTokenUpdatedCallable(Protocol):
    """Callable protocol for push token notifications."""

    def __call__(self, push_token: str, platform_token: bytes) -> None:
        """React to a newly registered push token."""


__all__ = [
    "CheckinUpdatedCallable",
    "CompletionCallable",
    "InstallationUpdatedCallable",
    "JSONDict",
    "PushTokenUpdatedCallable",
]
