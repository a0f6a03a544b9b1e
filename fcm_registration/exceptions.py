# fcm_registration/exceptions.py
"""Exception types raised by the registration handshake."""

from __future__ import annotations


class FcmRegistrationError(Exception):
    """Base exception for the registration client."""


class ConfigurationError(FcmRegistrationError):
    """Raised when service configuration or persisted state is malformed."""


class RequestInFlightError(FcmRegistrationError):
    """Raised when a second request is dispatched while one is in flight."""

    def __init__(self) -> None:
        super().__init__("A handshake request is already in flight")


class StageError(FcmRegistrationError):
    """Base class for failures of a single handshake stage.

    Every subclass is recoverable: the controller invalidates the affected
    state and the next ``register`` call restarts from the right stage.
    """


class TransportError(StageError):
    """Raised when no usable response was obtained from the backend."""

    def __init__(self, status: int | None = None, detail: str | None = None):
        if status is None:
            message = f"Transport failure: {detail or ''}".strip()
        else:
            message = f"HTTP {status}: {detail or ''}".strip()
        super().__init__(message)
        self.status = status
        self.detail = detail


class ResponseParseError(StageError):
    """Raised when a response lacks a required field."""


class MissingPrerequisiteError(StageError):
    """Raised when a stage is attempted without the state it depends on."""
