"""Application-level exception types for ariachat."""

from __future__ import annotations


class AriaError(Exception):
    """Base exception for ariachat."""


class ConfigurationError(AriaError):
    """Raised when settings cannot produce a usable client."""


class SessionError(AriaError):
    """Raised when a session cannot be created or looked up."""


class TurnError(AriaError):
    """Raised out of a turn when it cannot start at all."""


class TransportError(AriaError):
    """Raised when a streaming connection cannot be established."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamInterruptedError(TransportError):
    """Reported when an established stream fails mid-read."""
