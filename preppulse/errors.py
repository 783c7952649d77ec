"""Exception types raised across PrepPulse."""

from typing import Optional


class PrepPulseError(Exception):
    """Base class for all PrepPulse errors."""


class InvalidTransitionError(PrepPulseError):
    """Raised when a user operation is not allowed from the current call status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move call from {current} to {target}")


class VoiceAgentError(PrepPulseError):
    """Raised when the hosted voice agent cannot start or control a call."""


class IdentityProviderError(PrepPulseError):
    """Raised when the identity service rejects a request."""

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(message or code)


class BackendError(PrepPulseError):
    """Raised when the PrepPulse backend returns an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class FeedbackError(PrepPulseError):
    """Raised when feedback cannot be generated from a transcript."""


__all__ = [
    "PrepPulseError",
    "InvalidTransitionError",
    "VoiceAgentError",
    "IdentityProviderError",
    "BackendError",
    "FeedbackError",
]
