"""
Exception hierarchy for the booking service.

Service functions raise these; the API layer turns them into JSON envelopes
with the matching HTTP status code.
"""

from typing import Any, Optional


class SpacioError(Exception):
    """
    Base exception for all domain errors.

    Carries the HTTP status code the API should answer with and optional
    structured data to return to the caller.
    """

    status_code = 500

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data


class ValidationError(SpacioError):
    """Raised when request data is missing or malformed."""

    status_code = 400


class AuthenticationError(SpacioError):
    """Raised when a session token is missing, invalid or expired, or a login fails."""

    status_code = 401


class PermissionDeniedError(SpacioError):
    """Raised when an authenticated user lacks the role an operation requires."""

    status_code = 403


class NotFoundError(SpacioError):
    """Raised when a requested room, booking, request or file does not exist."""

    status_code = 404


class ConflictError(SpacioError):
    """
    Raised when an operation collides with existing state.

    Used for double bookings, duplicate accounts and deleting rooms that
    still have active bookings.
    """

    status_code = 409


class AssistantError(SpacioError):
    """Base exception for failures talking to the generative API."""

    status_code = 502


class GeminiUnavailableError(AssistantError):
    """Raised when no usable API key is configured."""

    status_code = 503


class QuotaExceededError(AssistantError):
    """
    Raised when the generative API keeps answering with rate-limit errors (HTTP 429)
    after retry exhaustion.
    """

    status_code = 429
