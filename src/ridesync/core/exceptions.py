"""Standardized exception hierarchy for the trip coordination core."""

from typing import Any


class CoordinationError(Exception):
    """Base exception for all coordination errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(CoordinationError):
    """Errors that may succeed on retry."""

    pass


class NetworkError(TransientError):
    """Network-related transient errors (timeout, connection refused)."""

    pass


class ServiceUnavailableError(TransientError):
    """Trip API temporarily unavailable (5xx responses)."""

    pass


class StorageError(TransientError):
    """Key-value store read or write failed."""

    pass


class PermanentError(CoordinationError):
    """Errors that will not succeed on retry."""

    pass


class ValidationError(PermanentError):
    """Invalid input or data format."""

    pass


class NotFoundError(PermanentError):
    """Requested trip or record does not exist."""

    pass


class ConflictError(PermanentError):
    """Compare-and-swap write lost against a concurrent writer too many times."""

    pass


class AuthenticationError(PermanentError):
    """Trip API rejected the bearer token (401/403)."""

    pass
