from .exceptions import (
    AuthenticationError,
    ConflictError,
    CoordinationError,
    NetworkError,
    NotFoundError,
    PermanentError,
    ServiceUnavailableError,
    StorageError,
    TransientError,
    ValidationError,
)
from .retry import RetryConfig, with_retry

__all__ = [
    "AuthenticationError",
    "ConflictError",
    "CoordinationError",
    "NetworkError",
    "NotFoundError",
    "PermanentError",
    "RetryConfig",
    "ServiceUnavailableError",
    "StorageError",
    "TransientError",
    "ValidationError",
    "with_retry",
]
