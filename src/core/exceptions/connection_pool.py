"""
Connection Pool Exception Types.

Custom exceptions for connection pool management errors.
"""

from src.core.exceptions.base import ResilienceBaseError


class ConnectionPoolError(ResilienceBaseError):
    """Base exception for connection pool errors."""

    def __init__(self, message: str = "Connection pool error", details: dict | None = None):
        super().__init__(message=message, details=details)


class ConnectionPoolExhaustedError(ConnectionPoolError):
    """Raised when no lease frees up within the acquire timeout."""

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(
            message=message or "Connection pool exhausted - no capacity freed before timeout",
            details=details
        )
