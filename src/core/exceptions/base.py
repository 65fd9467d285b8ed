"""
Base Exception Class

This module contains ONLY the base exception class that all other exceptions inherit from.
All specialized exceptions are in their respective themed modules.
"""

from typing import Any


class ResilienceBaseError(Exception):
    """
    Base exception for all errors raised by the client layer.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Request ID correlation
    - Structured error logging
    - Enough context to diagnose a failure without exposing pool/cache internals

    Attributes:
        message: Error message
        request_id: Request ID for correlation (if available)
        status: Remote status code, when the failure came from the remote side
        attempts: Number of transport attempts made before giving up
        details: Additional error details (dict)

    Example:
        raise ServerError(
            "Upstream returned 503",
            status=503,
            details={"endpoint": "/memories"},
        )
    """

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        status: int | None = None,
        attempts: int | None = None,
    ):
        self.message = message
        self.request_id = request_id
        self.status = status
        self.attempts = attempts
        self.details = (details or {}).copy()  # Copy to prevent external modification
        super().__init__(self.message)

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, status, attempts, request_id and details
        """
        return {
            "error_type": self.error_type,
            "message": self.message,
            "status": self.status,
            "attempts": self.attempts,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_context(self, **context) -> "ResilienceBaseError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        parts = [f"message='{self.message}'"]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.attempts is not None:
            parts.append(f"attempts={self.attempts}")
        if self.request_id:
            parts.append(f"request_id='{self.request_id}'")
        if self.details:
            parts.append(f"details={self.details}")
        return f"{self.__class__.__name__}({', '.join(parts)})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "ResilienceBaseError":
        """
        Create an error of this class from another exception.

        Useful for wrapping third-party exceptions with additional context.

        Example:
            >>> try:
            ...     await client.request("GET", url)
            ... except httpx.ConnectError as e:
            ...     raise TransportError.from_exception(e, endpoint=url)
        """
        error_message = message or str(exc) or exc.__class__.__name__
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, request_id=request_id, details=error_details)


class ConfigurationError(ResilienceBaseError):
    """Raised when configuration is invalid or missing."""
    pass
