"""
Transport Exceptions

Failures at the transport boundary and remote status failures.

Retry classification:
- TransportError / OperationTimeoutError: retryable
- ServerError (5xx): retryable
- ClientError (4xx): never retried
"""

from typing import Any

from src.core.exceptions.base import ResilienceBaseError


class TransportError(ResilienceBaseError):
    """
    Network-level failure reported by the transport collaborator.

    Common causes:
    - Connection refused or reset
    - DNS failure
    - Read/connect timeout
    """
    pass


class OperationTimeoutError(TransportError):
    """Raised when a call does not finish within the circuit breaker's per-call timeout."""

    def __init__(self, timeout: float, details: dict[str, Any] | None = None):
        super().__init__(
            f"Operation timed out after {timeout:g}s",
            details={"timeout": timeout, **(details or {})},
        )
        self.timeout = timeout


class RemoteStatusError(ResilienceBaseError):
    """Base class for failures signalled by a remote status code."""

    def __init__(
        self,
        message: str,
        status: int,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
        data: Any = None,
    ):
        super().__init__(message, request_id=request_id, details=details, status=status)
        self.data = data


class ClientError(RemoteStatusError):
    """
    Remote 4xx-equivalent failure.

    The request itself is wrong, so repeating it cannot help: never retried.
    """
    pass


class ServerError(RemoteStatusError):
    """Remote 5xx-equivalent failure. Retryable per policy."""
    pass
