"""
Circuit Breaker Exceptions

All exceptions related to circuit breaker operations
"""

from src.core.exceptions.base import ResilienceBaseError


class CircuitBreakerError(ResilienceBaseError):
    """Base exception for circuit breaker errors."""
    pass


class CircuitBreakerOpenError(CircuitBreakerError):
    """
    Raised when circuit breaker is open (fail fast).

    This exception indicates that the circuit breaker is open and
    requests are being rejected to prevent cascade failures. The
    underlying cause of the trip is deliberately not exposed.

    The circuit will transition to half-open state after the recovery timeout,
    at which point a single trial request is allowed through.
    """
    pass
