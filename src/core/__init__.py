"""
Core Module

Foundational components: configuration, logging, exceptions and the
resilience primitives built on them.
"""

from .exceptions import (
    CircuitBreakerOpenError,
    ClientError,
    ConfigurationError,
    ConnectionPoolExhaustedError,
    OperationTimeoutError,
    PipelineError,
    RateLimitExceededError,
    ResilienceBaseError,
    ServerError,
    TransportError,
)
from .logging import (
    clear_request_id,
    fingerprint,
    get_logger,
    get_request_id,
    log_stage,
    set_request_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_id",
    "get_request_id",
    "clear_request_id",
    "fingerprint",
    "log_stage",
    "ResilienceBaseError",
    "ConfigurationError",
    "TransportError",
    "OperationTimeoutError",
    "ClientError",
    "ServerError",
    "CircuitBreakerOpenError",
    "RateLimitExceededError",
    "ConnectionPoolExhaustedError",
    "PipelineError",
]
