"""
Exception Module

Structured exception hierarchy for the resilient client layer.
All exceptions are organized by theme for better maintainability and debuggability.

Module Structure:
-----------------
- **base.py**: ResilienceBaseError base class + ConfigurationError
- **transport.py**: Transport and remote status exceptions
- **circuit_breaker.py**: Circuit breaker exceptions
- **rate_limit.py**: Rate limiting exceptions
- **connection_pool.py**: Connection pool exceptions
- **pipeline.py**: Middleware pipeline exceptions

Usage:
------
```python
from src.core.exceptions import ClientError, ServerError, TransportError
from src.core.exceptions.rate_limit import RateLimitExceededError
```
"""

from src.core.exceptions.base import ConfigurationError, ResilienceBaseError
from src.core.exceptions.circuit_breaker import (
    CircuitBreakerError,
    CircuitBreakerOpenError,
)
from src.core.exceptions.connection_pool import (
    ConnectionPoolError,
    ConnectionPoolExhaustedError,
)
from src.core.exceptions.pipeline import PipelineError
from src.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError
from src.core.exceptions.transport import (
    ClientError,
    OperationTimeoutError,
    RemoteStatusError,
    ServerError,
    TransportError,
)

__all__ = [
    # Base
    "ResilienceBaseError",
    "ConfigurationError",
    # Transport
    "TransportError",
    "OperationTimeoutError",
    "RemoteStatusError",
    "ClientError",
    "ServerError",
    # Circuit Breaker
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    # Rate Limit
    "RateLimitError",
    "RateLimitExceededError",
    # Connection Pool
    "ConnectionPoolError",
    "ConnectionPoolExhaustedError",
    # Pipeline
    "PipelineError",
]
