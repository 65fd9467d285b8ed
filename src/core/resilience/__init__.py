"""
Resilience Module - Core Resilience Components

Each remote call passes through these layers, outermost first:

    RateLimiter     (via the pipeline)   admit or reject per identity
    CircuitBreaker  (per operation class) fail fast while the remote is down
    RetryStrategy                         bounded exponential backoff
    ConnectionPool  (per identity)        scoped reusable call context

COMPONENTS:
===========
- SlidingWindowRateLimiter: per-key sliding-window admission
- CircuitBreaker / CircuitBreakerManager: CLOSED → OPEN → HALF_OPEN state machine
- RetryStrategy / RetryPolicy: tenacity-backed retries with classification
- ConnectionPoolManager: bounded identity → lease map with idle eviction
- PeriodicSweeper: background task driving the sweeps above
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerManager,
    get_circuit_breaker_manager,
    with_circuit_breaker,
)
from .connection_pool_manager import ConnectionLease, ConnectionPoolManager
from .rate_limiter import SlidingWindowRateLimiter, create_rate_limiter
from .retry import RetryPolicy, RetryStrategy
from .sweeper import PeriodicSweeper

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerManager",
    "get_circuit_breaker_manager",
    "with_circuit_breaker",
    "ConnectionLease",
    "ConnectionPoolManager",
    "SlidingWindowRateLimiter",
    "create_rate_limiter",
    "RetryPolicy",
    "RetryStrategy",
    "PeriodicSweeper",
]
