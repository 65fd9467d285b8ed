"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the resilient client layer.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for state management
- Easy to update and track changes
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Request processing stages used as the ``stage`` field of log events.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    - SEQUENCE: Numeric order (0.0, 1.0, 2.0) or alphabetic prefix (CB, R)
    - DESCRIPTIVE_NAME: Clear, uppercase description with underscores

    Examples:
        logger.info("Cache hit", stage=Stage.CACHE_LOOKUP)
        logger.warning("Circuit tripped", stage=Stage.CIRCUIT_BREAKER)
    """

    # Main Request Lifecycle (Sequential 0.0 - 6.0)
    INITIALIZATION = "0.0_INITIALIZATION"
    PIPELINE = "1.0_PIPELINE"
    CACHE_LOOKUP = "2.0_CACHE_LOOKUP"
    RATE_LIMITING = "3.0_RATE_LIMITING"
    CONNECTION_LEASE = "4.0_CONNECTION_LEASE"
    TRANSPORT = "5.0_TRANSPORT"
    CLEANUP = "6.0_CLEANUP"

    # Cross-Cutting Concerns (Alphabetic Prefixes)
    CIRCUIT_BREAKER = "CB_CIRCUIT_BREAKER"
    RETRY = "R_RETRY_LOGIC"
    POOL = "CP_CONNECTION_POOL"
    METRICS = "M_METRICS_COLLECTION"


# ============================================================================
# Circuit Breaker States
# ============================================================================


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED: Normal operation, requests allowed
    OPEN: Failing fast, requests blocked
    HALF_OPEN: Testing recovery, one trial request at a time
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# ============================================================================
# Request Outcome
# ============================================================================


class RequestStatus(str, Enum):
    """Outcome labels used for metrics and logging."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"


class CacheOutcome(str, Enum):
    """Value stored under ``metadata["cache"]`` by the cache middleware."""

    HIT = "hit"
    MISS = "miss"


# ============================================================================
# HTTP Semantics
# ============================================================================

# Methods that are safe to repeat and therefore eligible for caching
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Headers that must never reach a log line
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
})

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_AUTHORIZATION = "Authorization"

# ============================================================================
# Defaults (seconds unless stated otherwise)
# ============================================================================

# Circuit breaker
CB_DEFAULT_FAILURE_THRESHOLD = 5
CB_DEFAULT_TIMEOUT = 60.0
CB_DEFAULT_RESET_TIMEOUT = 30.0
CB_MAX_BREAKERS = 1000  # Healthy breakers beyond this are evicted LRU

# Retry settings
MAX_RETRIES = 3  # Maximum attempts, including the first one
RETRY_BASE_DELAY = 1.0  # Base delay for exponential backoff (seconds)
RETRY_MAX_DELAY = 30.0  # Maximum delay for exponential backoff (seconds)
RETRY_BACKOFF_FACTOR = 2.0

# Rate limiting
RATE_LIMIT_DEFAULT = "100/minute"
RATE_LIMIT_MAX_KEYS = 10000
RATE_LIMIT_SWEEP_INTERVAL = 60.0

# Response cache
CACHE_DEFAULT_TTL = 5.0
CACHE_MAX_SIZE = 1000
CACHE_KEY_PREFIX = "cache:response"

# Connection pool
POOL_MAX_CONNECTIONS = 100
POOL_IDLE_TIMEOUT = 300.0
POOL_POLL_INTERVAL = 0.1
POOL_ACQUIRE_TIMEOUT = 30.0
POOL_SWEEP_INTERVAL = 30.0

# Metrics
METRICS_LATENCY_WINDOW = 100  # Rolling latency samples kept for the average
