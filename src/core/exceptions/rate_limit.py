"""
Rate Limiting Exceptions

All exceptions related to rate limiting operations
"""

from src.core.exceptions.base import ResilienceBaseError


class RateLimitError(ResilienceBaseError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when rate limit is exceeded.

    Raised locally before any transport work happens; it bypasses the retry
    loop and the circuit breaker entirely.

    Details include:
    - limit: Maximum requests allowed in the window
    - window: Window length in seconds
    - retry_after: Seconds until the oldest admission leaves the window
    """

    def __init__(self, limit: int, window: float, retry_after: float, request_id: str | None = None):
        super().__init__(
            f"Rate limit exceeded: {limit} requests per {window:g}s",
            request_id=request_id,
            details={"limit": limit, "window": window, "retry_after": round(retry_after, 3)},
            status=429,
        )
        self.limit = limit
        self.window = window
        self.retry_after = retry_after
