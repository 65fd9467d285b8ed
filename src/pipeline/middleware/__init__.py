"""
Bundled middlewares.

RECOMMENDED ORDER:
------------------
1. Request logging (observes every outcome below it)
2. Response cache (hits never spend rate-limit budget)
3. Rate limiting (only calls that will reach the transport are counted)
"""

from .rate_limit import RateLimitMiddleware, identity_key
from .request_logging import RequestLoggingMiddleware, sanitize_headers
from .response_cache import CacheMiddleware

__all__ = [
    "CacheMiddleware",
    "RateLimitMiddleware",
    "RequestLoggingMiddleware",
    "identity_key",
    "sanitize_headers",
]
