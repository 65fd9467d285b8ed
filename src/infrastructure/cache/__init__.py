"""
Cache Module

Provides the short-TTL response cache for idempotent reads.
"""

from .response_cache import CacheEntry, ResponseCache

__all__ = [
    "CacheEntry",
    "ResponseCache",
]
