#!/usr/bin/env python3
"""
Response Cache - Short-TTL cache for idempotent reads

Architecture:
    ResponseCache (Public API)
        ├── build_key   (identity + method + endpoint + canonical body/query)
        └── LRU storage (OrderedDict, asyncio.Lock, per-entry expiry)

Rules:
    - Only idempotent methods (GET, HEAD, OPTIONS) are cacheable
    - Only successful responses are written (enforced by the cache middleware)
    - An entry is never returned once ``now >= expires_at``; expired entries
      are deleted on read and by ``purge_expired``
    - Entries are scoped per identity: two identities never share a hit
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import orjson

from src.core.config.constants import CACHE_KEY_PREFIX, IDEMPOTENT_METHODS, Stage
from src.core.config.settings import get_settings
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class ResponseCache:
    """
    In-memory TTL cache with LRU eviction.

    STAGE-2: Response cache

    Implementation Details:
    - OrderedDict for O(1) access and LRU ordering
    - Coroutine-safe via asyncio.Lock
    - Evicts least recently used entries when over ``max_size``
    """

    def __init__(
        self,
        ttl: float | None = None,
        max_size: int | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings().cache
        self.ttl = ttl or settings.CACHE_RESPONSE_TTL
        self.max_size = max_size or settings.CACHE_MAX_SIZE
        self._clock = clock

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

        self._hits = 0
        self._misses = 0
        self._expired = 0

    # =========================================================================
    # Keys
    # =========================================================================

    @staticmethod
    def is_cacheable(method: str) -> bool:
        return method.upper() in IDEMPOTENT_METHODS

    @staticmethod
    def build_key(
        identity: str,
        method: str,
        endpoint: str,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
    ) -> str:
        """
        Generate a deterministic cache key.

        STAGE-2.1.1: Cache key generation

        Body and query are serialized with sorted keys, so two mappings with
        the same content in a different insertion order produce the same key.
        The digest keeps identities (often credentials) out of the key text.

        Returns:
            Cache key (e.g., "cache:response:GET:/memories:9f86d08...")
        """
        canonical = orjson.dumps(
            {"identity": identity, "body": body, "query": dict(query or {})},
            option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
            default=str,
        )
        digest = hashlib.sha256(canonical).hexdigest()
        return f"{CACHE_KEY_PREFIX}:{method.upper()}:{endpoint}:{digest}"

    # =========================================================================
    # Storage
    # =========================================================================

    async def get(self, key: str) -> Any | None:
        """
        Return the cached value, or None on miss or expiry.

        STAGE-2.1: Cache lookup
        """
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._expired += 1
                self._misses += 1
                logger.debug("Cache entry expired", stage=Stage.CACHE_LOOKUP, cache_key=key)
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store ``value`` until ``now + ttl``.

        STAGE-2.3: Cache population
        """
        ttl = self.ttl if ttl is None else ttl
        async with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)
            self._entries.move_to_end(key)

            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def purge_expired(self) -> int:
        """
        Drop every expired entry.

        STAGE-2.4: Cache invalidation
        """
        async with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
            self._expired += len(expired)
        return len(expired)

    def size(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl": self.ttl,
            "hits": self._hits,
            "misses": self._misses,
            "expired": self._expired,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
        }
