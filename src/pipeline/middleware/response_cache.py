"""
Response Cache Middleware

Serves idempotent reads from a `ResponseCache`:

    hit  → set context.response, metadata["cache"] = "hit", skip the rest
    miss → metadata["cache"] = "miss", call next, store a 2xx response

Non-idempotent methods pass straight through and leave no cache metadata.
"""

from src.core.config.constants import CacheOutcome, Stage
from src.core.logging.logger import get_logger
from src.infrastructure.cache.response_cache import ResponseCache
from src.pipeline.middleware_pipeline import CallNext, Middleware
from src.pipeline.models import RequestContext

logger = get_logger(__name__)


class CacheMiddleware(Middleware):
    def __init__(self, cache: ResponseCache, ttl: float | None = None):
        self.cache = cache
        self.ttl = ttl

    async def dispatch(self, context: RequestContext, call_next: CallNext) -> None:
        if not self.cache.is_cacheable(context.method):
            await call_next()
            return

        cache_key = ResponseCache.build_key(
            context.identity or "",
            context.method,
            context.endpoint,
            context.body,
            context.request.query,
        )

        cached = await self.cache.get(cache_key)
        if cached is not None:
            context.response = cached
            context.metadata["cache"] = CacheOutcome.HIT.value
            logger.debug("Cache hit", stage=Stage.CACHE_LOOKUP, endpoint=context.endpoint)
            return

        context.metadata["cache"] = CacheOutcome.MISS.value
        await call_next()

        if context.response is not None and context.response.is_success:
            await self.cache.set(cache_key, context.response, ttl=self.ttl)
