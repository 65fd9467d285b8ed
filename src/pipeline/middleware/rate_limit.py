"""
Rate Limit Middleware

Admits or rejects each call against a `SlidingWindowRateLimiter`, keyed on
the caller identity by default. A rejection raises `RateLimitExceededError`
before anything downstream runs. A call cancelled after admission gives its
slot back.
"""

import asyncio
from collections.abc import Callable

from src.core.config.constants import Stage
from src.core.logging.logger import get_logger
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.pipeline.middleware_pipeline import CallNext, Middleware
from src.pipeline.models import RequestContext

logger = get_logger(__name__)

ANONYMOUS_KEY = "anonymous"


def identity_key(context: RequestContext) -> str:
    return context.identity or ANONYMOUS_KEY


class RateLimitMiddleware(Middleware):
    def __init__(
        self,
        limiter: SlidingWindowRateLimiter,
        key_func: Callable[[RequestContext], str] = identity_key,
    ):
        self.limiter = limiter
        self.key_func = key_func

    async def dispatch(self, context: RequestContext, call_next: CallNext) -> None:
        key = self.key_func(context)
        admitted_at = await self.limiter.check_limit(key)

        try:
            await call_next()
        except asyncio.CancelledError:
            await asyncio.shield(self.limiter.release(key, admitted_at))
            logger.debug("Rate limit slot released", stage=Stage.RATE_LIMITING)
            raise
