"""
Request Logging Middleware
==========================

Logs every call on the way in and on the way out:

- Request: method, endpoint, identity fingerprint, headers (sanitized)
- Response: status, cache outcome, duration
- Errors: exception type and message, then re-raised unchanged

It does NOT log request/response bodies or raw identities. Registered first,
it observes every outcome of the middlewares after it, including cache hits
and rate-limit rejections.
"""

import asyncio
import time

from src.core.config.constants import SENSITIVE_HEADERS, Stage
from src.core.logging.logger import fingerprint, get_logger
from src.pipeline.middleware_pipeline import CallNext, Middleware
from src.pipeline.models import RequestContext

logger = get_logger(__name__)


class RequestLoggingMiddleware(Middleware):
    """Structured before/after logging around the rest of the chain."""

    async def dispatch(self, context: RequestContext, call_next: CallNext) -> None:
        start_time = time.perf_counter()
        method = context.method
        endpoint = context.endpoint
        identity_tag = fingerprint(context.identity) if context.identity else None

        logger.info(
            f"Outgoing request: {method} {endpoint}",
            stage=Stage.PIPELINE,
            method=method,
            endpoint=endpoint,
            identity=identity_tag,
            headers=sanitize_headers(context.headers),
        )

        try:
            await call_next()
        except asyncio.CancelledError:
            logger.info(
                f"Request cancelled: {method} {endpoint}",
                stage=Stage.PIPELINE,
                method=method,
                endpoint=endpoint,
                duration_seconds=round(time.perf_counter() - start_time, 4),
            )
            raise
        except Exception as e:
            logger.error(
                f"Request failed: {method} {endpoint}",
                stage=Stage.PIPELINE,
                method=method,
                endpoint=endpoint,
                identity=identity_tag,
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(time.perf_counter() - start_time, 4),
            )
            raise

        logger.info(
            f"Request completed: {method} {endpoint}",
            stage=Stage.PIPELINE,
            method=method,
            endpoint=endpoint,
            status_code=context.response.status if context.response else None,
            cache=context.metadata.get("cache"),
            duration_seconds=round(time.perf_counter() - start_time, 4),
        )


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Replace the values of sensitive headers with "[REDACTED]"."""
    return {
        key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }
