"""
Middleware pipeline: request models, the continuation-passing chain and
the bundled middlewares.
"""

from .middleware import CacheMiddleware, RateLimitMiddleware, RequestLoggingMiddleware
from .middleware_pipeline import CallNext, Middleware, MiddlewarePipeline, TerminalOperation
from .models import OperationRequest, RequestContext, ResponseData

__all__ = [
    "CacheMiddleware",
    "CallNext",
    "Middleware",
    "MiddlewarePipeline",
    "OperationRequest",
    "RateLimitMiddleware",
    "RequestContext",
    "RequestLoggingMiddleware",
    "ResponseData",
    "TerminalOperation",
]
