"""
Middleware Pipeline
===================

An ordered chain of interceptors around one terminal operation, driven by
continuation passing. Each middleware receives the shared `RequestContext`
and a ``call_next`` continuation, and may:

1. Proceed: ``await call_next()`` and optionally act on the response after it
2. Short-circuit: set ``context.response`` and return without calling next
3. Reject: raise without calling next

EXECUTION ORDER ("onion"):
--------------------------
Request flow:  execute → MW1 (before) → MW2 (before) → terminal
Response flow: terminal → MW2 (after) → MW1 (after) → execute

Execution within one request is strictly sequential; distinct requests run
their own chains concurrently.

USAGE EXAMPLE:
--------------
    pipeline = (
        MiddlewarePipeline()
        .use(RequestLoggingMiddleware())
        .use(CacheMiddleware(cache))
        .use(RateLimitMiddleware(limiter))
    )
    data = await pipeline.execute(request, terminal, identity="key-123")
"""

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from src.core.exceptions import PipelineError
from src.pipeline.models import OperationRequest, RequestContext, ResponseData

CallNext = Callable[[], Awaitable[None]]
MiddlewareFunc = Callable[[RequestContext, CallNext], Awaitable[None]]
TerminalOperation = Callable[[RequestContext], Awaitable[Any]]


class Middleware(ABC):
    """
    Base class for class-based middleware.

    Subclasses implement ``dispatch``; plain ``async def mw(context, call_next)``
    functions are accepted by the pipeline as well.
    """

    @abstractmethod
    async def dispatch(self, context: RequestContext, call_next: CallNext) -> None:
        ...

    async def __call__(self, context: RequestContext, call_next: CallNext) -> None:
        await self.dispatch(context, call_next)


class MiddlewarePipeline:
    """Ordered, short-circuitable request interceptor chain."""

    def __init__(self, middlewares: list[MiddlewareFunc] | None = None):
        self._middlewares: list[MiddlewareFunc] = []
        for middleware in middlewares or []:
            self.use(middleware)

    def use(self, middleware: MiddlewareFunc) -> "MiddlewarePipeline":
        """Append a middleware and return the pipeline (fluent)."""
        if not callable(middleware):
            raise PipelineError(
                "Middleware must be callable",
                details={"middleware": type(middleware).__name__},
            )
        self._middlewares.append(middleware)
        return self

    def __len__(self) -> int:
        return len(self._middlewares)

    @property
    def middlewares(self) -> tuple[MiddlewareFunc, ...]:
        return tuple(self._middlewares)

    async def execute(
        self,
        request: OperationRequest | Mapping[str, Any],
        terminal: TerminalOperation,
        *,
        identity: str | None = None,
        metadata: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> Any:
        """
        Run the chain for one request.

        Args:
            request: Operation descriptor (or a mapping with the same fields)
            terminal: Coroutine function called with the context once the chain
                is exhausted. A `ResponseData` result is used as-is; anything
                else becomes ``ResponseData(status=200, data=result)``.
            identity: Opaque partition key made available to middlewares
            metadata: Mapping used as ``context.metadata``. The caller keeps a
                reference and can read what middlewares recorded.
            request_id: Correlation ID; generated when omitted

        Returns:
            ``context.response.data``

        Raises:
            Whatever a middleware or the terminal operation raised, unmodified.
        """
        context = self.build_context(request, identity=identity, metadata=metadata, request_id=request_id)
        await self.run(context, terminal)
        return context.response.data

    @staticmethod
    def build_context(
        request: OperationRequest | Mapping[str, Any],
        *,
        identity: str | None = None,
        metadata: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> RequestContext:
        if not isinstance(request, OperationRequest):
            request = OperationRequest.model_validate(request)

        context = RequestContext(
            request=request,
            identity=identity,
            headers=dict(request.headers),
            metadata=metadata if metadata is not None else {},
        )
        if request_id:
            context.request_id = request_id
        return context

    async def run(self, context: RequestContext, terminal: TerminalOperation) -> RequestContext:
        """Drive an existing context through the chain."""
        # Snapshot so a concurrent use() never changes an in-flight chain.
        chain = tuple(self._middlewares)
        await self._dispatch(chain, 0, context, terminal)

        if context.response is None:
            raise PipelineError(
                "Pipeline completed without a response",
                request_id=context.request_id,
            )
        return context

    async def _dispatch(
        self,
        chain: tuple[MiddlewareFunc, ...],
        index: int,
        context: RequestContext,
        terminal: TerminalOperation,
    ) -> None:
        if index == len(chain):
            result = await terminal(context)
            if isinstance(result, ResponseData):
                context.response = result
            else:
                context.response = ResponseData(status=200, data=result)
            return

        middleware = chain[index]
        called = False

        async def call_next() -> None:
            nonlocal called
            if called:
                raise PipelineError(
                    "call_next() invoked more than once",
                    request_id=context.request_id,
                    details={"middleware": _middleware_name(middleware)},
                )
            called = True
            await self._dispatch(chain, index + 1, context, terminal)

        outcome = middleware(context, call_next)
        if inspect.isawaitable(outcome):
            await outcome


def _middleware_name(middleware: Any) -> str:
    return getattr(middleware, "__name__", type(middleware).__name__)
