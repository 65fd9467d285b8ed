"""
Transport Test Factory

Scripted transports for driving the orchestrator through success, failure
and recovery scenarios.
"""

from collections.abc import Mapping
from typing import Any

from src.pipeline.models import ResponseData


class FakeTransport:
    """
    Scripted transport.

    Each call pops the next scripted outcome: a `ResponseData` is returned,
    an exception instance is raised. When the script is empty every call
    returns ``default``.
    """

    def __init__(self, *outcomes: Any, default: ResponseData | None = None):
        self.outcomes = list(outcomes)
        self.default = default or ResponseData(status=200, data={"ok": True})
        self.calls: list[dict[str, Any]] = []

    async def perform(
        self,
        method: str,
        endpoint: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
    ) -> ResponseData:
        self.calls.append(
            {"method": method, "endpoint": endpoint, "headers": dict(headers or {}), "body": body, "query": query}
        )
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class TransportTestFactory:
    """Factory for common transport scenarios."""

    @staticmethod
    def success(data: Any = None, status: int = 200) -> FakeTransport:
        return FakeTransport(default=ResponseData(status=status, data=data if data is not None else {"ok": True}))

    @staticmethod
    def failing(status: int = 503) -> FakeTransport:
        """Every call returns ``status``."""
        return FakeTransport(default=ResponseData(status=status, data={"error": "unavailable"}))

    @staticmethod
    def flaky(failures: int, error: Any = None) -> FakeTransport:
        """Fails ``failures`` times (exception or error response), then succeeds."""
        error = error or ResponseData(status=503)
        return FakeTransport(*([error] * failures))
