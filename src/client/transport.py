#!/usr/bin/env python3
"""
Transport Boundary

The client core never performs network I/O itself. It calls a `Transport`:

    await transport.perform(method, endpoint, headers=..., body=..., query=...)
        -> TransportResponse(status, data, headers)

A transport raises `TransportError` for network failures and returns remote
failures as a status. `raise_for_status` turns a status >= 400 into
`ClientError` (4xx) or `ServerError` (5xx) so the retry layer can classify it.

`HttpxTransport` is the bundled adapter over ``httpx.AsyncClient``.
"""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import httpx
import orjson

from src.core.config.constants import Stage
from src.core.exceptions import ClientError, ServerError, TransportError
from src.core.logging.logger import get_logger
from src.pipeline.models import ResponseData

logger = get_logger(__name__)

TransportResponse = ResponseData


@runtime_checkable
class Transport(Protocol):
    async def perform(
        self,
        method: str,
        endpoint: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
    ) -> TransportResponse:
        ...


def raise_for_status(
    response: TransportResponse,
    *,
    endpoint: str,
    request_id: str | None = None,
) -> TransportResponse:
    """Return ``response`` unchanged when status < 400, otherwise raise."""
    status = response.status
    if status < 400:
        return response

    error_cls = ClientError if status < 500 else ServerError
    raise error_cls(
        f"Remote returned {status} for {endpoint}",
        status=status,
        request_id=request_id,
        details={"endpoint": endpoint},
        data=response.data,
    )


class HttpxTransport:
    """
    `Transport` over ``httpx.AsyncClient``.

    Bodies are sent as JSON (orjson); JSON responses are decoded with orjson,
    anything else is returned as text.

    LIFECYCLE MANAGEMENT:
    ---------------------
    A client passed in is borrowed and never closed here. Otherwise one is
    created lazily and closed by ``close()`` / ``async with``:

        async with HttpxTransport("https://api.example.com") as transport:
            orchestrator = create_orchestrator(transport)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_connections: int = 100,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.max_connections = max_connections
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpxTransport":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(
                    max_connections=self.max_connections,
                    max_keepalive_connections=self.max_connections // 2,
                ),
            )
            logger.debug("HTTP client initialized", stage=Stage.TRANSPORT, base_url=self.base_url)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            logger.debug("HTTP client closed", stage=Stage.TRANSPORT)
            self._client = None

    async def perform(
        self,
        method: str,
        endpoint: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
    ) -> TransportResponse:
        client = self._ensure_client()
        request_headers = dict(headers or {})
        content = None
        if body is not None:
            content = orjson.dumps(body)
            request_headers.setdefault("Content-Type", "application/json")

        try:
            response = await client.request(
                method,
                endpoint,
                content=content,
                headers=request_headers,
                params=dict(query) if query else None,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request timed out: {method} {endpoint}",
                details={"endpoint": endpoint, "cause": type(e).__name__},
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"Transport failure: {method} {endpoint}",
                details={"endpoint": endpoint, "cause": type(e).__name__},
            ) from e

        return TransportResponse(
            status=response.status_code,
            data=decode_body(response),
            headers=dict(response.headers),
        )


def decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None

    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError:
            logger.warning("Malformed JSON body, returning text", stage=Stage.TRANSPORT)
    return response.text
