"""
Request/response models shared by the pipeline, the orchestrator and transports.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, field_validator


class OperationRequest(BaseModel):
    """
    Descriptor of one remote operation.

    ``operation`` names the circuit-breaker class the call belongs to. When
    omitted, the first path segment of ``endpoint`` is used, so
    ``GET /memories/42`` and ``POST /memories`` share the "memories" breaker.
    Set it explicitly when the first segment is ID-like (``/u-81f2/items``).
    """

    model_config = {"frozen": True}

    method: str = Field(..., min_length=1, description="HTTP-style verb")
    endpoint: str = Field(..., min_length=1, description="Remote path")
    body: Any = Field(default=None, description="Request payload")
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict, description="Query parameters")
    operation: str | None = Field(default=None, description="Circuit breaker class name")

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.upper()

    @property
    def operation_class(self) -> str:
        if self.operation:
            return self.operation
        segment = self.endpoint.split("?", 1)[0].strip("/").split("/", 1)[0]
        return segment or "root"


class ResponseData(BaseModel):
    """Result of a remote call: status, decoded payload and headers."""

    model_config = {"frozen": True}

    status: int = 200
    data: Any = None
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class RequestContext:
    """
    Per-call state threaded through every middleware.

    Created by the pipeline for each call and discarded afterwards.
    Middlewares mutate it in place: ``headers`` and ``metadata`` are private
    copies, and setting ``response`` without calling ``next`` short-circuits
    the rest of the chain.
    """

    request: OperationRequest
    identity: str | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    response: ResponseData | None = None

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def endpoint(self) -> str:
        return self.request.endpoint

    @property
    def body(self) -> Any:
        return self.request.body
