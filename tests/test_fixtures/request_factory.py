"""
Request Factory for Test Data

Creates consistent OperationRequest objects for testing.
"""

from src.pipeline.models import OperationRequest


class RequestFactory:
    """Factory for creating valid OperationRequest objects."""

    @staticmethod
    def read(endpoint: str = "/memories", **query) -> OperationRequest:
        return OperationRequest(method="GET", endpoint=endpoint, query=query)

    @staticmethod
    def write(endpoint: str = "/memories", body: dict | None = None) -> OperationRequest:
        return OperationRequest(method="POST", endpoint=endpoint, body=body or {"text": "remember this"})

