"""
Pipeline Exceptions

Raised when a middleware breaks the continuation contract.
"""

from src.core.exceptions.base import ResilienceBaseError


class PipelineError(ResilienceBaseError):
    """Raised on middleware misuse, e.g. calling ``next`` twice."""
    pass
