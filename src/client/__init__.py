"""
Client Module

The `Orchestrator` entry point and the transport boundary it calls through.
"""

from .orchestrator import Orchestrator, create_orchestrator
from .transport import HttpxTransport, Transport, TransportResponse, raise_for_status

__all__ = [
    "HttpxTransport",
    "Orchestrator",
    "Transport",
    "TransportResponse",
    "create_orchestrator",
    "raise_for_status",
]
