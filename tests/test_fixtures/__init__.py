"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .clock_factory import FakeClock, RecordingSleep
from .request_factory import RequestFactory
from .transport_factory import FakeTransport, TransportTestFactory

__all__ = ["FakeClock", "RecordingSleep", "FakeTransport", "RequestFactory", "TransportTestFactory"]
