"""
Monitoring Module

Request metrics with Prometheus export.
"""

from .metrics_collector import MetricsCollector, MetricsSnapshot

__all__ = [
    "MetricsCollector",
    "MetricsSnapshot",
]
