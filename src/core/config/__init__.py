"""
Configuration Module

This module provides centralized, type-safe configuration management
for the resilient client layer.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: System-wide constants, enums, and defaults

Usage:
------
```python
from src.core.config import get_settings
from src.core.config.constants import Stage, CircuitState

settings = get_settings()
threshold = settings.circuit_breaker.CB_FAILURE_THRESHOLD

stage = Stage.CACHE_LOOKUP  # "2.0_CACHE_LOOKUP"
state = CircuitState.CLOSED  # "closed"
```
"""

from .constants import CircuitState, RequestStatus, Stage
from .settings import Settings, get_settings, reload_settings

__all__ = [
    "CircuitState",
    "RequestStatus",
    "Settings",
    "Stage",
    "get_settings",
    "reload_settings",
]
