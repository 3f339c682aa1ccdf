"""
Configuration Module

Type-safe configuration for the resilience and caching core.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Enums (Stage, CircuitState, CacheTier) and policy defaults

Usage:
------
```python
from sprint_reporter.core.config import get_settings
from sprint_reporter.core.config.constants import Stage

settings = get_settings()
ttl = settings.cache.CACHE_DEFAULT_TTL
```
"""

from sprint_reporter.core.config.constants import CacheTier, CircuitState, Stage
from sprint_reporter.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    "CacheTier",
    "CircuitState",
    "Settings",
    "Stage",
    "get_settings",
    "reload_settings",
]
