"""
Interfaces Module

Protocols decoupling CacheManager from concrete cache tiers.
"""

from sprint_reporter.core.interfaces.cache import FetchCallback, StoreDriver

__all__ = ["FetchCallback", "StoreDriver"]
