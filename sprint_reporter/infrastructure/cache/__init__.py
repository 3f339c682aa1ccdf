"""
Cache Package

Two-tier cache (in-process + optional Redis) and its optimizer.

Usage:
------
```python
from sprint_reporter.infrastructure.cache import CacheManager, build_sprint_key

cache = CacheManager.from_settings()
issues = await cache.get(build_sprint_key(42, "issues"), fallback=fetch_issues)
```
"""

from sprint_reporter.infrastructure.cache.cache_manager import (
    CacheManager,
    CacheStats,
    KeyAccess,
    build_issue_key,
    build_key,
    build_repository_key,
    build_sprint_key,
    split_key,
)
from sprint_reporter.infrastructure.cache.cache_optimizer import (
    ActionType,
    CacheOptimizer,
    KeyProfile,
    OptimizationAction,
    OptimizationReport,
    OptimizerPolicy,
    WarmingReport,
    WarmingStrategy,
    WarmTarget,
    WarmTargetKind,
    extract_pattern,
)
from sprint_reporter.infrastructure.cache.memory_store import CacheEntry, MemoryCacheStore
from sprint_reporter.infrastructure.cache.redis_store import RedisCacheStore

__all__ = [
    "ActionType",
    "CacheEntry",
    "CacheManager",
    "CacheOptimizer",
    "CacheStats",
    "KeyAccess",
    "KeyProfile",
    "MemoryCacheStore",
    "OptimizationAction",
    "OptimizationReport",
    "OptimizerPolicy",
    "RedisCacheStore",
    "WarmTarget",
    "WarmTargetKind",
    "WarmingReport",
    "WarmingStrategy",
    "build_issue_key",
    "build_key",
    "build_repository_key",
    "build_sprint_key",
    "extract_pattern",
    "split_key",
]
