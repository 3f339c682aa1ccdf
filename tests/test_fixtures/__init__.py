"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .cache_factory import CacheTestFactory, DictStore
from .timing import FakeClock, RecordingSleep

__all__ = ["CacheTestFactory", "DictStore", "FakeClock", "RecordingSleep"]
