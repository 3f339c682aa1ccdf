"""
Cache-Related Exceptions

All exceptions related to caching operations (Redis, in-memory cache).
CacheManager absorbs these; they surface only from the store drivers.

Author: System Architect
Date: 2026-10-12
"""

from sprint_reporter.core.exceptions.base import ErrorKind, SprintReporterError


class CacheError(SprintReporterError):
    """Base exception for cache-related errors."""

    kind = ErrorKind.CACHE


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the cache (Redis).

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port configuration
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a cache key operation fails.

    Common causes:
    - Value cannot be serialized
    - Stored payload cannot be decoded
    - Operation timeout
    """
    pass
