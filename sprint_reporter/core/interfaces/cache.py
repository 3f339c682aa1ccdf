"""
Cache Store Protocol

This module defines the protocol every cache tier implements so that
CacheManager can treat the in-process store and the Redis store alike.

Architectural Decision: Protocol-based abstraction
- The in-memory tier and the Redis tier share one async interface
- Facilitates testing with mock implementations
- Runtime checking via @runtime_checkable

TTL convention follows Redis: ``ttl`` returns remaining seconds, -1 for a
key without expiry and -2 for a missing key.

Author: System Architect
Date: 2026-10-12
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeAlias, runtime_checkable

# Zero-argument producer of a value; may be sync or async.
FetchCallback: TypeAlias = Callable[[], Any | Awaitable[Any]]


@runtime_checkable
class StoreDriver(Protocol):
    """
    Protocol for a single cache tier.

    Implementations:
    - MemoryCacheStore: in-process TTL + LRU store (fast tier)
    - RedisCacheStore: optional secondary tier

    Drivers raise CacheError subclasses on failure; CacheManager absorbs them.
    """

    async def get(self, key: str) -> Any | None:
        """
        Get a value.

        Returns:
            The stored value, or None if absent or expired
        """
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        ...

    async def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            bool: True if the key existed
        """
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def keys(self, pattern: str = "*") -> list[str]:
        """List live keys matching a glob pattern (``*``, ``?``, ``[...]``)."""
        ...

    async def ttl(self, key: str) -> int:
        ...

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """
        Reset the remaining TTL of an existing key.

        Returns:
            bool: True if the key existed
        """
        ...

    async def size_of(self, key: str) -> int:
        """Estimated payload size in bytes (0 if absent)."""
        ...

    async def clear(self) -> None:
        ...

    async def close(self) -> None:
        ...
