"""
In-Memory Cache Store (fast tier)

Per-process TTL + LRU store. Every entry carries its own TTL; expired
entries are dropped lazily on access and when keys are enumerated. When
the store is full the least recently used entry is evicted.

Author: System Architect
Date: 2026-10-12
"""

import asyncio
import math
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Any

import orjson

from sprint_reporter.core.config.constants import CACHE_MEMORY_MAX_SIZE


def estimate_size(key: str, value: Any) -> int:
    """Approximate footprint of an entry in bytes."""
    try:
        payload = len(orjson.dumps(value))
    except TypeError:
        payload = len(repr(value).encode("utf-8"))
    return len(key.encode("utf-8")) + payload


@dataclass
class CacheEntry:
    key: str
    value: Any
    ttl: int
    inserted_at: float
    size_bytes: int = field(default=0)

    @property
    def expires_at(self) -> float:
        return self.inserted_at + self.ttl

    def remaining_ttl(self, now: float) -> float:
        return max(0.0, self.expires_at - now)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryCacheStore:
    """
    In-memory TTL + LRU cache storage.

    STAGE-C.1: Fast tier

    Implementation:
    - OrderedDict keeps LRU order (most recent at the end)
    - move_to_end() on access, popitem(last=False) on overflow
    - asyncio.Lock around every mutation
    - Injectable monotonic clock for TTL tests
    """

    def __init__(self, max_size: int = CACHE_MEMORY_MAX_SIZE, clock: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self.evictions = 0

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                ttl=ttl_seconds,
                inserted_at=self._clock(),
                size_bytes=estimate_size(key, value),
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
                self.evictions += 1

    async def delete(self, key: str) -> bool:
        async with self._lock:
            entry = self._entries.pop(key, None)
            return entry is not None and not entry.is_expired(self._clock())

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live_entry(key) is not None

    async def keys(self, pattern: str = "*") -> list[str]:
        async with self._lock:
            self._purge_expired()
            return [key for key in self._entries if fnmatchcase(key, pattern)]

    async def ttl(self, key: str) -> int:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return -2
            return math.ceil(entry.remaining_ttl(self._clock()))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            entry.inserted_at = self._clock()
            entry.ttl = ttl_seconds
            return True

    async def size_of(self, key: str) -> int:
        async with self._lock:
            entry = self._live_entry(key)
            return entry.size_bytes if entry else 0

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def close(self) -> None:
        await self.clear()

    async def round_trip(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """
        Write, read back and drop one entry under a single lock hold.

        Capacity is not enforced for this entry, so no live entry is
        evicted to make room for it.
        """
        async with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, ttl=ttl_seconds, inserted_at=self._clock())
            try:
                entry = self._live_entry(key)
                return entry is not None and entry.value == value
            finally:
                self._entries.pop(key, None)

    def _purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def memory_bytes(self) -> int:
        self._purge_expired()
        return sum(entry.size_bytes for entry in self._entries.values())

    def get_info(self) -> dict[str, Any]:
        return {
            "tier": "memory",
            "keys": len(self),
            "max_size": self._max_size,
            "memory_bytes": self.memory_bytes,
            "evictions": self.evictions,
        }
