#!/usr/bin/env python3
"""
Two-Tier Cache Manager

Architecture:
    CacheManager (Public API)
        ├── MemoryCacheStore (fast tier, always present)
        ├── RedisCacheStore (optional secondary tier)
        ├── CacheStats (hit/miss/set/delete/error counters)
        └── KeyAccess samples (read by CacheOptimizer)

Read path: fast tier -> secondary tier (promoting hits) -> fallback.
Write path: fast tier, then best-effort secondary tier.

The cache is never a correctness dependency: every store failure is
logged, counted in ``errors`` and treated as a miss or a no-op. Only the
caller's own fallback may raise.

Author: System Architect
Date: 2026-10-12
"""

import inspect
import time
import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import asdict, dataclass, replace
from typing import Any

from sprint_reporter.core.config.constants import (
    CACHE_ACCESS_SAMPLE_LIMIT,
    HEALTH_CHECK_KEY_PREFIX,
    HEALTH_CHECK_TTL,
    KEY_DELIMITER,
    KEY_PREFIX_ISSUE,
    KEY_PREFIX_REPOSITORY,
    KEY_PREFIX_SPRINT,
    L1_PROMOTION_MAX_TTL,
    CacheTier,
    Stage,
)
from sprint_reporter.core.config.settings import Settings, get_settings
from sprint_reporter.core.interfaces.cache import FetchCallback, StoreDriver
from sprint_reporter.core.logging.logger import get_logger, log_stage
from sprint_reporter.infrastructure.cache.memory_store import MemoryCacheStore, estimate_size
from sprint_reporter.infrastructure.cache.redis_store import RedisCacheStore

logger = get_logger(__name__)


# =============================================================================
# KEY BUILDING
# =============================================================================

# "%" must be escaped first so the encoding stays reversible
_KEY_ESCAPES = (
    ("%", "%25"),
    (":", "%3A"),
    ("*", "%2A"),
    ("?", "%3F"),
    ("[", "%5B"),
    ("]", "%5D"),
)


def escape_key_part(part: Any) -> str:
    text = str(part)
    for raw, escaped in _KEY_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def unescape_key_part(part: str) -> str:
    for raw, escaped in reversed(_KEY_ESCAPES):
        part = part.replace(escaped, raw)
    return part


def build_key(*parts: Any) -> str:
    """
    Join parts into a cache key.

    The delimiter and glob metacharacters inside a part are percent-encoded,
    so a part can never add a segment or match as a wildcard.

    Example:
        >>> build_key("sprint", "PROJ:1", "issues")
        'sprint:PROJ%3A1:issues'
    """
    return KEY_DELIMITER.join(escape_key_part(part) for part in parts)


def split_key(key: str) -> list[str]:
    """Inverse of build_key."""
    return [unescape_key_part(part) for part in key.split(KEY_DELIMITER)]


def build_sprint_key(sprint_id: Any, *suffix: Any) -> str:
    return build_key(KEY_PREFIX_SPRINT, sprint_id, *suffix)


def build_repository_key(owner: str, repo: str, *suffix: Any) -> str:
    return build_key(KEY_PREFIX_REPOSITORY, owner, repo, *suffix)


def build_issue_key(issue_key: str, *suffix: Any) -> str:
    return build_key(KEY_PREFIX_ISSUE, issue_key, *suffix)


# =============================================================================
# STATS & ACCESS SAMPLES
# =============================================================================


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters since the last clear()."""

    hits: int = 0
    misses: int = 0
    keys: int = 0
    memory_bytes: int = 0
    hit_rate: float = 0.0
    sets: int = 0
    deletes: int = 0
    errors: int = 0

    @property
    def total_lookups(self) -> int:
        return self.hits + self.misses

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_lookups"] = self.total_lookups
        return data


@dataclass
class KeyAccess:
    """Per-key access sample (monotonic timestamps)."""

    hits: int = 0
    misses: int = 0
    last_accessed: float | None = None
    last_written: float | None = None
    size_bytes: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.lookups if self.lookups else 0.0


async def resolve_fetch(fetch: FetchCallback) -> Any:
    result = fetch()
    if inspect.isawaitable(result):
        result = await result
    return result


# =============================================================================
# CACHE MANAGER
# =============================================================================


class CacheManager:
    """
    Facade over the fast tier and the optional secondary tier.

    Usage:
        cache = CacheManager.from_settings()
        await cache.initialize()

        key = build_sprint_key(sprint_id, "issues")
        issues = await cache.get(key, fallback=lambda: jira.get_sprint_issues(sprint_id))

        await cache.close()
    """

    def __init__(
        self,
        memory_store: MemoryCacheStore | None = None,
        secondary_store: StoreDriver | None = None,
        *,
        default_ttl: int | None = None,
        enabled: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
        sample_limit: int = CACHE_ACCESS_SAMPLE_LIMIT,
    ):
        cache_settings = get_settings().cache
        self._memory = (
            memory_store
            if memory_store is not None
            else MemoryCacheStore(max_size=cache_settings.CACHE_MEMORY_MAX_SIZE, clock=clock)
        )
        self._secondary = secondary_store
        self._default_ttl = default_ttl or cache_settings.CACHE_DEFAULT_TTL
        self._enabled = cache_settings.CACHE_ENABLED if enabled is None else enabled
        self._clock = clock

        # key -> access sample, least recently touched first
        self._access: OrderedDict[str, KeyAccess] = OrderedDict()
        self._sample_limit = sample_limit
        self._reset_counters()

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, clock: Callable[[], float] = time.monotonic
    ) -> "CacheManager":
        """Build a manager, adding the Redis tier when REDIS_ENABLED is set."""
        settings = settings or get_settings()
        secondary = RedisCacheStore(settings.redis) if settings.redis.REDIS_ENABLED else None
        return cls(
            MemoryCacheStore(max_size=settings.cache.CACHE_MEMORY_MAX_SIZE, clock=clock),
            secondary,
            default_ttl=settings.cache.CACHE_DEFAULT_TTL,
            enabled=settings.cache.CACHE_ENABLED,
            clock=clock,
        )

    def _reset_counters(self) -> None:
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._errors = 0

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def has_secondary(self) -> bool:
        return self._secondary is not None

    def _tiers(self) -> list[tuple[CacheTier, StoreDriver]]:
        tiers: list[tuple[CacheTier, StoreDriver]] = [(CacheTier.MEMORY, self._memory)]
        if self._secondary is not None:
            tiers.append((CacheTier.REDIS, self._secondary))
        return tiers

    async def _guard(self, tier: CacheTier, operation: str, key: str, call: Awaitable[Any], default: Any = None) -> Any:
        """Await a store call; failures are logged, counted and replaced by ``default``."""
        try:
            return await call
        except Exception as e:
            self._errors += 1
            log_stage(
                logger,
                Stage.CACHE_STORE_ERROR,
                f"Cache {operation} failed",
                level="warning",
                tier=tier.value,
                cache_key=key,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return default

    def _effective_ttl(self, ttl: int | None) -> int:
        return ttl if ttl and ttl > 0 else self._default_ttl

    def _sample(self, key: str) -> KeyAccess:
        sample = self._access.get(key)
        if sample is None:
            sample = self._access[key] = KeyAccess()
            while len(self._access) > self._sample_limit:
                self._access.popitem(last=False)
        else:
            self._access.move_to_end(key)
        return sample

    def _record_hit(self, key: str) -> None:
        self._hits += 1
        sample = self._sample(key)
        sample.hits += 1
        sample.last_accessed = self._clock()

    def _record_miss(self, key: str) -> None:
        self._misses += 1
        # Only keys that were written before get a sample
        if key not in self._access:
            return
        sample = self._sample(key)
        sample.misses += 1
        sample.last_accessed = self._clock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Connect the secondary tier if it supports explicit connection."""
        connect = getattr(self._secondary, "connect", None)
        if connect is not None:
            await self._guard(CacheTier.REDIS, "connect", "*", connect())
        log_stage(
            logger,
            Stage.CACHE_INIT,
            "Cache manager initialized",
            enabled=self._enabled,
            secondary=self.has_secondary,
            default_ttl=self._default_ttl,
        )

    async def close(self) -> None:
        """Flush the fast tier and disconnect the secondary tier."""
        await self._guard(CacheTier.MEMORY, "close", "*", self._memory.clear())
        if self._secondary is not None:
            await self._guard(CacheTier.REDIS, "close", "*", self._secondary.close())
        self._access.clear()
        log_stage(logger, Stage.CACHE_SHUTDOWN, "Cache manager closed")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, key: str, fallback: FetchCallback | None = None, ttl: int | None = None) -> Any | None:
        """
        Get a value, consulting the fast tier, the secondary tier, then ``fallback``.

        Args:
            key: Cache key (see build_key)
            fallback: Called on a miss; a non-None result is stored and returned
            ttl: TTL for the stored fallback result (default TTL if omitted)

        Returns:
            Cached or computed value, or None

        Raises:
            Whatever ``fallback`` raises. Store failures never propagate.
        """
        if not self._enabled:
            self._misses += 1
            return await resolve_fetch(fallback) if fallback is not None else None

        value = await self._guard(CacheTier.MEMORY, "get", key, self._memory.get(key))
        if value is not None:
            self._record_hit(key)
            log_stage(logger, Stage.CACHE_FAST_HIT, "Fast tier hit", level="debug", cache_key=key)
            return value

        if self._secondary is not None:
            value = await self._guard(CacheTier.REDIS, "get", key, self._secondary.get(key))
            if value is not None:
                self._record_hit(key)
                await self._promote(key, value)
                log_stage(logger, Stage.CACHE_SECONDARY_HIT, "Secondary tier hit", level="debug", cache_key=key)
                return value

        self._record_miss(key)
        log_stage(logger, Stage.CACHE_MISS, "Cache miss", level="debug", cache_key=key)

        if fallback is None:
            return None

        value = await resolve_fetch(fallback)
        log_stage(logger, Stage.CACHE_FALLBACK, "Fallback computed", level="debug", cache_key=key, stored=value is not None)
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def _promote(self, key: str, value: Any) -> None:
        remaining = await self._guard(CacheTier.REDIS, "ttl", key, self._secondary.ttl(key), default=-1)
        ttl = remaining if remaining and remaining > 0 else self._default_ttl
        await self._guard(
            CacheTier.MEMORY, "set", key, self._memory.set(key, value, min(ttl, L1_PROMOTION_MAX_TTL))
        )

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any | None]:
        """Look up several keys; each counts as one lookup."""
        return {key: await self.get(key) for key in keys}

    async def exists(self, key: str) -> bool:
        for tier, store in self._tiers():
            if await self._guard(tier, "exists", key, store.exists(key), default=False):
                return True
        return False

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds, or -1 if the key is absent."""
        for tier, store in self._tiers():
            remaining = await self._guard(tier, "ttl", key, store.ttl(key), default=-2)
            if remaining >= 0:
                return remaining
        return -1

    async def keys(self, pattern: str = "*") -> list[str]:
        """Distinct live keys across tiers matching a glob pattern."""
        found: set[str] = set()
        for tier, store in self._tiers():
            found.update(await self._guard(tier, "keys", pattern, store.keys(pattern), default=[]))
        return sorted(found)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Store a value in every tier. Failures are logged, never raised.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Seconds to live; None or <= 0 uses the default TTL
        """
        if not self._enabled:
            return

        ttl = self._effective_ttl(ttl)
        await self._guard(CacheTier.MEMORY, "set", key, self._memory.set(key, value, ttl))
        if self._secondary is not None:
            await self._guard(CacheTier.REDIS, "set", key, self._secondary.set(key, value, ttl))

        self._sets += 1
        sample = self._sample(key)
        sample.last_written = self._clock()
        sample.size_bytes = estimate_size(key, value)
        log_stage(logger, Stage.CACHE_SET, "Cache set", level="debug", cache_key=key, ttl=ttl)

    async def set_many(self, entries: Mapping[str, Any], ttl: int | None = None) -> None:
        for key, value in entries.items():
            await self.set(key, value, ttl)

    async def expire(self, key: str, ttl: int) -> bool:
        """Reset the remaining TTL of ``key`` in every tier holding it."""
        updated = False
        for tier, store in self._tiers():
            if await self._guard(tier, "expire", key, store.expire(key, ttl), default=False):
                updated = True
        return updated

    async def _delete_everywhere(self, key: str) -> bool:
        removed = False
        for tier, store in self._tiers():
            if await self._guard(tier, "delete", key, store.delete(key), default=False):
                removed = True
        self._access.pop(key, None)
        if removed:
            self._deletes += 1
        return removed

    async def delete(self, key: str) -> bool:
        removed = await self._delete_everywhere(key)
        log_stage(logger, Stage.CACHE_INVALIDATE, "Cache delete", level="debug", cache_key=key, removed=removed)
        return removed

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern (``*``, ``?``, ``[...]``).

        Returns:
            int: Number of distinct keys removed across all tiers
        """
        removed = 0
        for key in await self.keys(pattern):
            if await self._delete_everywhere(key):
                removed += 1
        log_stage(logger, Stage.CACHE_INVALIDATE, "Cache pattern delete", pattern=pattern, removed=removed)
        return removed

    async def clear(self) -> None:
        """Flush all tiers and reset stats and access samples."""
        for tier, store in self._tiers():
            await self._guard(tier, "clear", "*", store.clear())
        self._access.clear()
        self._reset_counters()
        log_stage(logger, Stage.CACHE_INVALIDATE, "Cache cleared")

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    async def get_stats(self) -> CacheStats:
        live_keys = await self._guard(CacheTier.MEMORY, "keys", "*", self._memory.keys(), default=[])
        lookups = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            keys=len(live_keys),
            memory_bytes=self._memory.memory_bytes,
            hit_rate=round(self._hits / lookups * 100, 2) if lookups else 0.0,
            sets=self._sets,
            deletes=self._deletes,
            errors=self._errors,
        )

    def key_profiles(self) -> dict[str, KeyAccess]:
        """Copy of the per-key access samples."""
        return {key: replace(sample) for key, sample in self._access.items()}

    async def prune_access_samples(self) -> int:
        """
        Drop access samples for keys no tier holds any more.

        Nothing is pruned when a tier cannot be enumerated, since its keys
        may still be live.

        Returns:
            int: Number of samples dropped
        """
        live: set[str] = set()
        for tier, store in self._tiers():
            found = await self._guard(tier, "keys", "*", store.keys("*"))
            if found is None:
                return 0
            live.update(found)

        stale = [key for key in self._access if key not in live]
        for key in stale:
            del self._access[key]
        return len(stale)

    def key_profile(self, key: str) -> KeyAccess | None:
        sample = self._access.get(key)
        return replace(sample) if sample is not None else None

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    async def get_info(self) -> dict[str, Any]:
        stats = await self.get_stats()
        tiers: dict[str, Any] = {CacheTier.MEMORY.value: self._memory.get_info()}
        if self._secondary is not None:
            get_info = getattr(self._secondary, "get_info", None)
            tiers[CacheTier.REDIS.value] = get_info() if get_info else {"tier": CacheTier.REDIS.value}
        return {
            "enabled": self._enabled,
            "default_ttl": self._default_ttl,
            "stats": stats.to_dict(),
            "tracked_keys": len(self._access),
            "tiers": tiers,
        }

    async def _check_tier(self, store: StoreDriver) -> dict[str, Any]:
        """
        Write, read back and delete a health key directly on one tier.

        The fast tier does this in a single step that never evicts, so a
        full tier keeps all of its entries.
        """
        key = build_key(HEALTH_CHECK_KEY_PREFIX, uuid.uuid4().hex)
        marker = {"health": key}
        start = time.perf_counter()
        try:
            if isinstance(store, MemoryCacheStore):
                if not await store.round_trip(key, marker, HEALTH_CHECK_TTL):
                    raise RuntimeError("health value mismatch")
            else:
                await store.set(key, marker, HEALTH_CHECK_TTL)
                if await store.get(key) != marker:
                    raise RuntimeError("health value mismatch")
                await store.delete(key)
        except Exception as e:
            return {
                "healthy": False,
                "latency_ms": round((time.perf_counter() - start) * 1000, 3),
                "error": str(e) or e.__class__.__name__,
            }
        return {"healthy": True, "latency_ms": round((time.perf_counter() - start) * 1000, 3)}

    async def health_check(self) -> dict[str, Any]:
        """
        Check every tier without touching the stats.

        The overall result is healthy as long as the fast tier works; a
        failing secondary tier only degrades the status.

        Returns:
            Dict with healthy, status, latency_ms, optional error, and tiers
        """
        start = time.perf_counter()
        tiers = {tier.value: await self._check_tier(store) for tier, store in self._tiers()}
        memory = tiers[CacheTier.MEMORY.value]

        result: dict[str, Any] = {
            "healthy": memory["healthy"],
            "latency_ms": round((time.perf_counter() - start) * 1000, 3),
            "tiers": tiers,
        }
        if not memory["healthy"]:
            result["status"] = "unhealthy"
            result["error"] = memory["error"]
        elif all(detail["healthy"] for detail in tiers.values()):
            result["status"] = "healthy"
        else:
            result["status"] = "degraded"
            result["error"] = tiers[CacheTier.REDIS.value]["error"]

        log_stage(
            logger,
            Stage.CACHE_HEALTH,
            "Cache health check",
            level="info" if result["healthy"] else "warning",
            status=result["status"],
            latency_ms=result["latency_ms"],
        )
        return result

    # Key helpers, also reachable as CacheManager.build_key(...)
    build_key = staticmethod(build_key)
    build_sprint_key = staticmethod(build_sprint_key)
    build_repository_key = staticmethod(build_repository_key)
    build_issue_key = staticmethod(build_issue_key)
