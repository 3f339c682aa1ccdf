"""
Unit Tests for CacheManager

Tests the two-tier read/write path, fallback handling, stats, pattern
invalidation, store failure absorption, health checks and key building.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sprint_reporter.infrastructure.cache.cache_manager import (
    CacheManager,
    CacheStats,
    build_issue_key,
    build_key,
    build_repository_key,
    build_sprint_key,
    split_key,
)
from sprint_reporter.infrastructure.cache.memory_store import MemoryCacheStore
from sprint_reporter.infrastructure.cache.redis_store import RedisCacheStore
from tests.test_fixtures import CacheTestFactory


@pytest.mark.unit
class TestCacheReadWrite:
    @pytest.mark.asyncio
    async def test_set_then_get_is_hit(self, cache_manager):
        await cache_manager.set("sprint:1", {"name": "Sprint 1"})

        assert await cache_manager.get("sprint:1") == {"name": "Sprint 1"}
        stats = await cache_manager.get_stats()
        assert stats.hits == 1
        assert stats.misses == 0
        assert stats.sets == 1

    @pytest.mark.asyncio
    async def test_miss_without_fallback(self, cache_manager):
        assert await cache_manager.get("nope") is None
        assert (await cache_manager.get_stats()).misses == 1

    @pytest.mark.asyncio
    async def test_entry_expires(self, cache_manager, fake_clock):
        await cache_manager.set("k", "v", ttl=30)

        fake_clock.advance(29)
        assert await cache_manager.get("k") == "v"

        fake_clock.advance(1)
        assert await cache_manager.get("k") is None

    @pytest.mark.asyncio
    async def test_default_ttl_used(self, cache_manager):
        await cache_manager.set("a", 1)
        await cache_manager.set("b", 2, ttl=0)
        await cache_manager.set("c", 3, ttl=-5)

        assert await cache_manager.ttl("a") == 600
        assert await cache_manager.ttl("b") == 600
        assert await cache_manager.ttl("c") == 600

    @pytest.mark.asyncio
    async def test_ttl_absent_key(self, cache_manager):
        assert await cache_manager.ttl("nope") == -1

    @pytest.mark.asyncio
    async def test_exists_and_expire(self, cache_manager, fake_clock):
        await cache_manager.set("k", "v", ttl=10)
        assert await cache_manager.exists("k") is True

        assert await cache_manager.expire("k", 100) is True
        fake_clock.advance(50)
        assert await cache_manager.exists("k") is True
        assert await cache_manager.expire("missing", 100) is False

    @pytest.mark.asyncio
    async def test_get_many_and_set_many(self, cache_manager):
        await cache_manager.set_many({"a": 1, "b": 2}, ttl=60)

        assert await cache_manager.get_many(["a", "b", "c"]) == {"a": 1, "b": 2, "c": None}
        stats = await cache_manager.get_stats()
        assert stats.hits == 2
        assert stats.misses == 1

    @pytest.mark.asyncio
    async def test_hit_rate_percentage(self, cache_manager):
        await cache_manager.set("k", "v")
        for _ in range(2):
            await cache_manager.get("k")
        await cache_manager.get("missing")

        stats = await cache_manager.get_stats()
        assert stats.hit_rate == 66.67
        assert stats.total_lookups == 3
        assert stats.to_dict()["total_lookups"] == 3

    @pytest.mark.asyncio
    async def test_clear_resets_everything(self, cache_manager):
        await cache_manager.set("k", "v")
        await cache_manager.get("k")

        await cache_manager.clear()

        assert await cache_manager.get_stats() == CacheStats()
        assert cache_manager.key_profiles() == {}


@pytest.mark.unit
class TestCacheFallback:
    @pytest.mark.asyncio
    async def test_fallback_result_stored(self, cache_manager):
        fetch = AsyncMock(return_value=[1, 2, 3])

        assert await cache_manager.get("sprint:1:issues", fallback=fetch, ttl=120) == [1, 2, 3]
        assert await cache_manager.get("sprint:1:issues", fallback=fetch) == [1, 2, 3]

        fetch.assert_awaited_once()
        assert await cache_manager.ttl("sprint:1:issues") == 120

    @pytest.mark.asyncio
    async def test_sync_fallback(self, cache_manager):
        assert await cache_manager.get("k", fallback=lambda: "computed") == "computed"
        assert await cache_manager.exists("k") is True

    @pytest.mark.asyncio
    async def test_none_fallback_not_stored(self, cache_manager):
        assert await cache_manager.get("k", fallback=lambda: None) is None
        assert await cache_manager.exists("k") is False
        assert (await cache_manager.get_stats()).sets == 0

    @pytest.mark.asyncio
    async def test_fallback_error_propagates(self, cache_manager):
        fetch = AsyncMock(side_effect=RuntimeError("jira down"))

        with pytest.raises(RuntimeError, match="jira down"):
            await cache_manager.get("k", fallback=fetch)

        assert (await cache_manager.get_stats()).errors == 0


@pytest.mark.unit
class TestCacheDisabled:
    @pytest.mark.asyncio
    async def test_set_is_noop(self, memory_store, fake_clock):
        cache = CacheManager(memory_store, enabled=False, clock=fake_clock)

        await cache.set("k", "v")

        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_get_always_calls_fallback(self, memory_store, fake_clock):
        cache = CacheManager(memory_store, enabled=False, clock=fake_clock)
        fetch = MagicMock(return_value="fresh")

        assert await cache.get("k", fallback=fetch) == "fresh"
        assert await cache.get("k", fallback=fetch) == "fresh"

        assert fetch.call_count == 2
        assert (await cache.get_stats()).misses == 2

    def test_enabled_follows_settings(self, monkeypatch, memory_store):
        from sprint_reporter.core.config.settings import reload_settings

        monkeypatch.setenv("CACHE_ENABLED", "false")
        reload_settings()

        assert CacheManager(memory_store).enabled is False


@pytest.mark.unit
class TestCacheInvalidation:
    @pytest.mark.asyncio
    async def test_delete(self, cache_manager):
        await cache_manager.set("k", "v")

        assert await cache_manager.delete("k") is True
        assert await cache_manager.delete("k") is False
        assert (await cache_manager.get_stats()).deletes == 1

    @pytest.mark.asyncio
    async def test_delete_pattern(self, cache_manager):
        for key in ("user:1", "user:2", "session:1"):
            await cache_manager.set(key, key)

        assert await cache_manager.delete_pattern("user:*") == 2
        assert await cache_manager.keys() == ["session:1"]

    @pytest.mark.asyncio
    async def test_delete_pattern_counts_distinct_keys(self, two_tier_cache):
        await two_tier_cache.set("user:1", 1)
        await two_tier_cache.set("user:2", 2)

        assert await two_tier_cache.delete_pattern("user:*") == 2
        assert await two_tier_cache.keys("user:*") == []

    @pytest.mark.asyncio
    async def test_escaped_part_does_not_act_as_wildcard(self, cache_manager):
        await cache_manager.set(build_key("user", "*"), "literal")
        await cache_manager.set(build_key("user", "1"), "one")

        assert await cache_manager.delete_pattern(build_key("user", "*")) == 1
        assert await cache_manager.keys() == ["user:1"]

    @pytest.mark.asyncio
    async def test_delete_drops_access_profile(self, cache_manager):
        await cache_manager.set("k", "v")
        await cache_manager.get("k")

        await cache_manager.delete("k")

        assert cache_manager.key_profile("k") is None


@pytest.mark.unit
class TestTwoTierCache:
    @pytest.mark.asyncio
    async def test_set_writes_both_tiers(self, two_tier_cache, memory_store, secondary_store):
        await two_tier_cache.set("k", {"v": 1}, ttl=60)

        assert await memory_store.get("k") == {"v": 1}
        assert await secondary_store.get("k") == {"v": 1}

    @pytest.mark.asyncio
    async def test_secondary_hit_promotes_with_capped_ttl(self, two_tier_cache, memory_store, secondary_store):
        await secondary_store.set("k", "v", 1000)

        assert await two_tier_cache.get("k") == "v"
        assert await memory_store.ttl("k") == 300
        assert (await two_tier_cache.get_stats()).hits == 1

    @pytest.mark.asyncio
    async def test_promotion_keeps_shorter_remaining_ttl(self, two_tier_cache, memory_store, secondary_store):
        await secondary_store.set("k", "v", 100)

        await two_tier_cache.get("k")

        assert await memory_store.ttl("k") == 100

    @pytest.mark.asyncio
    async def test_keys_are_union_of_tiers(self, two_tier_cache, memory_store, secondary_store):
        await memory_store.set("a", 1, 60)
        await secondary_store.set("b", 2, 60)
        await two_tier_cache.set("c", 3)

        assert await two_tier_cache.keys() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_close_releases_both_tiers(self, two_tier_cache, memory_store, secondary_store):
        await two_tier_cache.set("k", "v")

        await two_tier_cache.close()

        assert len(memory_store) == 0
        assert secondary_store.closed is True

    @pytest.mark.asyncio
    async def test_initialize_connects_secondary(self, memory_store, fake_clock):
        secondary = CacheTestFactory.dict_store(clock=fake_clock)
        secondary.connect = AsyncMock()
        cache = CacheManager(memory_store, secondary, clock=fake_clock)

        await cache.initialize()

        secondary.connect.assert_awaited_once()


@pytest.mark.unit
class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_failing_secondary_is_a_miss(self, memory_store, fake_clock):
        cache = CacheManager(memory_store, CacheTestFactory.failing_store(), clock=fake_clock)

        assert await cache.get("k") is None

        stats = await cache.get_stats()
        assert stats.misses == 1
        assert stats.errors == 1

    @pytest.mark.asyncio
    async def test_failing_secondary_write_keeps_fast_tier(self, memory_store, fake_clock):
        cache = CacheManager(memory_store, CacheTestFactory.failing_store(), clock=fake_clock)

        await cache.set("k", "v")

        assert await cache.get("k") == "v"
        assert (await cache.get_stats()).errors == 1

    @pytest.mark.asyncio
    async def test_failing_fast_tier_still_serves_fallback(self, fake_clock):
        cache = CacheManager(CacheTestFactory.failing_store(), clock=fake_clock)

        assert await cache.get("k", fallback=lambda: "fresh") == "fresh"
        assert await cache.delete("k") is False
        assert await cache.exists("k") is False

    @pytest.mark.asyncio
    async def test_failing_initialize_is_absorbed(self, memory_store, fake_clock):
        secondary = CacheTestFactory.failing_store()
        secondary.connect = AsyncMock(side_effect=ConnectionError("refused"))
        cache = CacheManager(memory_store, secondary, clock=fake_clock)

        await cache.initialize()

        assert (await cache.get_stats()).errors == 1

    @pytest.mark.asyncio
    async def test_redis_tier_errors_absorbed(self, memory_store, mock_redis_client, fake_clock):
        from redis.exceptions import ConnectionError as RedisConnectionError

        mock_redis_client.get.side_effect = RedisConnectionError("down")
        cache = CacheManager(memory_store, RedisCacheStore(client=mock_redis_client), clock=fake_clock)

        assert await cache.get("k") is None
        assert (await cache.get_stats()).errors == 1


@pytest.mark.unit
class TestAccessProfiles:
    @pytest.mark.asyncio
    async def test_hits_and_misses_tracked_per_key(self, cache_manager, fake_clock):
        await cache_manager.set("k", "old", ttl=1)
        fake_clock.advance(1)
        await cache_manager.get("k")
        await cache_manager.set("k", "v")
        fake_clock.advance(5)
        await cache_manager.get("k")

        profile = cache_manager.key_profile("k")
        assert profile.hits == 1
        assert profile.misses == 1
        assert profile.hit_rate == 0.5
        assert profile.last_accessed == fake_clock()
        assert profile.last_written == fake_clock() - 5
        assert profile.size_bytes > 0

    @pytest.mark.asyncio
    async def test_profiles_are_copies(self, cache_manager):
        await cache_manager.set("k", "v")

        cache_manager.key_profiles()["k"].hits = 99

        assert cache_manager.key_profile("k").hits == 0

    @pytest.mark.asyncio
    async def test_miss_on_unwritten_key_keeps_no_sample(self, cache_manager):
        for i in range(50):
            await cache_manager.get(f"sprint:{i}")

        assert (await cache_manager.get_stats()).misses == 50
        assert cache_manager.key_profiles() == {}

    @pytest.mark.asyncio
    async def test_sample_limit_drops_least_recently_touched(self, memory_store, fake_clock):
        cache = CacheManager(memory_store, default_ttl=600, clock=fake_clock, sample_limit=2)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")

        await cache.set("c", 3)

        assert set(cache.key_profiles()) == {"a", "c"}

    @pytest.mark.asyncio
    async def test_prune_drops_samples_of_expired_and_evicted_keys(self, fake_clock):
        cache = CacheManager(MemoryCacheStore(max_size=2, clock=fake_clock), default_ttl=600, clock=fake_clock)
        await cache.set("a", 1)
        await cache.set("short", 2, ttl=10)
        fake_clock.advance(10)
        await cache.set("b", 3)

        assert await cache.prune_access_samples() == 2
        assert set(cache.key_profiles()) == {"b"}

    @pytest.mark.asyncio
    async def test_prune_skipped_when_a_tier_cannot_list_keys(self, memory_store, fake_clock):
        cache = CacheManager(memory_store, CacheTestFactory.failing_store(), clock=fake_clock)
        await cache.set("k", "v")
        await memory_store.delete("k")

        assert await cache.prune_access_samples() == 0
        assert cache.key_profile("k") is not None


@pytest.mark.unit
class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_healthy(self, two_tier_cache):
        result = await two_tier_cache.health_check()

        assert result["healthy"] is True
        assert result["status"] == "healthy"
        assert set(result["tiers"]) == {"memory", "redis"}
        assert "error" not in result

    @pytest.mark.asyncio
    async def test_failing_secondary_degrades(self, memory_store, fake_clock):
        cache = CacheManager(memory_store, CacheTestFactory.failing_store(), clock=fake_clock)

        result = await cache.health_check()

        assert result["healthy"] is True
        assert result["status"] == "degraded"
        assert result["error"] == "Redis connection failed"
        assert result["tiers"]["redis"]["healthy"] is False

    @pytest.mark.asyncio
    async def test_failing_fast_tier_unhealthy(self, fake_clock):
        cache = CacheManager(CacheTestFactory.failing_store(), clock=fake_clock)

        result = await cache.health_check()

        assert result["healthy"] is False
        assert result["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_health_check_does_not_touch_stats(self, cache_manager, memory_store):
        await cache_manager.health_check()

        assert await cache_manager.get_stats() == CacheStats()
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_full_fast_tier_keeps_its_entries(self, fake_clock):
        store = MemoryCacheStore(max_size=2, clock=fake_clock)
        cache = CacheManager(store, clock=fake_clock)
        await cache.set("sprint:0", 0)
        await cache.set("sprint:1", 1)

        result = await cache.health_check()

        assert result["healthy"] is True
        assert await cache.keys() == ["sprint:0", "sprint:1"]
        assert store.evictions == 0

    @pytest.mark.asyncio
    async def test_get_info(self, two_tier_cache):
        await two_tier_cache.set("k", "v")

        info = await two_tier_cache.get_info()

        assert info["enabled"] is True
        assert info["default_ttl"] == 600
        assert info["stats"]["sets"] == 1
        assert info["tiers"]["memory"]["keys"] == 1
        assert info["tiers"]["redis"] == {"tier": "redis"}


@pytest.mark.unit
class TestConstruction:
    def test_injected_empty_store_is_used(self, fake_clock):
        store = MemoryCacheStore(max_size=2, clock=fake_clock)

        cache = CacheManager(store, clock=fake_clock)

        assert cache._memory is store

    @pytest.mark.asyncio
    async def test_shared_store_sees_manager_writes(self, cache_manager, memory_store):
        await cache_manager.set("k", "v")

        assert await memory_store.get("k") == "v"

    def test_from_settings_uses_configured_capacity(self, mock_settings):
        mock_settings.cache.CACHE_MEMORY_MAX_SIZE = 7

        cache = CacheManager.from_settings(mock_settings)

        assert cache._memory.max_size == 7


@pytest.mark.unit
class TestFromSettings:
    def test_memory_only_when_redis_disabled(self, mock_settings):
        cache = CacheManager.from_settings(mock_settings)

        assert cache.has_secondary is False
        assert cache.default_ttl == 600

    def test_redis_tier_when_enabled(self):
        from sprint_reporter.core.config.settings import Settings

        cache = CacheManager.from_settings(Settings(REDIS_ENABLED=True))

        assert cache.has_secondary is True


@pytest.mark.unit
class TestKeyBuilding:
    def test_parts_joined(self):
        assert build_key("sprint", 42, "issues") == "sprint:42:issues"

    def test_delimiter_and_globs_escaped(self):
        assert build_key("sprint", "PROJ:1", "issues") == "sprint:PROJ%3A1:issues"
        assert build_key("user", "a*b?[c]") == "user:a%2Ab%3F%5Bc%5D"
        assert build_key("rate", "50%") == "rate:50%25"

    def test_split_key_reverses_build_key(self):
        parts = ["repo", "acme:labs", "weird%3Aname*", "50%"]
        assert split_key(build_key(*parts)) == parts

    def test_domain_helpers(self):
        assert build_sprint_key(42) == "sprint:42"
        assert build_sprint_key(42, "metrics") == "sprint:42:metrics"
        assert build_repository_key("acme", "api", "commits") == "repo:acme:api:commits"
        assert build_issue_key("PROJ-7") == "issue:PROJ-7"

    def test_helpers_reachable_from_manager(self):
        assert CacheManager.build_sprint_key(1, "issues") == "sprint:1:issues"
        assert CacheManager.build_key("a", "b") == "a:b"
