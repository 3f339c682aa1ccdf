"""
Cache Optimizer

Single-shot maintenance operations over a CacheManager. The surrounding
service decides when to run them; nothing here schedules itself.

- optimize_cache(): evict cold keys, shorten TTLs of large rarely-hit
  entries, lengthen TTLs of hot entries, and produce recommendations.
- warm_cache(): prefetch sprint / repository / issue data through
  registered warming strategies.
- analyze_cache(): per-key profile with priority and tags.

Author: System Architect
Date: 2026-10-12
"""

import asyncio
import re
import time
from collections import Counter, deque
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sprint_reporter.core.config import constants
from sprint_reporter.core.config.constants import Stage
from sprint_reporter.core.config.settings import Settings, get_settings
from sprint_reporter.core.interfaces.cache import FetchCallback
from sprint_reporter.core.logging.logger import get_logger, log_stage
from sprint_reporter.infrastructure.cache.cache_manager import (
    CacheManager,
    KeyAccess,
    build_issue_key,
    build_repository_key,
    build_sprint_key,
    resolve_fetch,
)

logger = get_logger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# POLICY & RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class OptimizerPolicy:
    cold_key_idle_seconds: float = constants.OPTIMIZER_COLD_KEY_IDLE_SECONDS
    large_entry_bytes: int = constants.OPTIMIZER_LARGE_ENTRY_BYTES
    low_hit_rate: float = constants.OPTIMIZER_LOW_HIT_RATE
    min_samples: int = constants.OPTIMIZER_MIN_SAMPLES
    hot_key_hits: int = constants.OPTIMIZER_HOT_KEY_HITS
    hot_hit_rate: float = constants.OPTIMIZER_HOT_HIT_RATE
    ttl_reduce_factor: float = constants.OPTIMIZER_TTL_REDUCE_FACTOR
    ttl_extend_factor: float = constants.OPTIMIZER_TTL_EXTEND_FACTOR
    min_ttl: int = constants.OPTIMIZER_MIN_TTL
    max_ttl: int = constants.OPTIMIZER_MAX_TTL
    warming_concurrency: int = constants.OPTIMIZER_WARMING_CONCURRENCY
    history_limit: int = constants.OPTIMIZER_HISTORY_LIMIT

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "OptimizerPolicy":
        opt = (settings or get_settings()).optimizer
        return cls(
            cold_key_idle_seconds=opt.OPTIMIZER_COLD_KEY_IDLE_SECONDS,
            large_entry_bytes=opt.OPTIMIZER_LARGE_ENTRY_BYTES,
            low_hit_rate=opt.OPTIMIZER_LOW_HIT_RATE,
            min_samples=opt.OPTIMIZER_MIN_SAMPLES,
            hot_key_hits=opt.OPTIMIZER_HOT_KEY_HITS,
            hot_hit_rate=opt.OPTIMIZER_HOT_HIT_RATE,
            min_ttl=opt.OPTIMIZER_MIN_TTL,
            max_ttl=opt.OPTIMIZER_MAX_TTL,
            warming_concurrency=opt.OPTIMIZER_WARMING_CONCURRENCY,
        )


class ActionType(str, Enum):
    EVICT = "evict"
    REDUCE_TTL = "reduce_ttl"
    EXTEND_TTL = "extend_ttl"


@dataclass
class OptimizationAction:
    action: ActionType
    key: str
    reason: str
    bytes_freed: int = 0
    old_ttl: int | None = None
    new_ttl: int | None = None


@dataclass
class OptimizationReport:
    keys_processed: int = 0
    space_saved: int = 0
    actions_performed: list[OptimizationAction] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_utcnow)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for action in data["actions_performed"]:
            action["action"] = action["action"].value
        return data


@dataclass
class KeyProfile:
    key: str
    pattern: str
    hits: int
    misses: int
    hit_rate: float
    size_bytes: int
    idle_seconds: float | None
    priority: str
    tags: list[str]


# =============================================================================
# WARMING TYPES
# =============================================================================


class WarmTargetKind(str, Enum):
    SPRINT = "sprint"
    REPOSITORY = "repository"
    ISSUE = "issue"


@dataclass(frozen=True)
class WarmTarget:
    """Identifier of something worth prefetching."""

    kind: WarmTargetKind
    sprint_id: str | None = None
    owner: str | None = None
    repo: str | None = None
    issue_key: str | None = None

    @classmethod
    def sprint(cls, sprint_id: Any) -> "WarmTarget":
        return cls(WarmTargetKind.SPRINT, sprint_id=str(sprint_id))

    @classmethod
    def repository(cls, owner: str, repo: str) -> "WarmTarget":
        return cls(WarmTargetKind.REPOSITORY, owner=owner, repo=repo)

    @classmethod
    def issue(cls, issue_key: str) -> "WarmTarget":
        return cls(WarmTargetKind.ISSUE, issue_key=issue_key)

    def base_key(self) -> str:
        if self.kind == WarmTargetKind.SPRINT:
            return build_sprint_key(self.sprint_id)
        if self.kind == WarmTargetKind.REPOSITORY:
            return build_repository_key(self.owner, self.repo)
        return build_issue_key(self.issue_key)


WarmingBuilder = Callable[[WarmTarget], Iterable[tuple[str, FetchCallback]]]


@dataclass
class WarmingStrategy:
    """
    Produces ``(cache_key, fetch_callback)`` pairs for one kind of target.

    Example:
        WarmingStrategy(
            name="sprint-issues",
            kind=WarmTargetKind.SPRINT,
            builder=lambda t: [(build_sprint_key(t.sprint_id, "issues"),
                                lambda: jira.get_sprint_issues(t.sprint_id))],
        )
    """

    name: str
    kind: WarmTargetKind
    builder: WarmingBuilder
    priority: int = 1
    ttl: int = constants.WARMING_DEFAULT_TTL
    enabled: bool = True


@dataclass
class WarmingFailure:
    key: str
    strategy: str
    error: str


@dataclass
class WarmingReport:
    warmed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[WarmingFailure] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# KEY CLASSIFICATION
# =============================================================================

_NUMERIC_SEGMENT = re.compile(r"(?<=:)\d+(?=:|$)")
_SHA_SEGMENT = re.compile(r"(?<=:)[a-f0-9]{7,40}(?=:|$)")
_ISSUE_KEY_SEGMENT = re.compile(r"(?<=:)[A-Z][A-Z0-9]*-\d+(?=:|$)")

# Leading segments that are identifiers for each prefix
_IDENTIFIER_SEGMENTS = {
    constants.KEY_PREFIX_SPRINT: 1,
    constants.KEY_PREFIX_REPOSITORY: 2,
    constants.KEY_PREFIX_ISSUE: 1,
}

_TAG_MARKERS = (
    ("sprint", "sprint"),
    ("repo", "repository"),
    ("issue", "issue"),
    ("commits", "commits"),
    ("prs", "pull-requests"),
    ("pulls", "pull-requests"),
    ("metrics", "metrics"),
    ("velocity", "velocity"),
    ("burndown", "burndown"),
)


def extract_pattern(key: str) -> str:
    """
    Collapse identifiers in a key into wildcards.

    Example:
        >>> extract_pattern("repo:acme:api:commits:1a2b3c4d")
        'repo:*:*:commits:*'
    """
    segments = key.split(constants.KEY_DELIMITER)
    for index in range(1, min(len(segments), 1 + _IDENTIFIER_SEGMENTS.get(segments[0], 0))):
        segments[index] = "*"
    collapsed = constants.KEY_DELIMITER.join(segments)
    for pattern in (_NUMERIC_SEGMENT, _SHA_SEGMENT, _ISSUE_KEY_SEGMENT):
        collapsed = pattern.sub("*", collapsed)
    return collapsed


def extract_tags(key: str) -> list[str]:
    segments = set(key.split(constants.KEY_DELIMITER))
    tags: list[str] = []
    for marker, tag in _TAG_MARKERS:
        if marker in segments and tag not in tags:
            tags.append(tag)
    return tags


def calculate_priority(sample: KeyAccess) -> str:
    score = sample.lookups * 0.4 + sample.hit_rate * 0.6
    if score > 80:
        return "high"
    if score > 40:
        return "medium"
    return "low"


# =============================================================================
# OPTIMIZER
# =============================================================================


class CacheOptimizer:
    """
    Applies optimization rules and warming strategies to a CacheManager.

    Timestamps come from the cache's monotonic clock so that access samples
    and idle-time computations agree.
    """

    def __init__(
        self,
        cache: CacheManager,
        policy: OptimizerPolicy | None = None,
        strategies: Iterable[WarmingStrategy] = (),
        clock: Callable[[], float] | None = None,
    ):
        self._cache = cache
        self.policy = policy or OptimizerPolicy()
        self._clock = clock or cache.clock
        self._strategies: dict[str, WarmingStrategy] = {s.name: s for s in strategies}

        self._last_pass_at: float | None = None
        self._last_run_at: str | None = None
        self._history: deque[OptimizationReport] = deque(maxlen=self.policy.history_limit)
        self._total_runs = 0
        self._total_space_saved = 0
        self._total_actions = 0
        # key -> last_written value at the time its TTL was adjusted
        self._adjusted: dict[str, float | None] = {}

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def add_strategy(self, strategy: WarmingStrategy) -> None:
        self._strategies[strategy.name] = strategy

    def remove_strategy(self, name: str) -> bool:
        return self._strategies.pop(name, None) is not None

    @property
    def strategies(self) -> list[WarmingStrategy]:
        return sorted(self._strategies.values(), key=lambda s: s.priority)

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def _idle_seconds(self, sample: KeyAccess, now: float) -> float | None:
        marks = [mark for mark in (sample.last_accessed, sample.last_written) if mark is not None]
        return now - max(marks) if marks else None

    async def analyze_cache(self) -> list[KeyProfile]:
        """Profile every live key that has an access sample."""
        now = self._clock()
        profiles = self._cache.key_profiles()
        result = []
        for key in await self._cache.keys():
            sample = profiles.get(key) or KeyAccess()
            result.append(
                KeyProfile(
                    key=key,
                    pattern=extract_pattern(key),
                    hits=sample.hits,
                    misses=sample.misses,
                    hit_rate=round(sample.hit_rate, 4),
                    size_bytes=sample.size_bytes,
                    idle_seconds=self._idle_seconds(sample, now),
                    priority=calculate_priority(sample),
                    tags=extract_tags(key),
                )
            )
        return result

    # -------------------------------------------------------------------------
    # Optimization pass
    # -------------------------------------------------------------------------

    def _is_cold(self, sample: KeyAccess, now: float) -> bool:
        accessed_since_last_pass = (
            sample.last_accessed is not None
            and self._last_pass_at is not None
            and sample.last_accessed > self._last_pass_at
        )
        idle = self._idle_seconds(sample, now)
        return not accessed_since_last_pass and idle is not None and idle >= self.policy.cold_key_idle_seconds

    def _is_large_and_rare(self, sample: KeyAccess) -> bool:
        return (
            sample.size_bytes >= self.policy.large_entry_bytes
            and sample.lookups >= self.policy.min_samples
            and sample.hit_rate < self.policy.low_hit_rate
        )

    def _is_hot(self, sample: KeyAccess) -> bool:
        return sample.hits >= self.policy.hot_key_hits and sample.hit_rate > self.policy.hot_hit_rate

    async def optimize_cache(self) -> OptimizationReport:
        """
        Run one optimization pass.

        Each key gets at most one action: eviction wins over TTL changes,
        and a TTL is adjusted at most once per write of the key. Keys read
        or written after the snapshot are left alone.
        """
        start = time.perf_counter()
        now = self._clock()
        report = OptimizationReport()
        await self._cache.prune_access_samples()
        snapshot = self._cache.key_profiles()
        live_keys = await self._cache.keys()
        self._adjusted = {key: mark for key, mark in self._adjusted.items() if key in snapshot}
        report.keys_processed = len(live_keys)

        for key in live_keys:
            sample = snapshot.get(key)
            if sample is None:
                continue
            current = self._cache.key_profile(key)
            if current is None or (current.last_accessed, current.last_written) != (
                sample.last_accessed,
                sample.last_written,
            ):
                continue

            if self._is_cold(sample, now):
                if await self._cache.delete(key):
                    self._adjusted.pop(key, None)
                    report.space_saved += sample.size_bytes
                    report.actions_performed.append(
                        OptimizationAction(
                            ActionType.EVICT,
                            key,
                            f"idle for {self._idle_seconds(sample, now):.0f}s",
                            bytes_freed=sample.size_bytes,
                        )
                    )
                continue

            if key in self._adjusted and self._adjusted[key] == sample.last_written:
                continue

            if self._is_large_and_rare(sample):
                action = await self._adjust_ttl(
                    key, ActionType.REDUCE_TTL, self.policy.ttl_reduce_factor,
                    f"{sample.size_bytes} bytes at hit rate {sample.hit_rate:.2f}",
                )
            elif self._is_hot(sample):
                action = await self._adjust_ttl(
                    key, ActionType.EXTEND_TTL, self.policy.ttl_extend_factor,
                    f"{sample.hits} hits at hit rate {sample.hit_rate:.2f}",
                )
            else:
                action = None

            if action is not None:
                self._adjusted[key] = sample.last_written
                report.actions_performed.append(action)

        report.recommendations = await self._recommendations(snapshot, now)
        report.duration_ms = round((time.perf_counter() - start) * 1000, 3)

        self._last_pass_at = now
        self._last_run_at = report.started_at
        self._total_runs += 1
        self._total_space_saved += report.space_saved
        self._total_actions += len(report.actions_performed)
        self._history.append(report)

        for action in report.actions_performed:
            log_stage(
                logger,
                Stage.OPTIMIZER_ACTION,
                "Optimization action",
                level="debug",
                action=action.action.value,
                cache_key=action.key,
                reason=action.reason,
            )
        log_stage(
            logger,
            Stage.OPTIMIZER_PASS,
            "Optimization pass complete",
            keys_processed=report.keys_processed,
            actions=len(report.actions_performed),
            space_saved=report.space_saved,
            duration_ms=report.duration_ms,
        )
        return report

    async def _adjust_ttl(
        self, key: str, action_type: ActionType, factor: float, reason: str
    ) -> OptimizationAction | None:
        remaining = await self._cache.ttl(key)
        if remaining < 0:
            return None
        new_ttl = int(remaining * factor)
        if action_type == ActionType.REDUCE_TTL:
            new_ttl = max(new_ttl, self.policy.min_ttl)
            if new_ttl >= remaining:
                return None
        else:
            new_ttl = min(new_ttl, self.policy.max_ttl)
            if new_ttl <= remaining:
                return None
        if not await self._cache.expire(key, new_ttl):
            return None
        return OptimizationAction(action_type, key, reason, old_ttl=remaining, new_ttl=new_ttl)

    async def _recommendations(self, profiles: dict[str, KeyAccess], now: float) -> list[str]:
        samples = list(profiles.values())
        recommendations = []

        high_frequency = [s for s in samples if s.lookups > self.policy.hot_key_hits]
        if high_frequency:
            recommendations.append(
                "Consider increasing cache memory allocation. "
                f"Found {len(high_frequency)} high-frequency keys."
            )

        low_hit_rate = [s for s in samples if s.lookups and s.hit_rate < 0.3]
        if len(low_hit_rate) > constants.RECOMMEND_LOW_HIT_RATE_KEY_COUNT:
            recommendations.append(
                f"Review cache strategy. {len(low_hit_rate)} keys have low hit rates (<30%)."
            )

        large = [s for s in samples if s.size_bytes > constants.RECOMMEND_HUGE_ENTRY_BYTES]
        if large:
            recommendations.append(
                "Consider compressing large cache entries. "
                f"Found {len(large)} entries larger than 100KB."
            )

        stale = [
            s for s in samples
            if (idle := self._idle_seconds(s, now)) is not None and idle > constants.RECOMMEND_STALE_SECONDS
        ]
        if len(stale) > constants.RECOMMEND_STALE_KEY_COUNT:
            recommendations.append(
                f"Clean up stale cache entries. {len(stale)} keys haven't been accessed in over 1 hour."
            )

        stats = await self._cache.get_stats()
        if stats.total_lookups and stats.hit_rate < constants.RECOMMEND_MIN_OVERALL_HIT_RATE:
            recommendations.append(
                f"Overall hit rate is {stats.hit_rate:.1f}%. Review TTLs and warming targets."
            )
        return recommendations

    # -------------------------------------------------------------------------
    # Warming
    # -------------------------------------------------------------------------

    async def warm_cache(self, targets: Iterable[WarmTarget], force: bool = False) -> WarmingReport:
        """
        Prefetch data for ``targets`` through the registered strategies.

        Args:
            targets: Sprints, repositories or issues to warm
            force: Refetch keys that are already cached

        Returns:
            WarmingReport; a failing key never aborts the batch
        """
        start = time.perf_counter()
        report = WarmingReport()
        jobs: dict[str, tuple[WarmingStrategy, FetchCallback]] = {}

        for target in targets:
            for strategy in self.strategies:
                if not strategy.enabled or strategy.kind != target.kind:
                    continue
                try:
                    pairs = list(strategy.builder(target))
                except Exception as e:
                    self._warming_failed(report, target.base_key(), strategy, e)
                    continue
                for key, fetch in pairs:
                    jobs.setdefault(key, (strategy, fetch))

        semaphore = asyncio.Semaphore(self.policy.warming_concurrency)

        async def warm_one(key: str, strategy: WarmingStrategy, fetch: FetchCallback) -> None:
            async with semaphore:
                if not force and await self._cache.exists(key):
                    report.skipped.append(key)
                    return
                try:
                    value = await resolve_fetch(fetch)
                except Exception as e:
                    self._warming_failed(report, key, strategy, e)
                    return
                if value is None:
                    report.skipped.append(key)
                    return
                await self._cache.set(key, value, strategy.ttl)
                report.warmed.append(key)

        await asyncio.gather(*(warm_one(key, strategy, fetch) for key, (strategy, fetch) in jobs.items()))

        report.duration_ms = round((time.perf_counter() - start) * 1000, 3)
        log_stage(
            logger,
            Stage.OPTIMIZER_WARMING,
            "Cache warming complete",
            warmed=len(report.warmed),
            skipped=len(report.skipped),
            failed=len(report.failed),
            duration_ms=report.duration_ms,
        )
        return report

    @staticmethod
    def _warming_failed(report: WarmingReport, key: str, strategy: WarmingStrategy, error: Exception) -> None:
        report.failed.append(WarmingFailure(key=key, strategy=strategy.name, error=str(error)))
        log_stage(
            logger,
            Stage.OPTIMIZER_WARMING,
            "Cache warming failed for key",
            level="warning",
            cache_key=key,
            strategy=strategy.name,
            error=str(error),
        )

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    async def get_optimization_summary(self) -> dict[str, Any]:
        profiles = await self.analyze_cache()
        sampled = [p for p in profiles if p.hits or p.misses]
        return {
            "last_report": self._history[-1].to_dict() if self._history else None,
            "total_runs": self._total_runs,
            "total_space_saved": self._total_space_saved,
            "total_actions": self._total_actions,
            "last_run_at": self._last_run_at,
            "history": [report.to_dict() for report in self._history],
            "key_patterns": dict(Counter(profile.pattern for profile in profiles)),
            "high_priority_keys": sum(1 for p in profiles if p.priority == "high"),
            "average_hit_rate": (
                round(sum(p.hit_rate for p in sampled) / len(sampled), 4) if sampled else 0.0
            ),
        }
