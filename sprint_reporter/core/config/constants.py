"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the sprint reporter resilience and caching core.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for state management
- Numeric values here are policy defaults; settings.py can override them

Author: System Architect
Date: 2026-10-12
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field on log events.

    Format: {PREFIX}.{SEQUENCE}_{DESCRIPTIVE_NAME}
    - PREFIX: C (cache), O (optimizer), CB (circuit breaker), R (recovery)
    - DESCRIPTIVE_NAME: Clear, uppercase description with underscores

    Examples:
        log_stage(logger, Stage.CACHE_FAST_HIT, "Fast tier hit", cache_key=key)
        log_stage(logger, Stage.CIRCUIT_TRANSITION, "Circuit opened", key=key)
    """

    # Cache lifecycle
    CACHE_INIT = "C.0_CACHE_INIT"
    CACHE_FAST_HIT = "C.1_FAST_TIER_HIT"
    CACHE_SECONDARY_HIT = "C.2_SECONDARY_TIER_HIT"
    CACHE_MISS = "C.3_CACHE_MISS"
    CACHE_FALLBACK = "C.4_CACHE_FALLBACK"
    CACHE_SET = "C.5_CACHE_SET"
    CACHE_INVALIDATE = "C.6_CACHE_INVALIDATE"
    CACHE_STORE_ERROR = "C.7_STORE_ERROR"
    CACHE_HEALTH = "C.8_HEALTH_CHECK"
    CACHE_SHUTDOWN = "C.9_CACHE_SHUTDOWN"

    # Optimizer
    OPTIMIZER_PASS = "O.1_OPTIMIZATION_PASS"
    OPTIMIZER_ACTION = "O.2_OPTIMIZATION_ACTION"
    OPTIMIZER_WARMING = "O.3_CACHE_WARMING"

    # Circuit breaker
    CIRCUIT_CHECK = "CB.1_CIRCUIT_STATE_CHECK"
    CIRCUIT_TRANSITION = "CB.2_CIRCUIT_TRANSITION"
    CIRCUIT_RESET = "CB.3_CIRCUIT_RESET"

    # Recovery
    RECOVERY_ATTEMPT = "R.1_RECOVERY_ATTEMPT"
    RECOVERY_RETRY = "R.2_RETRY_SCHEDULED"
    RECOVERY_FALLBACK = "R.3_FALLBACK_USED"
    RECOVERY_DEGRADED = "R.4_GRACEFUL_DEGRADATION"
    RECOVERY_FAILED = "R.5_RECOVERY_FAILED"
    RECOVERY_CLEANUP = "R.6_CLEANUP"


# ============================================================================
# Circuit Breaker States
# ============================================================================


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED: Normal operation, requests allowed
    OPEN: Failing fast, requests blocked
    HALF_OPEN: Testing recovery, limited trial requests
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# ============================================================================
# Cache Tiers
# ============================================================================


class CacheTier(str, Enum):
    """
    Cache tiers.

    MEMORY: In-process TTL + LRU store (always present)
    REDIS: Optional distributed secondary tier
    """

    MEMORY = "memory"
    REDIS = "redis"


# ============================================================================
# Cache Defaults
# ============================================================================

CACHE_DEFAULT_TTL = 600  # 10 minutes
CACHE_MEMORY_MAX_SIZE = 1000

# Per-key access samples kept; the least recently touched are dropped first
CACHE_ACCESS_SAMPLE_LIMIT = 10_000

# Fast-tier TTL ceiling when promoting a secondary-tier hit
L1_PROMOTION_MAX_TTL = 300

# Key structure
KEY_DELIMITER = ":"
KEY_PREFIX_SPRINT = "sprint"
KEY_PREFIX_REPOSITORY = "repo"
KEY_PREFIX_ISSUE = "issue"
HEALTH_CHECK_KEY_PREFIX = "health_check"
HEALTH_CHECK_TTL = 5

# Seconds a failed Redis connect blocks further attempts
REDIS_RECONNECT_BACKOFF = 5.0

# ============================================================================
# Resilience Defaults
# ============================================================================

CB_FAILURE_THRESHOLD = 5
CB_RECOVERY_TIMEOUT = 60  # seconds
CB_HALF_OPEN_MAX_CALLS = 1

MAX_RETRIES = 3  # total attempts
RETRY_BASE_DELAY = 1.0  # seconds
RETRY_MAX_DELAY = 30.0  # seconds
RETRY_BACKOFF_MULTIPLIER = 2.0

MAX_RECENT_ERRORS = 100

# Operation-name fragments that allow a structured degraded result
DEGRADABLE_REPORT_MARKERS = ("report",)
DEGRADABLE_METRICS_MARKERS = ("metrics",)
DEGRADABLE_DATA_MARKERS = ("search", "get", "fetch", "list")

# ============================================================================
# Optimizer Defaults
# ============================================================================

OPTIMIZER_COLD_KEY_IDLE_SECONDS = 300
OPTIMIZER_LARGE_ENTRY_BYTES = 10_000
OPTIMIZER_LOW_HIT_RATE = 0.2
OPTIMIZER_MIN_SAMPLES = 5
OPTIMIZER_HOT_KEY_HITS = 100
OPTIMIZER_HOT_HIT_RATE = 0.8
OPTIMIZER_TTL_REDUCE_FACTOR = 0.5
OPTIMIZER_TTL_EXTEND_FACTOR = 1.5
OPTIMIZER_MIN_TTL = 60
OPTIMIZER_MAX_TTL = 86_400
OPTIMIZER_HISTORY_LIMIT = 50
OPTIMIZER_WARMING_CONCURRENCY = 5
WARMING_DEFAULT_TTL = 1800  # 30 minutes

# Recommendation thresholds
RECOMMEND_HUGE_ENTRY_BYTES = 100_000
RECOMMEND_STALE_SECONDS = 3600
RECOMMEND_STALE_KEY_COUNT = 10
RECOMMEND_LOW_HIT_RATE_KEY_COUNT = 5
RECOMMEND_MIN_OVERALL_HIT_RATE = 50.0  # percent
