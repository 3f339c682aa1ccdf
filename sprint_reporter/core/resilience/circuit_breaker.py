"""
Circuit Breaker for upstream operations.

One breaker exists per operation key (``"tool:operation"``), created lazily by
the CircuitBreakerRegistry owned by an ErrorRecoveryManager.

MECHANISM OF ACTION:
-------------------
- **CLOSED**: Requests are allowed.
  - On counted failure: consecutive failure counter increments.
  - On success: counter resets to 0.
  - Threshold reached: state transitions to OPEN and ``opened_at`` is recorded.

- **OPEN**: Requests are rejected without running the operation.
  - After ``recovery_timeout`` seconds the next ``allow_request`` moves the
    breaker to HALF_OPEN.

- **HALF_OPEN**: Probing mode.
  - At most ``half_open_max_calls`` trial requests pass.
  - On success: CLOSED, counter zeroed.
  - On counted failure: back to OPEN and the cool-down restarts.

State lives in process memory. Transitions happen synchronously between
await points, so no lock is needed under a single event loop.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sprint_reporter.core.config.constants import (
    CB_FAILURE_THRESHOLD,
    CB_HALF_OPEN_MAX_CALLS,
    CB_RECOVERY_TIMEOUT,
    CircuitState,
    Stage,
)
from sprint_reporter.core.config.settings import Settings, get_settings
from sprint_reporter.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class BreakerPolicy:
    """Thresholds shared by every breaker in a registry."""

    failure_threshold: int = CB_FAILURE_THRESHOLD
    recovery_timeout: float = CB_RECOVERY_TIMEOUT
    half_open_max_calls: int = CB_HALF_OPEN_MAX_CALLS

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be >= 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "BreakerPolicy":
        cb = (settings or get_settings()).circuit_breaker
        return cls(
            failure_threshold=cb.CB_FAILURE_THRESHOLD,
            recovery_timeout=cb.CB_RECOVERY_TIMEOUT,
            half_open_max_calls=cb.CB_HALF_OPEN_MAX_CALLS,
        )


class CircuitBreaker:
    """
    Closed / Open / Half-Open state machine for a single operation key.

    The clock is injectable (``time.monotonic`` by default) so tests can
    move time forward deterministically.
    """

    def __init__(self, key: str, policy: BreakerPolicy | None = None, clock: Clock = time.monotonic):
        self.key = key
        self.policy = policy or BreakerPolicy()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0
        self._opened_at: float | None = None
        self._last_failure_at: float | None = None

        # Lifetime counters (stats only)
        self._total_successes = 0
        self._total_failures = 0
        self._rejected = 0
        self._times_opened = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        old_state = self._state
        self._state = new_state
        level = "error" if new_state == CircuitState.OPEN else "info"
        log_stage(
            logger,
            Stage.CIRCUIT_TRANSITION,
            f"Circuit '{self.key}' {old_state.value} -> {new_state.value}",
            level=level,
            operation_key=self.key,
            reason=reason,
            failure_count=self._failure_count,
        )

    def _open(self, reason: str) -> None:
        self._opened_at = self._clock()
        self._half_open_calls = 0
        self._times_opened += 1
        self._transition(CircuitState.OPEN, reason)

    def allow_request(self) -> bool:
        """
        Decide whether the operation may run now.

        An OPEN breaker whose cool-down has elapsed moves to HALF_OPEN here,
        and the call that observes the move takes the first trial slot.
        """
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - (self._opened_at or 0.0)
            if elapsed < self.policy.recovery_timeout:
                self._rejected += 1
                log_stage(
                    logger,
                    Stage.CIRCUIT_CHECK,
                    "Circuit open, request rejected",
                    level="debug",
                    operation_key=self.key,
                    retry_in=round(self.policy.recovery_timeout - elapsed, 3),
                )
                return False
            self._half_open_calls = 0
            self._transition(CircuitState.HALF_OPEN, "recovery timeout elapsed")

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self.policy.half_open_max_calls:
                self._rejected += 1
                return False
            self._half_open_calls += 1

        return True

    def record_success(self) -> None:
        self._total_successes += 1
        if self._state == CircuitState.HALF_OPEN:
            self._failure_count = 0
            self._half_open_calls = 0
            self._opened_at = None
            self._transition(CircuitState.CLOSED, "trial call succeeded")
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self, counts: bool = True) -> None:
        """
        Record a failed call.

        Args:
            counts: False for failures that must not trip the breaker
                (validation errors). Such a failure during a half-open
                trial frees the trial slot instead.
        """
        self._total_failures += 1
        if not counts:
            self.release_trial()
            return

        self._last_failure_at = self._clock()
        self._failure_count += 1

        if self._state == CircuitState.HALF_OPEN:
            self._open("trial call failed")
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.policy.failure_threshold:
            self._open(f"{self._failure_count} consecutive failures")

    def release_trial(self) -> None:
        """Give back a half-open trial slot whose call never finished (cancelled)."""
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
            self._half_open_calls -= 1

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0
        self._opened_at = None
        log_stage(logger, Stage.CIRCUIT_RESET, "Circuit reset", operation_key=self.key)

    def get_stats(self) -> dict[str, Any]:
        retry_in = None
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            retry_in = max(0.0, self.policy.recovery_timeout - (self._clock() - self._opened_at))
        return {
            "state": self._state.value,
            "failure_count": self._failure_count,
            "is_open": self.is_open,
            "failure_threshold": self.policy.failure_threshold,
            "half_open_calls": self._half_open_calls,
            "opened_at": self._opened_at,
            "last_failure_at": self._last_failure_at,
            "retry_in_seconds": retry_in,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "rejected_requests": self._rejected,
            "times_opened": self._times_opened,
        }


# ============================================================================
# Registry
# ============================================================================


class CircuitBreakerRegistry:
    """Lazily creates and tracks one breaker per operation key."""

    def __init__(self, policy: BreakerPolicy | None = None, clock: Clock = time.monotonic):
        self._policy = policy or BreakerPolicy()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    @property
    def policy(self) -> BreakerPolicy:
        return self._policy

    def get_breaker(self, key: str) -> CircuitBreaker:
        if key not in self._breakers:
            self._breakers[key] = CircuitBreaker(key, self._policy, clock=self._clock)
        return self._breakers[key]

    def __contains__(self, key: str) -> bool:
        return key in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def update_policy(self, policy: BreakerPolicy) -> None:
        """Apply new thresholds to existing and future breakers."""
        self._policy = policy
        for breaker in self._breakers.values():
            breaker.policy = policy

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {key: breaker.get_stats() for key, breaker in self._breakers.items()}

    def reset(self, key: str | None = None) -> int:
        """
        Reset one breaker, or all of them when ``key`` is None.

        Returns:
            int: Number of breakers reset
        """
        if key is not None:
            breaker = self._breakers.get(key)
            if breaker is None:
                return 0
            breaker.reset()
            return 1
        for breaker in self._breakers.values():
            breaker.reset()
        return len(self._breakers)
