"""
Error Recovery for upstream operations.

ErrorRecoveryManager wraps every call to the issue tracker or code host:

1.  **Breaker gate**: the breaker for ``tool:operation`` is consulted before
    each attempt. An open breaker skips straight to fallback handling.
2.  **Retry**: transient failures (service, rate limit) are retried with
    exponential backoff through tenacity. A ``RateLimitError.retry_after``
    hint replaces the computed delay. Retries stop early once the breaker
    opens.
3.  **Fallback / degradation**: when attempts are exhausted or the breaker
    is open, a caller fallback runs if present; otherwise report, metrics
    and data-retrieval operations that tolerate partial results receive a
    DegradedResult.
4.  **Cleanup**: the caller's cleanup runs exactly once on every failure
    path.

``execute`` returns a RecoveryResult and never raises for operation
failures; ``execute_with_recovery`` unwraps it.
"""

import asyncio
import inspect
import random
import time
from collections import Counter, deque
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Literal

from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, stop_any

from sprint_reporter.core.config.constants import (
    DEGRADABLE_DATA_MARKERS,
    DEGRADABLE_METRICS_MARKERS,
    DEGRADABLE_REPORT_MARKERS,
    MAX_RECENT_ERRORS,
    MAX_RETRIES,
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    CircuitState,
    Stage,
)
from sprint_reporter.core.config.settings import Settings, get_settings
from sprint_reporter.core.exceptions import (
    CircuitBreakerOpenError,
    ErrorKind,
    RateLimitError,
    classify_error,
    wrap_error,
)
from sprint_reporter.core.logging.logger import get_logger, log_stage
from sprint_reporter.core.resilience.circuit_breaker import (
    BreakerPolicy,
    CircuitBreaker,
    CircuitBreakerRegistry,
    Clock,
)

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def _resolve(func: Callable[[], Any]) -> Any:
    result = func()
    if inspect.isawaitable(result):
        result = await result
    return result


# ============================================================================
# Policies
# ============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff policy.

    The wait before retry ``i`` (0-based) is
    ``min(base_delay * backoff_multiplier ** i, max_delay)``.
    """

    max_attempts: int = MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY
    backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER
    jitter: float = 0.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        retry = (settings or get_settings()).retry
        return cls(
            max_attempts=retry.RETRY_MAX_ATTEMPTS,
            base_delay=retry.RETRY_BASE_DELAY,
            max_delay=retry.RETRY_MAX_DELAY,
            backoff_multiplier=retry.RETRY_BACKOFF_MULTIPLIER,
            jitter=retry.RETRY_JITTER,
        )

    def delay_for(self, retry_index: int, error: BaseException | None = None) -> float:
        """
        Seconds to wait before retry ``retry_index``.

        Args:
            retry_index: 0 for the wait after the first failed attempt
            error: The failure being retried; a RateLimitError with a
                ``retry_after`` hint overrides the computed delay
        """
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return min(max(error.retry_after, 0.0), self.max_delay)

        delay = min(self.base_delay * self.backoff_multiplier**retry_index, self.max_delay)
        if self.jitter > 0:
            delay = min(delay + random.uniform(0, delay * self.jitter), self.max_delay)
        return delay


@dataclass(frozen=True)
class RecoveryPolicy:
    """Fallback and degradation switches plus the error history size."""

    fallback_enabled: bool = True
    graceful_degradation: bool = True
    error_history_size: int = MAX_RECENT_ERRORS

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RecoveryPolicy":
        recovery = (settings or get_settings()).recovery
        return cls(
            fallback_enabled=recovery.RECOVERY_FALLBACK_ENABLED,
            graceful_degradation=recovery.RECOVERY_GRACEFUL_DEGRADATION,
            error_history_size=recovery.RECOVERY_ERROR_HISTORY_SIZE,
        )


# ============================================================================
# Data Model
# ============================================================================


@dataclass
class RecoveryContext:
    """Per-call description of the operation being protected."""

    operation_name: str
    tool_name: str
    fallback: Callable[[], Any] | None = None
    cleanup: Callable[[], Any] | None = None
    partial_result_tolerance: bool = False

    @property
    def operation_key(self) -> str:
        return f"{self.tool_name}:{self.operation_name}"


class RecoveryOutcome(str, Enum):
    SUCCESS = "success"
    FALLBACK = "fallback"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class RecoveryResult:
    """
    Outcome of ``ErrorRecoveryManager.execute``.

    ``value`` holds the operation result, the fallback result or a
    DegradedResult depending on ``outcome``. ``error`` is set only for
    FAILED.
    """

    outcome: RecoveryOutcome
    operation_key: str
    value: Any = None
    error: BaseException | None = None
    attempts: int = 0
    circuit_open: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome != RecoveryOutcome.FAILED

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


class DegradedResult(BaseModel):
    """Structured partial answer returned instead of raising."""

    error: bool = True
    message: str
    details: str
    category: Literal["report", "metrics", "data"]
    partial: bool = True
    data: list[Any] = Field(default_factory=list)
    degradation_reason: str
    generated_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


_DEGRADED_MESSAGES = {
    "report": "Report generation partially failed",
    "metrics": "Metrics calculation partially failed",
    "data": "Data retrieval partially failed",
}


def degradation_category(operation_name: str) -> str | None:
    """Return the degradable category an operation name falls into, if any."""
    name = operation_name.lower()
    if any(marker in name for marker in DEGRADABLE_REPORT_MARKERS):
        return "report"
    if any(marker in name for marker in DEGRADABLE_METRICS_MARKERS):
        return "metrics"
    if any(marker in name for marker in DEGRADABLE_DATA_MARKERS):
        return "data"
    return None


@dataclass
class ErrorRecord:
    operation_key: str
    tool_name: str
    operation_name: str
    error_type: str
    message: str
    attempt: int
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


# ============================================================================
# Manager
# ============================================================================


class ErrorRecoveryManager:
    """
    Retry, breaker, fallback and degradation around upstream operations.

    Owns its CircuitBreakerRegistry and error history; create one per
    service and pass it to the code that needs it.
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        breaker_policy: BreakerPolicy | None = None,
        recovery_policy: RecoveryPolicy | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self.recovery_policy = recovery_policy or RecoveryPolicy()
        self._breakers = CircuitBreakerRegistry(breaker_policy or BreakerPolicy(), clock=clock)
        self._sleep = sleep

        self._recent_errors: deque[ErrorRecord] = deque(
            maxlen=self.recovery_policy.error_history_size
        )
        self._total_errors = 0
        self._errors_by_tool: Counter[str] = Counter()
        self._errors_by_type: Counter[str] = Counter()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> "ErrorRecoveryManager":
        settings = settings or get_settings()
        return cls(
            RetryPolicy.from_settings(settings),
            BreakerPolicy.from_settings(settings),
            RecoveryPolicy.from_settings(settings),
            **kwargs,
        )

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_with_recovery(
        self, operation: Callable[[], Any], context: RecoveryContext
    ) -> Any:
        """
        Run ``operation`` under recovery and return its value.

        Returns the operation result, the fallback result, or a
        DegradedResult.

        Raises:
            CircuitBreakerOpenError: Breaker open and nothing to fall back to
            SprintReporterError: Final failure, annotated with ``attempts``
                and ``operation_key``
        """
        result = await self.execute(operation, context)
        return result.unwrap()

    async def execute(self, operation: Callable[[], Any], context: RecoveryContext) -> RecoveryResult:
        """Run ``operation`` under recovery and describe what happened."""
        key = context.operation_key
        breaker = self._breakers.get_breaker(key)

        attempts = 0
        succeeded = False
        short_circuited = False
        value: Any = None
        last_error: BaseException | None = None

        retrying = AsyncRetrying(
            stop=stop_any(
                stop_after_attempt(self.retry_policy.max_attempts),
                lambda retry_state: breaker.is_open,
            ),
            wait=self._wait,
            retry=retry_if_exception(lambda exc: isinstance(exc, Exception) and classify_error(exc).retryable),
            before_sleep=self._log_retry(key),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                if not breaker.allow_request():
                    short_circuited = True
                    break
                with attempt:
                    attempts += 1
                    log_stage(
                        logger,
                        Stage.RECOVERY_ATTEMPT,
                        "Executing operation",
                        level="debug",
                        operation_key=key,
                        attempt=attempts,
                    )
                    try:
                        value = await _resolve(operation)
                    except Exception as exc:
                        self._record_failure(context, breaker, exc, attempts)
                        raise
                    except BaseException:
                        breaker.release_trial()
                        raise
                    breaker.record_success()
                    succeeded = True
        except Exception as exc:
            last_error = exc
        except BaseException:
            await self._run_cleanup(context)
            raise

        if succeeded:
            return RecoveryResult(RecoveryOutcome.SUCCESS, key, value=value, attempts=attempts)

        return await self._handle_failure(context, breaker, last_error, attempts, short_circuited)

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.retry_policy.delay_for(retry_state.attempt_number - 1, error)

    def _log_retry(self, key: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            log_stage(
                logger,
                Stage.RECOVERY_RETRY,
                "Retrying after failure",
                level="warning",
                operation_key=key,
                attempt=retry_state.attempt_number,
                delay=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(error),
            )

        return before_sleep

    async def _handle_failure(
        self,
        context: RecoveryContext,
        breaker: CircuitBreaker,
        last_error: BaseException | None,
        attempts: int,
        short_circuited: bool,
    ) -> RecoveryResult:
        key = context.operation_key
        circuit_open = short_circuited or breaker.state == CircuitState.OPEN

        await self._run_cleanup(context)

        kind = classify_error(last_error) if last_error is not None else ErrorKind.CIRCUIT_OPEN
        if last_error is not None and not short_circuited and kind == ErrorKind.VALIDATION:
            return self._failed(context, self._final_error(last_error, attempts, key), attempts, circuit_open)

        if context.fallback is not None and self.recovery_policy.fallback_enabled:
            log_stage(
                logger,
                Stage.RECOVERY_FALLBACK,
                "Using fallback",
                level="warning",
                operation_key=key,
                attempts=attempts,
                circuit_open=circuit_open,
            )
            try:
                fallback_value = await _resolve(context.fallback)
            except Exception as fallback_error:
                return self._failed(context, fallback_error, attempts, circuit_open)
            return RecoveryResult(
                RecoveryOutcome.FALLBACK,
                key,
                value=fallback_value,
                attempts=attempts,
                circuit_open=circuit_open,
            )

        category = degradation_category(context.operation_name)
        if (
            context.partial_result_tolerance
            and self.recovery_policy.graceful_degradation
            and category is not None
        ):
            reason_error = last_error if last_error is not None else "circuit breaker open"
            degraded = DegradedResult(
                message=_DEGRADED_MESSAGES[category],
                details=str(reason_error),
                category=category,
                degradation_reason=f"Error in {context.tool_name}.{context.operation_name}",
            )
            log_stage(
                logger,
                Stage.RECOVERY_DEGRADED,
                "Returning degraded result",
                level="warning",
                operation_key=key,
                category=category,
            )
            return RecoveryResult(
                RecoveryOutcome.DEGRADED,
                key,
                value=degraded,
                attempts=attempts,
                circuit_open=circuit_open,
            )

        if short_circuited:
            error = CircuitBreakerOpenError(
                f"Circuit open for {key}",
                details={"operation_key": key, "attempts": attempts, **breaker.get_stats()},
            )
            if last_error is not None:
                error.__cause__ = last_error
        else:
            error = self._final_error(last_error, attempts, key)
        return self._failed(context, error, attempts, circuit_open)

    @staticmethod
    def _final_error(exc: BaseException, attempts: int, key: str) -> BaseException:
        wrapped = wrap_error(exc, attempts=attempts, operation_key=key)
        if wrapped is not exc:
            wrapped.__cause__ = exc
        return wrapped

    def _failed(
        self, context: RecoveryContext, error: BaseException, attempts: int, circuit_open: bool
    ) -> RecoveryResult:
        log_stage(
            logger,
            Stage.RECOVERY_FAILED,
            "Operation failed after recovery",
            level="error",
            operation_key=context.operation_key,
            attempts=attempts,
            error_type=error.__class__.__name__,
            error=str(error),
        )
        return RecoveryResult(
            RecoveryOutcome.FAILED,
            context.operation_key,
            error=error,
            attempts=attempts,
            circuit_open=circuit_open,
        )

    async def _run_cleanup(self, context: RecoveryContext) -> None:
        if context.cleanup is None:
            return
        try:
            await _resolve(context.cleanup)
        except Exception as exc:
            log_stage(
                logger,
                Stage.RECOVERY_CLEANUP,
                "Cleanup failed",
                level="error",
                operation_key=context.operation_key,
                error=str(exc),
            )

    def _record_failure(
        self, context: RecoveryContext, breaker: CircuitBreaker, exc: BaseException, attempt: int
    ) -> None:
        kind = classify_error(exc)
        breaker.record_failure(counts=kind.trips_breaker)

        self._recent_errors.append(
            ErrorRecord(
                operation_key=context.operation_key,
                tool_name=context.tool_name,
                operation_name=context.operation_name,
                error_type=kind.value,
                message=str(exc),
                attempt=attempt,
            )
        )
        self._total_errors += 1
        self._errors_by_tool[context.tool_name] += 1
        self._errors_by_type[kind.value] += 1

    # ------------------------------------------------------------------
    # Introspection & administration
    # ------------------------------------------------------------------

    def get_error_analytics(self) -> dict[str, Any]:
        return {
            "total_errors": self._total_errors,
            "errors_by_tool": dict(self._errors_by_tool),
            "errors_by_type": dict(self._errors_by_type),
            "recent_errors": [asdict(record) for record in self._recent_errors],
        }

    def get_circuit_breaker_stats(self) -> dict[str, dict[str, Any]]:
        return self._breakers.get_all_stats()

    def reset_circuit_breaker(self, key: str | None = None) -> int:
        """Reset one breaker by operation key, or all breakers."""
        return self._breakers.reset(key)

    def update_policy(
        self,
        retry_policy: RetryPolicy | None = None,
        breaker_policy: BreakerPolicy | None = None,
        recovery_policy: RecoveryPolicy | None = None,
    ) -> None:
        if retry_policy is not None:
            self.retry_policy = retry_policy
        if breaker_policy is not None:
            self._breakers.update_policy(breaker_policy)
        if recovery_policy is not None:
            self.recovery_policy = recovery_policy
            if recovery_policy.error_history_size != self._recent_errors.maxlen:
                self._recent_errors = deque(
                    self._recent_errors, maxlen=recovery_policy.error_history_size
                )


def with_recovery(
    manager: ErrorRecoveryManager,
    operation_name: str,
    tool_name: str = "unknown",
    fallback: Callable[[], Any] | None = None,
    cleanup: Callable[[], Any] | None = None,
    partial_result_tolerance: bool = False,
):
    """
    Wrap an async function so every call goes through ``manager``.

    Usage:
        @with_recovery(recovery, "list_commits", tool_name="github")
        async def list_commits(owner, repo): ...
    """

    def decorator(func: Callable[..., Awaitable[Any]]):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            context = RecoveryContext(
                operation_name=operation_name,
                tool_name=tool_name,
                fallback=fallback,
                cleanup=cleanup,
                partial_result_tolerance=partial_result_tolerance,
            )
            return await manager.execute_with_recovery(lambda: func(*args, **kwargs), context)

        return wrapper

    return decorator
