"""
Resilience Module

Circuit breakers and retry/fallback recovery for upstream operations.
"""

from sprint_reporter.core.resilience.circuit_breaker import (
    BreakerPolicy,
    CircuitBreaker,
    CircuitBreakerRegistry,
)
from sprint_reporter.core.resilience.error_recovery import (
    DegradedResult,
    ErrorRecord,
    ErrorRecoveryManager,
    RecoveryContext,
    RecoveryOutcome,
    RecoveryPolicy,
    RecoveryResult,
    RetryPolicy,
    degradation_category,
    with_recovery,
)

__all__ = [
    "BreakerPolicy",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "DegradedResult",
    "ErrorRecord",
    "ErrorRecoveryManager",
    "RecoveryContext",
    "RecoveryOutcome",
    "RecoveryPolicy",
    "RecoveryResult",
    "RetryPolicy",
    "degradation_category",
    "with_recovery",
]
