"""
Circuit Breaker Exceptions

Author: System Architect
Date: 2026-10-12
"""

from sprint_reporter.core.exceptions.base import ErrorKind, SprintReporterError


class CircuitBreakerError(SprintReporterError):
    """Base exception for circuit breaker errors."""

    kind = ErrorKind.CIRCUIT_OPEN


class CircuitBreakerOpenError(CircuitBreakerError):
    """
    Raised when a circuit breaker is open and no fallback is available.

    The operation was not attempted. Callers should back off until the
    breaker's recovery timeout has elapsed.
    """
    pass
