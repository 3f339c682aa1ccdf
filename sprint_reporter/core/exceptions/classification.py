"""
Error Classification

Maps any exception onto an ErrorKind. Library errors carry their kind;
foreign exceptions are classified by type first and then by message
patterns commonly produced by HTTP clients.

Author: System Architect
Date: 2026-10-12
"""

import re

from sprint_reporter.core.exceptions.base import ErrorKind, SprintReporterError
from sprint_reporter.core.exceptions.cache import CacheError
from sprint_reporter.core.exceptions.circuit_breaker import CircuitBreakerOpenError
from sprint_reporter.core.exceptions.rate_limit import RateLimitError
from sprint_reporter.core.exceptions.service import ServiceError
from sprint_reporter.core.exceptions.validation import ValidationError

_RATE_LIMIT_PATTERN = re.compile(r"\b429\b|rate.?limit|too many requests", re.IGNORECASE)
_SERVICE_PATTERN = re.compile(
    r"ECONNRESET|ECONNREFUSED|ENOTFOUND|EHOSTUNREACH|ETIMEDOUT|socket hang up|service unavailable|"
    r"internal server error|bad gateway|gateway timeout|timed? ?out|\b50[0234]\b",
    re.IGNORECASE,
)
_VALIDATION_PATTERN = re.compile(r"\b400\b|bad request", re.IGNORECASE)

# Kind -> exception class used when a foreign exception must be re-raised
# as a library error.
ERROR_CLASS_BY_KIND: dict[ErrorKind, type[SprintReporterError]] = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.SERVICE: ServiceError,
    ErrorKind.RATE_LIMIT: RateLimitError,
    ErrorKind.CIRCUIT_OPEN: CircuitBreakerOpenError,
    ErrorKind.CACHE: CacheError,
    ErrorKind.UNKNOWN: SprintReporterError,
}


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Classify an exception.

    Args:
        exc: Any exception raised by a wrapped operation

    Returns:
        ErrorKind deciding retry and breaker behavior
    """
    if isinstance(exc, SprintReporterError):
        return exc.kind

    # ConnectionError and TimeoutError are OSError subclasses
    if isinstance(exc, OSError):
        return ErrorKind.SERVICE
    if isinstance(exc, (ValueError, TypeError)):
        return ErrorKind.VALIDATION

    message = str(exc)
    if _RATE_LIMIT_PATTERN.search(message):
        return ErrorKind.RATE_LIMIT
    if _SERVICE_PATTERN.search(message):
        return ErrorKind.SERVICE
    if _VALIDATION_PATTERN.search(message):
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


def wrap_error(exc: BaseException, **details) -> SprintReporterError:
    """
    Return a library error for ``exc``.

    Library errors are annotated in place and returned unchanged; foreign
    exceptions are wrapped in the class matching their classification.
    The caller is expected to ``raise ... from exc`` when wrapping.
    """
    if isinstance(exc, SprintReporterError):
        return exc.with_context(**details)
    error_cls = ERROR_CLASS_BY_KIND.get(classify_error(exc), SprintReporterError)
    return error_cls.from_exception(exc, **details)
