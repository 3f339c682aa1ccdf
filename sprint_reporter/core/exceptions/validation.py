"""
Validation Exceptions

Raised when caller input is malformed. Never retried, never counted
against a circuit breaker, and never answered with a fallback.

Author: System Architect
Date: 2026-10-12
"""

from sprint_reporter.core.exceptions.base import ErrorKind, SprintReporterError


class ValidationError(SprintReporterError):
    """Base exception for validation errors."""

    kind = ErrorKind.VALIDATION


class InvalidInputError(ValidationError):
    """
    Raised when an argument is missing or has the wrong shape.

    Common causes:
    - Unknown sprint or repository identifier format
    - Upstream API answered 400 Bad Request
    """
    pass
