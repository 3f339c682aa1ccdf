"""
Upstream Service Exceptions

Failures of the issue tracker / code host calls wrapped by the recovery
layer. All of them are transient from the caller's point of view.

Author: System Architect
Date: 2026-10-12
"""

from sprint_reporter.core.exceptions.base import ErrorKind, SprintReporterError


class ServiceError(SprintReporterError):
    """Base exception for upstream service errors."""

    kind = ErrorKind.SERVICE


class ServiceUnavailableError(ServiceError):
    """
    Raised when the upstream service refuses or drops the request.

    Common causes:
    - 502 / 503 responses
    - Connection reset or refused
    """
    pass


class ServiceTimeoutError(ServiceError):
    """Raised when the upstream service does not answer in time."""
    pass
