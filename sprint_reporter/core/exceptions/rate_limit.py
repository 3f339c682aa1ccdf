"""
Rate Limiting Exceptions

Author: System Architect
Date: 2026-10-12
"""

from typing import Any

from sprint_reporter.core.exceptions.base import ErrorKind, SprintReporterError


class RateLimitError(SprintReporterError):
    """
    Raised when an upstream API reports that its rate limit is exhausted.

    Attributes:
        retry_after: Seconds the upstream asked us to wait (if it said so).
            The recovery layer uses it instead of the computed backoff.
    """

    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, request_id=request_id, details=details)
        if retry_after is None:
            retry_after = self.details.get("retry_after")
        self.retry_after = float(retry_after) if retry_after is not None else None
        if self.retry_after is not None:
            self.details["retry_after"] = self.retry_after
