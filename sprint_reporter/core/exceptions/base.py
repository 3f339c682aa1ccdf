"""
Base Exception Class

This module contains the base exception class that all other exceptions
inherit from, the ErrorKind tags used by the recovery layer, and
ConfigurationError. Specialized exceptions live in their themed modules.

Author: System Architect
Date: 2026-10-12
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """
    Closed set of error kinds understood by the recovery layer.

    The kind decides two things: whether a failed attempt is retried, and
    whether it counts against the operation's circuit breaker.
    """

    VALIDATION = "validation"
    SERVICE = "service"
    RATE_LIMIT = "rate_limit"
    CIRCUIT_OPEN = "circuit_open"
    CACHE = "cache"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.SERVICE, ErrorKind.RATE_LIMIT)

    @property
    def trips_breaker(self) -> bool:
        return self in (ErrorKind.SERVICE, ErrorKind.RATE_LIMIT, ErrorKind.UNKNOWN)


class SprintReporterError(Exception):
    """
    Base exception for all sprint reporter errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Request ID correlation
    - Structured error logging
    - Classification through the ``kind`` class attribute

    Attributes:
        message: Error message
        request_id: Request ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise ServiceUnavailableError(
            "GitHub API returned 503",
            request_id="abc-123",
            details={"tool": "github", "operation": "list_commits"}
        )
    """

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, kind, message, request_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "SprintReporterError":
        """
        Add a suggestion to help users fix the error.

        Args:
            suggestion: Helpful suggestion for resolving the error

        Returns:
            Self (for method chaining)
        """
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "SprintReporterError":
        """
        Add additional context to the error details.

        Args:
            **context: Key-value pairs to add to details

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        request_id_str = f", request_id='{self.request_id}'" if self.request_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{request_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        message: str | None = None,
        request_id: str | None = None,
        **details,
    ) -> "SprintReporterError":
        """
        Create an error of this class from another exception.

        Useful for wrapping third-party exceptions with additional context.

        Args:
            exc: Original exception to wrap
            message: Custom message (defaults to original exception message)
            request_id: Request ID for correlation
            **details: Additional context to include

        Returns:
            New instance with the wrapped exception details

        Example:
            >>> try:
            ...     await client.ping()
            ... except redis.exceptions.ConnectionError as e:
            ...     raise CacheConnectionError.from_exception(e, host="localhost") from e
        """
        error_message = message or str(exc) or exc.__class__.__name__
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details,
        }
        return cls(error_message, request_id=request_id, details=error_details)


class ConfigurationError(SprintReporterError):
    """Raised when configuration is invalid or missing."""

    kind = ErrorKind.CONFIGURATION
