"""
Unit Tests for Exception Hierarchy

Tests error kinds, structured details and classification of foreign
exceptions.
"""

import pytest

from sprint_reporter.core.exceptions import (
    CacheConnectionError,
    CacheError,
    CircuitBreakerOpenError,
    ConfigurationError,
    ErrorKind,
    InvalidInputError,
    RateLimitError,
    ServiceError,
    ServiceTimeoutError,
    ServiceUnavailableError,
    SprintReporterError,
    ValidationError,
    classify_error,
    wrap_error,
)


@pytest.mark.unit
class TestErrorKind:
    @pytest.mark.parametrize(
        "kind,retryable,trips",
        [
            (ErrorKind.VALIDATION, False, False),
            (ErrorKind.SERVICE, True, True),
            (ErrorKind.RATE_LIMIT, True, True),
            (ErrorKind.CIRCUIT_OPEN, False, False),
            (ErrorKind.CACHE, False, False),
            (ErrorKind.UNKNOWN, False, True),
        ],
    )
    def test_retry_and_breaker_flags(self, kind, retryable, trips):
        assert kind.retryable is retryable
        assert kind.trips_breaker is trips

    @pytest.mark.parametrize(
        "error_cls,kind",
        [
            (SprintReporterError, ErrorKind.UNKNOWN),
            (ConfigurationError, ErrorKind.CONFIGURATION),
            (InvalidInputError, ErrorKind.VALIDATION),
            (ServiceTimeoutError, ErrorKind.SERVICE),
            (RateLimitError, ErrorKind.RATE_LIMIT),
            (CircuitBreakerOpenError, ErrorKind.CIRCUIT_OPEN),
            (CacheConnectionError, ErrorKind.CACHE),
        ],
    )
    def test_class_kinds(self, error_cls, kind):
        assert error_cls("boom").kind == kind


@pytest.mark.unit
class TestSprintReporterError:
    def test_to_dict(self):
        error = ServiceUnavailableError("GitHub returned 503", request_id="req-1", details={"tool": "github"})

        assert error.to_dict() == {
            "error_type": "ServiceUnavailableError",
            "kind": "service",
            "message": "GitHub returned 503",
            "request_id": "req-1",
            "details": {"tool": "github"},
        }

    def test_details_are_copied(self):
        details = {"tool": "jira"}
        error = ServiceError("down", details=details)
        error.with_context(attempts=3)

        assert details == {"tool": "jira"}

    def test_chaining_helpers(self):
        error = ValidationError("bad id").with_suggestion("Use a numeric sprint id").with_context(field="sprint_id")

        assert error.details == {"suggestion": "Use a numeric sprint id", "field": "sprint_id"}

    def test_repr(self):
        error = CacheError("miss", request_id="r")
        assert repr(error) == "CacheError(message='miss', request_id='r')"

    def test_from_exception(self):
        original = ConnectionError("refused")
        error = CacheConnectionError.from_exception(original, host="localhost")

        assert isinstance(error, CacheConnectionError)
        assert error.message == "refused"
        assert error.details == {
            "original_error": "ConnectionError",
            "original_message": "refused",
            "host": "localhost",
        }

    def test_from_exception_with_empty_message(self):
        assert ServiceError.from_exception(TimeoutError()).message == "TimeoutError"


@pytest.mark.unit
class TestRateLimitError:
    def test_retry_after_keyword(self):
        error = RateLimitError("slow down", retry_after=12)
        assert error.retry_after == 12.0
        assert error.details["retry_after"] == 12.0

    def test_retry_after_from_details(self):
        assert RateLimitError("slow down", details={"retry_after": "5"}).retry_after == 5.0

    def test_retry_after_absent(self):
        error = RateLimitError("slow down")
        assert error.retry_after is None
        assert "retry_after" not in error.details


@pytest.mark.unit
class TestClassifyError:
    @pytest.mark.parametrize(
        "exc,kind",
        [
            (ValidationError("x"), ErrorKind.VALIDATION),
            (ServiceUnavailableError("x"), ErrorKind.SERVICE),
            (ConnectionResetError("reset"), ErrorKind.SERVICE),
            (TimeoutError(), ErrorKind.SERVICE),
            (ValueError("bad"), ErrorKind.VALIDATION),
            (TypeError("bad"), ErrorKind.VALIDATION),
            (Exception("HTTP 429 Too Many Requests"), ErrorKind.RATE_LIMIT),
            (Exception("Rate limit exceeded"), ErrorKind.RATE_LIMIT),
            (Exception("socket hang up"), ErrorKind.SERVICE),
            (Exception("read ECONNRESET"), ErrorKind.SERVICE),
            (Exception("Request timed out"), ErrorKind.SERVICE),
            (Exception("upstream returned 503"), ErrorKind.SERVICE),
            (Exception("Bad Gateway"), ErrorKind.SERVICE),
            (Exception("400 Bad Request"), ErrorKind.VALIDATION),
            (Exception("error 5000"), ErrorKind.UNKNOWN),
            (RuntimeError("something odd"), ErrorKind.UNKNOWN),
            (KeyError("missing"), ErrorKind.UNKNOWN),
        ],
    )
    def test_classification(self, exc, kind):
        assert classify_error(exc) == kind


@pytest.mark.unit
class TestWrapError:
    def test_library_error_annotated_in_place(self):
        error = ServiceUnavailableError("503")

        wrapped = wrap_error(error, attempts=3)

        assert wrapped is error
        assert error.details["attempts"] == 3

    @pytest.mark.parametrize(
        "exc,error_cls",
        [
            (ConnectionError("refused"), ServiceError),
            (ValueError("bad"), ValidationError),
            (Exception("429"), RateLimitError),
            (RuntimeError("odd"), SprintReporterError),
        ],
    )
    def test_foreign_error_wrapped(self, exc, error_cls):
        wrapped = wrap_error(exc, operation_key="github:list_commits")

        assert type(wrapped) is error_cls
        assert wrapped.details["operation_key"] == "github:list_commits"
        assert wrapped.details["original_error"] == type(exc).__name__
