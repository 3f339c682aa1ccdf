"""
Exception Module

Structured exception hierarchy for the sprint reporter core.
Exceptions are organized by theme; each carries an ErrorKind that the
recovery layer uses to decide retries and breaker accounting.

Module Structure:
-----------------
- **base.py**: SprintReporterError, ErrorKind, ConfigurationError
- **validation.py**: Caller input errors
- **service.py**: Upstream service errors
- **rate_limit.py**: Upstream rate limiting
- **circuit_breaker.py**: Open breaker short-circuits
- **cache.py**: Cache store errors
- **classification.py**: classify_error / wrap_error

Usage:
------
```python
from sprint_reporter.core.exceptions import ServiceUnavailableError, classify_error
```

Author: System Architect
Date: 2026-10-12
"""

# Base exception
from sprint_reporter.core.exceptions.base import ConfigurationError, ErrorKind, SprintReporterError

# Cache exceptions
from sprint_reporter.core.exceptions.cache import CacheConnectionError, CacheError, CacheKeyError

# Circuit breaker exceptions
from sprint_reporter.core.exceptions.circuit_breaker import (
    CircuitBreakerError,
    CircuitBreakerOpenError,
)

# Classification
from sprint_reporter.core.exceptions.classification import (
    ERROR_CLASS_BY_KIND,
    classify_error,
    wrap_error,
)

# Rate limit exceptions
from sprint_reporter.core.exceptions.rate_limit import RateLimitError

# Service exceptions
from sprint_reporter.core.exceptions.service import (
    ServiceError,
    ServiceTimeoutError,
    ServiceUnavailableError,
)

# Validation exceptions
from sprint_reporter.core.exceptions.validation import InvalidInputError, ValidationError

__all__ = [
    # Base
    "SprintReporterError",
    "ConfigurationError",
    "ErrorKind",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    # Circuit Breaker
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    # Rate Limiting
    "RateLimitError",
    # Service
    "ServiceError",
    "ServiceUnavailableError",
    "ServiceTimeoutError",
    # Validation
    "ValidationError",
    "InvalidInputError",
    # Classification
    "ERROR_CLASS_BY_KIND",
    "classify_error",
    "wrap_error",
]
