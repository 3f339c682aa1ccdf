"""
Sprint Reporter resilience and caching core.

- ``sprint_reporter.core``: configuration, exceptions, logging, resilience
- ``sprint_reporter.infrastructure``: two-tier cache and its optimizer
"""

__version__ = "0.1.0"
