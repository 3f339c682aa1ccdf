"""
Integration tests.

Component interactions without external services:
- Cache-aside reads through the recovery layer
- Breaker coordination across cached and uncached reads
- Cache warming with upstream failures
"""
