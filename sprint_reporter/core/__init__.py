"""
Core Module

Foundational components: configuration, exceptions, logging, protocols
and resilience.
"""
