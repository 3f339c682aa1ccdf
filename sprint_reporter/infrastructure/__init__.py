"""
Infrastructure Module

Concrete cache tiers and the cache facade built on the core protocols.
"""
