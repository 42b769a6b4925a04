"""Caching Implementations.

Provides the governor's two-tier response cache (in-memory primary, persisted
mirror) and the identity-aware cache manager facade.
Bounded Context: Cache Management
"""
