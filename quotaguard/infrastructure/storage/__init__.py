"""Key-Value Store Implementations.

Provides concrete implementations of the KeyValueStore interface:
a disk-backed store (diskcache) and an in-memory store.
Bounded Context: Persistence
"""
