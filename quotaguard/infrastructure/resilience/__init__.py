"""API Resilience Implementations.

Contains the request governor and its parts: sliding rate window, priority
queue, cooldown breaker, error classifier and in-flight deduplication.
Bounded Context: API Resilience
"""
