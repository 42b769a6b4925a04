"""Domain Events related to governed API calls.

Examples include events for when calls are queued, deferred, retried,
rejected, served from cache, or when the cooldown is armed.
"""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""


@dataclass
class RequestQueued(DomainEvent):
    """Event triggered when a request enters the admission queue."""
    request_id: str
    priority: str
    queue_length: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class RequestDeferred(DomainEvent):
    """Event triggered when dispatch waits for rate-window headroom."""
    request_id: str
    wait_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when a governed operation succeeds."""
    request_id: str
    latency_ms: float
    attempt_number: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed operation."""
    request_id: str
    attempt_number: int
    delay_ms: float
    error_kind: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CooldownArmed(DomainEvent):
    """Event triggered when quota errors (re)arm the cooldown window."""
    duration_ms: float
    consecutive_errors: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class RequestRejected(DomainEvent):
    """Event triggered when a request fails definitively."""
    cache_key: str
    error_type: str
    error_message: str
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheHit(DomainEvent):
    """Event triggered when a request is answered from the cache."""
    cache_key: str
    stale: bool = False
    timestamp: float = field(default_factory=time.time)
