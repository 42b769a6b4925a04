"""Domain models of the request governor.

Includes cache entries, queued requests, cooldown state, configuration
and the statistics snapshot exposed to monitoring surfaces.
"""

import asyncio
from dataclasses import dataclass, field, fields
from typing import Any, Awaitable, Callable, Dict, Optional

from .common import CacheKey, Priority

# One minute, the span of the sliding admission window
WINDOW_MS = 60_000


@dataclass
class CacheEntry:
    """A cached operation result with its expiry (epoch milliseconds)."""

    data: Any
    created_at: float
    expires_at: float

    def __post_init__(self) -> None:
        if self.expires_at < self.created_at:
            raise ValueError("expires_at must not precede created_at")

    def is_expired(self, now_ms: float) -> bool:
        return now_ms > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "createdAt": self.created_at, "expiresAt": self.expires_at}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CacheEntry":
        return cls(
            data=raw["data"],
            created_at=float(raw["createdAt"]),
            expires_at=float(raw["expiresAt"]),
        )


@dataclass
class SaveResult:
    """Outcome of a best-effort persistence attempt."""

    ok: bool
    error: Optional[BaseException] = None


@dataclass
class RateLimiterConfig:
    """Tunable limits of the governor. All durations are in milliseconds."""

    max_requests_per_minute: int = 10
    max_retries: int = 3
    base_cache_duration_ms: int = 5 * 60 * 1000
    enable_cache: bool = True
    window_ms: int = WINDOW_MS
    min_spacing_ms: int = 100
    wait_margin_ms: int = 100
    base_backoff_ms: int = 2000
    max_backoff_ms: int = 30_000
    base_cooldown_ms: int = 30_000
    max_cooldown_ms: int = 5 * 60 * 1000

    def __post_init__(self) -> None:
        if self.max_requests_per_minute <= 0:
            raise ValueError("max_requests_per_minute must be positive.")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative.")

    @classmethod
    def field_names(cls) -> set:
        return {f.name for f in fields(cls)}


@dataclass
class ExecuteOptions:
    """Per-call options of RequestGovernor.execute."""

    cache_duration_ms: Optional[int] = None  # None -> config.base_cache_duration_ms
    priority: Priority = Priority.NORMAL
    skip_cache: bool = False
    force_refresh: bool = False


@dataclass
class QueuedRequest:
    """A pending operation waiting for admission."""

    id: str
    operation: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]"
    cache_key: CacheKey
    priority: Priority = Priority.NORMAL
    retry_count: int = 0
    cache_duration_ms: int = 0
    store_result: bool = True


@dataclass
class CooldownState:
    """Circuit state after consecutive quota violations.

    ``ends_at`` is only meaningful while ``active`` is set.
    """

    active: bool = False
    ends_at: float = 0.0
    consecutive_errors: int = 0


@dataclass
class LimiterStats:
    """Point-in-time view of the governor for monitoring surfaces."""

    requests_in_last_minute: int
    max_requests_per_minute: int
    cache_size: int
    queue_length: int
    is_in_cooldown: bool
    cooldown_remaining_ms: float = field(default=0.0)

    @property
    def usage_percent(self) -> float:
        return (self.requests_in_last_minute / self.max_requests_per_minute) * 100
