"""Error taxonomy of the request governor.

Quota and transient failures are retried inside the governor and only reach
callers wrapped in RetriesExhaustedError. CooldownActiveError is raised
immediately for arrivals during an active cooldown.
"""

import math
from typing import Optional

from .common import ErrorKind


class GovernorError(Exception):
    """Base class for all errors raised by quotaguard."""


class ApiCallError(GovernorError):
    """Typed failure surfaced by a text-generation client.

    The governor pattern-matches on ``kind`` instead of inspecting messages.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.TRANSIENT,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        self.kind = kind
        self.status_code = status_code
        self.provider = provider
        super().__init__(message)

    @property
    def is_quota_exhausted(self) -> bool:
        return self.kind is ErrorKind.QUOTA_EXHAUSTED


class CooldownActiveError(GovernorError):
    """Raised for new requests while the cooldown window is active and no
    stale cache entry can be served instead."""

    def __init__(self, remaining_ms: float):
        self.remaining_ms = max(0.0, remaining_ms)
        self.retry_after_seconds = math.ceil(self.remaining_ms / 1000)
        super().__init__(
            f"API is cooling down after repeated quota errors. "
            f"Retry after {self.retry_after_seconds} seconds."
        )


class RetriesExhaustedError(GovernorError):
    """Exception raised when max retries are exceeded."""

    def __init__(self, last_error: BaseException, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Gave up after {attempts} attempts. Last error: {last_error}")


class GovernorClosedError(GovernorError):
    """Raised to pending callers when the governor is shut down."""


class StorageError(GovernorError):
    """Raised by key-value stores when persistence fails."""


class ProviderUnavailableError(GovernorError):
    """Raised when a generation is requested but no provider client is configured."""
