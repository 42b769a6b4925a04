"""Interface for wall-clock access and delays.

Abstracting time lets tests drive the sliding window, backoff and
cooldown deterministically instead of sleeping for real.
"""

import abc


class Clock(abc.ABC):
    """Abstract clock used by every time-dependent component."""

    @abc.abstractmethod
    def now_ms(self) -> float:
        """Returns the current wall-clock time in epoch milliseconds."""
        pass

    @abc.abstractmethod
    async def sleep(self, delay_ms: float) -> None:
        """Suspends the calling task for ``delay_ms`` milliseconds."""
        pass
