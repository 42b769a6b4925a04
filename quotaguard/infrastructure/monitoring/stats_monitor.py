"""Periodic delivery of governor statistics.

Subscriptions are explicit objects that must be cancelled; nothing polls in
the background unless someone subscribed.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from quotaguard.domain.interfaces.clock import Clock
from quotaguard.domain.models.limiter import LimiterStats
from quotaguard.infrastructure.resilience.governor import RequestGovernor

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 1000

StatsCallback = Callable[[LimiterStats], None]


class StatsSubscription:
    """Handle for one periodic stats delivery."""

    def __init__(self, monitor: "StatsMonitor", task: "asyncio.Future[None]"):
        self._monitor = monitor
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        """Stops delivery. Safe to call more than once."""
        if not self._task.done():
            self._task.cancel()
        self._monitor._forget(self)

    async def wait(self) -> None:
        """Waits until delivery ends, either by cancellation or after ``max_updates``."""
        # asyncio.wait does not raise when the task was cancelled
        await asyncio.wait([self._task])


class StatsMonitor:
    """Polls ``RequestGovernor.get_stats`` at a fixed interval for each subscriber."""

    def __init__(
        self,
        governor: RequestGovernor,
        clock: Optional[Clock] = None,
        interval_ms: float = DEFAULT_INTERVAL_MS,
    ):
        if interval_ms <= 0:
            raise ValueError("Stats interval must be positive.")
        self.governor = governor
        self.clock = clock or governor.clock
        self.interval_ms = interval_ms
        self._subscriptions: Set[StatsSubscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def snapshot(self) -> LimiterStats:
        return self.governor.get_stats()

    def subscribe(self, callback: StatsCallback, max_updates: Optional[int] = None) -> StatsSubscription:
        """Starts delivering snapshots to ``callback``, the first one immediately.

        Args:
            callback: Receives each LimiterStats snapshot.
            max_updates: Stop after this many deliveries. Unlimited if None.

        Returns:
            The subscription handle; call ``cancel()`` to stop delivery.
        """
        task = asyncio.ensure_future(self._deliver(callback, max_updates))
        subscription = StatsSubscription(self, task)
        self._subscriptions.add(subscription)
        task.add_done_callback(lambda _: self._forget(subscription))
        return subscription

    async def _deliver(self, callback: StatsCallback, max_updates: Optional[int]) -> None:
        delivered = 0
        while max_updates is None or delivered < max_updates:
            try:
                callback(self.governor.get_stats())
            except Exception as e:
                logger.error(f"Stats subscriber raised: {e}", exc_info=True)
            delivered += 1
            if max_updates is not None and delivered >= max_updates:
                break
            await self.clock.sleep(self.interval_ms)

    def _forget(self, subscription: StatsSubscription) -> None:
        self._subscriptions.discard(subscription)

    def close(self) -> None:
        """Cancels every active subscription."""
        for subscription in list(self._subscriptions):
            subscription.cancel()
        logger.debug("StatsMonitor closed.")
