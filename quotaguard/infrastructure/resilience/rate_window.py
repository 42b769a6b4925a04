"""Sliding-window admission tracker.

Records dispatch timestamps and computes how long the next dispatch must
wait so that no more than ``max_requests`` dispatches fall inside any
trailing window.
"""

import collections
import logging
from typing import Deque, Optional

from quotaguard.domain.models.limiter import WINDOW_MS

logger = logging.getLogger(__name__)

DEFAULT_MIN_SPACING_MS = 100
DEFAULT_WAIT_MARGIN_MS = 100


class RateWindow:
    """Manages dispatch timestamps using a sliding window approach."""

    def __init__(
        self,
        window_ms: float = WINDOW_MS,
        min_spacing_ms: float = DEFAULT_MIN_SPACING_MS,
        wait_margin_ms: float = DEFAULT_WAIT_MARGIN_MS,
    ):
        """Initializes the window.

        Args:
            window_ms: Length of the sliding window.
            min_spacing_ms: Minimum gap between two dispatches, even under the ceiling.
            wait_margin_ms: Safety margin added when waiting for the oldest entry to expire.
        """
        if window_ms <= 0:
            raise ValueError("Window length must be positive.")
        self.window_ms = window_ms
        self.min_spacing_ms = min_spacing_ms
        self.wait_margin_ms = wait_margin_ms
        # Oldest first, so pruning pops from the left
        self.timestamps: Deque[float] = collections.deque()
        self.last_dispatch: Optional[float] = None

    def prune(self, now: float) -> None:
        """Removes timestamps that left the trailing window."""
        cutoff = now - self.window_ms
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()

    def record(self, now: float) -> None:
        """Records a dispatch at ``now``."""
        self.timestamps.append(now)
        self.last_dispatch = now
        self.prune(now)

    def count(self, now: float) -> int:
        """Number of dispatches inside the trailing window."""
        self.prune(now)
        return len(self.timestamps)

    def wait_time(self, now: float, max_requests: int) -> float:
        """Calculates the time (in ms) to wait until the next dispatch may start.

        Returns 0 if a dispatch can be made immediately.
        """
        in_window = self.count(now)
        if in_window >= max_requests:
            # The oldest relevant timestamp is the one that needs to slide out.
            # Index 0 unless the ceiling was lowered below the current count.
            oldest = self.timestamps[in_window - max_requests]
            wait_needed = oldest + self.window_ms - now + self.wait_margin_ms
            logger.debug(f"Rate ceiling reached ({max_requests}). Wait: {wait_needed:.0f}ms")
            return max(0.0, wait_needed)

        if self.last_dispatch is not None:
            since_last = now - self.last_dispatch
            if since_last < self.min_spacing_ms:
                return self.min_spacing_ms - since_last
        return 0.0

    def reset(self) -> None:
        self.timestamps.clear()
        self.last_dispatch = None
