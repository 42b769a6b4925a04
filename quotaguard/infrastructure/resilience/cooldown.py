"""Cooldown / circuit-breaker policy.

Consecutive quota violations arm an exponentially growing cooldown window
(30s, 60s, 120s, ... capped at 5 minutes). Any success closes the circuit
and resets the error counter.
"""

import logging

from quotaguard.domain.models.limiter import CooldownState

logger = logging.getLogger(__name__)

DEFAULT_BASE_COOLDOWN_MS = 30_000
DEFAULT_MAX_COOLDOWN_MS = 5 * 60 * 1000


class CooldownBreaker:
    """Tracks consecutive quota errors and the resulting cooldown window."""

    def __init__(
        self,
        base_cooldown_ms: float = DEFAULT_BASE_COOLDOWN_MS,
        max_cooldown_ms: float = DEFAULT_MAX_COOLDOWN_MS,
    ):
        self.base_cooldown_ms = base_cooldown_ms
        self.max_cooldown_ms = max_cooldown_ms
        self.state = CooldownState()

    @property
    def consecutive_errors(self) -> int:
        return self.state.consecutive_errors

    def is_active(self, now: float) -> bool:
        return self.state.active and now < self.state.ends_at

    def remaining_ms(self, now: float) -> float:
        if not self.state.active:
            return 0.0
        return max(0.0, self.state.ends_at - now)

    def cooldown_for(self, consecutive_errors: int) -> float:
        """Cooldown length after ``consecutive_errors`` quota violations in a row."""
        exponent = max(0, consecutive_errors - 1)
        return min(self.base_cooldown_ms * (2 ** exponent), self.max_cooldown_ms)

    def record_quota_error(self, now: float) -> float:
        """Counts a quota violation and (re)arms the cooldown.

        Returns:
            The armed cooldown duration in milliseconds.
        """
        self.state.consecutive_errors += 1
        duration = self.cooldown_for(self.state.consecutive_errors)
        self.state.active = True
        self.state.ends_at = now + duration
        logger.warning(
            f"Quota error #{self.state.consecutive_errors} in a row. "
            f"Cooldown armed for {duration / 1000:.0f}s."
        )
        return duration

    def record_success(self) -> None:
        if self.state.active or self.state.consecutive_errors:
            logger.info("Request succeeded, cooldown cleared.")
        self.state = CooldownState()

    def reset(self) -> None:
        """Forcibly closes the circuit. Use with care."""
        self.state = CooldownState()
        logger.info("Cooldown reset.")
