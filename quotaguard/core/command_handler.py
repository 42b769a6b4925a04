"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work to
the GenerationService, the governor, the cache manager and the stats monitor,
and reports results and errors through the UserInterface.
"""

import logging
from typing import Optional

from quotaguard.core.services.generation_service import GenerationService
from quotaguard.domain.interfaces.user_interface import UserInterface
from quotaguard.domain.models.common import ModelName, Priority, PromptText
from quotaguard.domain.models.errors import (
    CooldownActiveError, GovernorError, RetriesExhaustedError,
)
from quotaguard.domain.models.fingerprint import StateSnapshot
from quotaguard.infrastructure.cache.cache_manager import CacheManager
from quotaguard.infrastructure.monitoring.stats_monitor import StatsMonitor
from quotaguard.infrastructure.resilience.governor import RequestGovernor

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services.

    Every ``handle_*`` method returns True on success and False when an error
    was displayed to the user.
    """

    def __init__(
        self,
        generation_service: GenerationService,
        governor: RequestGovernor,
        cache_manager: CacheManager,
        stats_monitor: StatsMonitor,
        ui: UserInterface,
    ):
        self.generation_service = generation_service
        self.governor = governor
        self.cache_manager = cache_manager
        self.stats_monitor = stats_monitor
        self.ui = ui

    def _report_failure(self, error: Exception) -> bool:
        if isinstance(error, CooldownActiveError):
            self.ui.display_cooldown_banner(error.retry_after_seconds)
        elif isinstance(error, RetriesExhaustedError):
            self.ui.display_error(f"The API call failed after {error.attempts} attempts: {error.last_error}")
        else:
            self.ui.display_error(str(error))
        return False

    async def handle_generate(
        self,
        prompt: str,
        priority: Priority = Priority.NORMAL,
        use_cache: bool = True,
        force_refresh: bool = False,
        model: Optional[str] = None,
    ) -> bool:
        """Handles the 'generate' command."""
        logger.info(f"Handling 'generate' command (priority={priority.value}, cache={use_cache})")
        try:
            text = await self.generation_service.generate(
                PromptText(prompt),
                model=ModelName(model) if model else None,
                priority=priority,
                use_cache=use_cache,
                force_refresh=force_refresh,
            )
        except GovernorError as e:
            logger.error(f"Generate command failed: {e}")
            return self._report_failure(e)
        self.ui.display_output(text)
        return True

    async def handle_contextual(
        self,
        key: str,
        prompt: str,
        balance: float = 0.0,
        transaction_count: int = 0,
        latest_transaction: Optional[str] = None,
        strategy_id: Optional[str] = None,
        ttl_minutes: float = 60,
        force_refresh: bool = False,
    ) -> bool:
        """Handles the 'contextual' command: a result cached per identity and state."""
        snapshot = StateSnapshot(
            scope=self.generation_service.dedup.current_scope(),
            balance=balance,
            transaction_count=transaction_count,
            latest_transaction=latest_transaction,
            strategy_id=strategy_id,
        )
        logger.info(f"Handling 'contextual' command for key '{key}'")
        try:
            text = await self.generation_service.generate_contextual(
                key, PromptText(prompt), snapshot, ttl_minutes * 60 * 1000, force_refresh=force_refresh
            )
        except GovernorError as e:
            logger.error(f"Contextual command failed: {e}")
            return self._report_failure(e)
        self.ui.display_output(text, title=key)
        return True

    async def handle_stats(self, watch: bool = False, interval_seconds: float = 1.0, count: Optional[int] = None) -> bool:
        """Handles the 'stats' command; ``watch`` keeps printing snapshots."""
        if not watch:
            self.ui.display_stats(self.governor.get_stats())
            return True

        if interval_seconds <= 0:
            self.ui.display_error("The watch interval must be positive.")
            return False
        self.stats_monitor.interval_ms = interval_seconds * 1000
        subscription = self.stats_monitor.subscribe(self.ui.display_stats, max_updates=count)
        try:
            await subscription.wait()
        finally:
            subscription.cancel()
        return True

    def handle_clear_cache(self, user_id: Optional[str] = None) -> bool:
        """Handles the 'clear-cache' command."""
        logger.info(f"Handling 'clear-cache' command (user={user_id or 'all'})")
        removed = self.cache_manager.clear_user_cache(user_id)
        last_save = self.governor.cache.last_save
        if last_save is not None and not last_save.ok:
            self.ui.display_warning(f"Cache cleared in memory, but persistence failed: {last_save.error}")
        target = f"user '{user_id}'" if user_id else "all users"
        self.ui.display_info(f"Cache cleared for {target}. Stored entries removed: {removed}.")
        return True

    def handle_sweep_cache(self) -> bool:
        removed = self.governor.sweep_cache()
        self.ui.display_info(f"Removed {removed} expired cache entries.")
        return True

    def handle_reset_cooldown(self) -> bool:
        was_active = self.governor.get_stats().is_in_cooldown
        self.governor.reset_cooldown()
        if was_active:
            self.ui.display_warning("Cooldown reset. Requests are admitted again; repeated quota errors will re-arm it.")
        else:
            self.ui.display_info("No cooldown was active.")
        return True

    def handle_switch_user(self, user_id: str) -> bool:
        """Records ``user_id`` as the session user, clearing the previous user's cache."""
        if not user_id.strip():
            self.ui.display_error("User id must not be empty.")
            return False
        if self.cache_manager.handle_session_transition(user_id):
            self.ui.display_info(f"Switched to '{user_id}'. The previous user's cached data was cleared.")
        else:
            self.ui.display_info(f"Session user is '{user_id}'.")
        return True

    def handle_logout(self) -> bool:
        removed = self.cache_manager.handle_full_logout()
        self.ui.display_info(f"Logged out. Cached entries removed: {removed}.")
        return True
