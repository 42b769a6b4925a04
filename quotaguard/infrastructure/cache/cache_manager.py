"""Cache manager facade.

Provides one place for isolating cached data between identities: clearing a
single user's entries, reacting to a change of signed-in user, and wiping
everything on logout.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from quotaguard.domain.interfaces.storage import KeyValueStore
from quotaguard.domain.models.common import StorageKey
from quotaguard.domain.models.errors import StorageError
from quotaguard.infrastructure.resilience.governor import RequestGovernor

logger = logging.getLogger(__name__)

# Store key prefixes/fragments holding cached or derived data
DEFAULT_CACHE_PATTERNS: Tuple[str, ...] = (
    "quotaguard_api_cache",
    "quotaguard_ai_",
    "insights",
    "smart_goals",
    "financial_analysis",
    "ai_cache_",
)
LAST_SESSION_USER_KEY = StorageKey("quotaguard_last_session_user")


class CacheManager:
    """Identity-aware clearing of persisted caches and the governor cache."""

    def __init__(
        self,
        store: KeyValueStore,
        governor: Optional[RequestGovernor] = None,
        patterns: Iterable[str] = DEFAULT_CACHE_PATTERNS,
    ):
        self.store = store
        self.governor = governor
        self.patterns = tuple(patterns)

    def _is_cache_key(self, key: str) -> bool:
        if key == LAST_SESSION_USER_KEY:
            return False
        if any(pattern in key for pattern in self.patterns):
            return True
        # Scoped fingerprint entries: "<scope>:<logical key>"
        scope, separator, _ = key.partition(":")
        return bool(separator and scope)

    def _belongs_to(self, key: str, user_id: str) -> bool:
        if key.startswith(f"{user_id}:"):
            return True
        return any(pattern in key for pattern in self.patterns) and user_id in key

    def clear_user_cache(self, user_id: Optional[str] = None) -> int:
        """Removes cached entries of one user, or of everyone when ``user_id`` is None.

        The governor's response cache is cleared as well.

        Returns:
            Number of store entries removed.
        """
        try:
            keys: List[str] = list(self.store.keys())
        except StorageError as e:
            logger.error(f"Could not list store keys: {e}")
            keys = []

        targets = [
            key for key in keys
            if self._is_cache_key(key) and (user_id is None or self._belongs_to(key, user_id))
        ]
        removed = 0
        for key in targets:
            try:
                self.store.remove(StorageKey(key))
                removed += 1
            except StorageError as e:
                logger.warning(f"Could not remove cache entry {key}: {e}")

        if self.governor is not None:
            self.governor.clear_cache()

        logger.info(f"Cache cleanup complete. Entries removed: {removed}")
        return removed

    def last_session_user(self) -> Optional[str]:
        try:
            return self.store.get(LAST_SESSION_USER_KEY)
        except StorageError as e:
            logger.warning(f"Could not read last session user: {e}")
            return None

    def handle_session_transition(self, current_user_id: str) -> bool:
        """Clears the previous user's entries if a different user signed in.

        Returns:
            True if a user change was detected and cleaned up.
        """
        previous = self.last_session_user()
        changed = bool(previous) and previous != current_user_id
        if changed:
            logger.warning(f"User change detected ({previous} -> {current_user_id}). Clearing previous user's cache.")
            self.clear_user_cache(previous)
        try:
            self.store.set(LAST_SESSION_USER_KEY, current_user_id)
        except StorageError as e:
            logger.warning(f"Could not record session user: {e}")
        return changed

    def handle_full_logout(self) -> int:
        """Clears every cached entry and forgets the last session user."""
        removed = self.clear_user_cache()
        try:
            self.store.remove(LAST_SESSION_USER_KEY)
        except StorageError as e:
            logger.warning(f"Could not forget session user: {e}")
        logger.info("Full logout cleanup complete.")
        return removed
