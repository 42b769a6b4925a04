"""Concrete implementation of the two-tier governor cache.

Keeps an in-memory primary tier and mirrors it, best effort, into a
KeyValueStore as one serialized mapping. Persistence failures never affect
correctness: the cache degrades to memory-only and logs the failure.
"""

import json
import logging
from typing import Any, Dict, Optional

from quotaguard.domain.interfaces.clock import Clock
from quotaguard.domain.interfaces.storage import KeyValueStore
from quotaguard.domain.models.common import CacheKey, StorageKey
from quotaguard.domain.models.errors import StorageError
from quotaguard.domain.models.limiter import CacheEntry, SaveResult

logger = logging.getLogger(__name__)

# Single store entry holding the whole serialized cache mapping
DEFAULT_STORAGE_KEY = StorageKey("quotaguard_api_cache")


class CacheStore:
    """In-memory TTL cache with a persisted mirror and expired-read fallback."""

    def __init__(
        self,
        clock: Clock,
        store: Optional[KeyValueStore] = None,
        storage_key: StorageKey = DEFAULT_STORAGE_KEY,
    ):
        """Initializes the cache and reloads unexpired persisted entries.

        Args:
            clock: Clock used for creation and expiry timestamps.
            store: Optional persistent store. Memory-only when None.
            storage_key: Key under which the serialized mapping is kept.
        """
        self.clock = clock
        self.store = store
        self.storage_key = storage_key
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self.last_save: Optional[SaveResult] = None
        loaded = self._load()
        logger.info(f"CacheStore initialized. Persisted={store is not None}, loaded {loaded} entries.")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # --- Reads & writes ---

    def get(self, key: CacheKey, allow_expired: bool = False) -> Optional[Any]:
        """Looks up a cached value.

        Args:
            key: Cache key.
            allow_expired: Serve an expired entry instead of evicting it
                (degraded reads during cooldown).

        Returns:
            The cached data, or None on a miss.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock.now_ms()) and not allow_expired:
            # Lazy eviction; the persisted copy is dropped on the next save or reload
            del self._entries[key]
            logger.debug(f"Cache EXPIRED key: {key[:50]}")
            return None
        return entry.data

    def set(self, key: CacheKey, data: Any, duration_ms: float) -> SaveResult:
        """Stores a value for ``duration_ms`` and persists the cache."""
        now = self.clock.now_ms()
        self._entries[key] = CacheEntry(data=data, created_at=now, expires_at=now + max(0, duration_ms))
        logger.debug(f"Cache PUT key: {key[:50]} TTL: {duration_ms}ms")
        return self.save()

    def delete(self, key: CacheKey) -> SaveResult:
        self._entries.pop(key, None)
        return self.save()

    def clear(self) -> SaveResult:
        """Empties both the memory tier and the persisted mapping."""
        self._entries.clear()
        result = SaveResult(ok=True)
        if self.store is not None:
            try:
                self.store.remove(self.storage_key)
            except StorageError as e:
                logger.error(f"Failed to clear persisted cache: {e}")
                result = SaveResult(ok=False, error=e)
        self.last_save = result
        logger.info("Cache cleared.")
        return result

    def sweep_expired(self) -> int:
        """Removes expired entries. Housekeeping only.

        Returns:
            Number of entries removed.
        """
        now = self.clock.now_ms()
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self.save()
            logger.info(f"Swept {len(expired)} expired cache entries.")
        return len(expired)

    # --- Persistence ---

    def save(self) -> SaveResult:
        """Persists the memory tier.

        Returns:
            SaveResult; ``ok`` is False when the store or serialization failed,
            in which case the cache keeps working from memory.
        """
        if self.store is None:
            result = SaveResult(ok=True)
        else:
            try:
                payload = json.dumps({key: entry.to_dict() for key, entry in self._entries.items()})
                self.store.set(self.storage_key, payload)
                result = SaveResult(ok=True)
            except (StorageError, TypeError, ValueError) as e:
                logger.warning(f"Cache persistence failed, continuing memory-only: {e}")
                result = SaveResult(ok=False, error=e)
        self.last_save = result
        return result

    def _load(self) -> int:
        if self.store is None:
            return 0
        try:
            raw = self.store.get(self.storage_key)
        except StorageError as e:
            logger.warning(f"Could not read persisted cache: {e}")
            return 0
        if not raw:
            return 0
        try:
            mapping = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable persisted cache: {e}")
            return 0
        if not isinstance(mapping, dict):
            logger.warning("Persisted cache is not a mapping, ignoring it.")
            return 0

        now = self.clock.now_ms()
        for key, raw_entry in mapping.items():
            try:
                entry = CacheEntry.from_dict(raw_entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed cache entry {key}: {e}")
                continue
            if not entry.is_expired(now):
                self._entries[CacheKey(key)] = entry
        return len(self._entries)
