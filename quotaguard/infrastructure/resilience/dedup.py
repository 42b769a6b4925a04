"""In-flight deduplication and fingerprint-validated result cache.

Sits above the RequestGovernor. Concurrent identical calls (same identity
scope, logical key and state hash) share one operation invocation, and
derived results are persisted per scope together with the fingerprint of the
state they were computed from. A stored result is only reused while it is
younger than its TTL and the state fingerprint is unchanged.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from quotaguard.domain.interfaces.clock import Clock
from quotaguard.domain.interfaces.identity import IdentityProvider
from quotaguard.domain.interfaces.storage import KeyValueStore
from quotaguard.domain.models.common import (
    ANONYMOUS_SCOPE, CacheKey, Priority, ScopeId, StateHash, StorageKey,
)
from quotaguard.domain.models.errors import StorageError
from quotaguard.domain.models.limiter import ExecuteOptions
from quotaguard.infrastructure.resilience.governor import RequestGovernor

logger = logging.getLogger(__name__)


class DedupResolver:
    """Collapses concurrent identical requests and caches derived results per scope."""

    def __init__(
        self,
        governor: RequestGovernor,
        store: KeyValueStore,
        identity_provider: Optional[IdentityProvider] = None,
        clock: Optional[Clock] = None,
    ):
        """Initializes the resolver.

        Args:
            governor: Governor every real call is delegated to.
            store: Store holding the ``<scope>:<key>`` result entries.
            identity_provider: Source of the current scope. Anonymous if None.
            clock: Clock for entry ages. Defaults to the governor's clock.
        """
        self.governor = governor
        self.store = store
        self.identity_provider = identity_provider
        self.clock = clock or governor.clock
        self._in_flight: Dict[str, "asyncio.Future[Any]"] = {}

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def current_scope(self) -> ScopeId:
        identity = self.identity_provider.current_identity() if self.identity_provider else None
        return ScopeId(identity) if identity else ANONYMOUS_SCOPE

    async def resolve_deduped(
        self,
        key: str,
        state_hash: StateHash,
        api_call: Callable[[], Awaitable[Any]],
        ttl_ms: float,
        force_refresh: bool = False,
        priority: Priority = Priority.NORMAL,
    ) -> Any:
        """Resolves ``key`` for the current scope and state, calling the API at most once.

        Args:
            key: Logical key of the derived result (e.g. "insights").
            state_hash: Fingerprint of the inputs the result depends on.
            api_call: Zero-argument coroutine function performing the call.
            ttl_ms: Maximum age of a reusable stored result.
            force_refresh: Skip stored results and the governor cache.
            priority: Queue priority for the governed call.

        Returns:
            The stored, shared or freshly computed result.
        """
        scope = self.current_scope()
        storage_key = StorageKey(f"{scope}:{key}")

        if not force_refresh:
            stored = self._read_valid(storage_key, state_hash, ttl_ms)
            if stored is not None:
                logger.debug(f"Fingerprint cache HIT for {storage_key}")
                return stored

        flight_key = f"{scope}:{key}:{state_hash}"
        task = self._in_flight.get(flight_key)
        if task is None:
            task = asyncio.ensure_future(self._call_and_persist(
                flight_key, scope, key, storage_key, state_hash, api_call, ttl_ms, force_refresh, priority
            ))
            task.add_done_callback(_consume_outcome)
            # Registered before the first await so later callers find it
            self._in_flight[flight_key] = task
        else:
            logger.debug(f"Joining in-flight call for {flight_key}")

        # One caller cancelling must not cancel the shared call
        return await asyncio.shield(task)

    async def _call_and_persist(
        self,
        flight_key: str,
        scope: ScopeId,
        key: str,
        storage_key: StorageKey,
        state_hash: StateHash,
        api_call: Callable[[], Awaitable[Any]],
        ttl_ms: float,
        force_refresh: bool,
        priority: Priority,
    ) -> Any:
        try:
            result = await self.governor.execute(
                CacheKey(f"dedup:{scope}:{key}:{state_hash}"),
                api_call,
                ExecuteOptions(cache_duration_ms=int(ttl_ms), priority=priority, force_refresh=force_refresh),
            )
            if _has_content(result):
                self._persist(storage_key, result, state_hash)
            return result
        finally:
            self._in_flight.pop(flight_key, None)

    def _read_valid(self, storage_key: StorageKey, state_hash: StateHash, ttl_ms: float) -> Optional[Any]:
        try:
            raw = self.store.get(storage_key)
        except StorageError as e:
            logger.warning(f"Could not read fingerprint cache {storage_key}: {e}")
            return None
        if not raw:
            return None
        try:
            entry = json.loads(raw)
            data = entry["data"]
            created_at = float(entry["createdAt"])
            stored_hash = entry["stateHash"]
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"Ignoring malformed fingerprint cache entry {storage_key}: {e}")
            return None

        if self.clock.now_ms() - created_at >= ttl_ms:
            logger.debug(f"Fingerprint cache entry {storage_key} expired")
            return None
        if stored_hash != state_hash:
            logger.debug(f"State changed for {storage_key}, stored result is stale")
            return None
        return data

    def _persist(self, storage_key: StorageKey, result: Any, state_hash: StateHash) -> None:
        try:
            payload = json.dumps({"data": result, "createdAt": self.clock.now_ms(), "stateHash": state_hash})
            self.store.set(storage_key, payload)
        except (StorageError, TypeError, ValueError) as e:
            logger.warning(f"Could not persist result for {storage_key}: {e}")


def _has_content(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) > 0
    return True


def _consume_outcome(task: "asyncio.Future[Any]") -> None:
    # Every waiter may have been cancelled; retrieve the error so asyncio does not report it as unhandled
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Shared call failed: {task.exception()!r}")
