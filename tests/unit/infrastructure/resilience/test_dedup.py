import asyncio
import gc
import json
from unittest.mock import AsyncMock

import pytest

from quotaguard.domain.models.common import StateHash
from quotaguard.domain.models.errors import RetriesExhaustedError
from quotaguard.infrastructure.identity.static_identity import StaticIdentityProvider
from quotaguard.infrastructure.resilience.dedup import DedupResolver
from tests.conftest import settle

HASH_A = StateHash("aaaaaaaaaaaaaaaa")
HASH_B = StateHash("bbbbbbbbbbbbbbbb")
TTL = 60_000


@pytest.fixture
def identity():
    return StaticIdentityProvider()


@pytest.fixture
def resolver(governor, store, identity):
    return DedupResolver(governor, store, identity)


@pytest.mark.asyncio
async def test_concurrent_identical_calls_share_one_invocation(resolver):
    api_call = AsyncMock(return_value="insight")

    results = await asyncio.gather(*[
        resolver.resolve_deduped("insights", HASH_A, api_call, TTL) for _ in range(5)
    ])

    assert results == ["insight"] * 5
    api_call.assert_awaited_once()
    assert resolver.in_flight_count == 0


@pytest.mark.asyncio
async def test_result_persisted_with_fingerprint(resolver, store, clock):
    await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value="insight"), TTL)

    entry = json.loads(store.get("anonymous:insights"))

    assert entry == {"data": "insight", "createdAt": clock.now_ms(), "stateHash": HASH_A}


@pytest.mark.asyncio
async def test_valid_persisted_entry_is_reused(resolver):
    await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value="first"), TTL)
    second = AsyncMock(return_value="second")

    assert await resolver.resolve_deduped("insights", HASH_A, second, TTL) == "first"
    second.assert_not_awaited()


@pytest.mark.asyncio
async def test_state_hash_change_forces_new_call(resolver):
    await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value="for A"), TTL)
    changed = AsyncMock(return_value="for B")

    assert await resolver.resolve_deduped("insights", HASH_B, changed, TTL) == "for B"
    changed.assert_awaited_once()


@pytest.mark.asyncio
async def test_expired_entry_forces_new_call(resolver, clock):
    await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value="old"), TTL)
    clock.advance(TTL)
    fresh = AsyncMock(return_value="new")

    assert await resolver.resolve_deduped("insights", HASH_A, fresh, TTL) == "new"
    fresh.assert_awaited_once()


@pytest.mark.asyncio
async def test_force_refresh_skips_both_caches(resolver):
    await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value="old"), TTL)
    fresh = AsyncMock(return_value="new")

    assert await resolver.resolve_deduped("insights", HASH_A, fresh, TTL, force_refresh=True) == "new"
    fresh.assert_awaited_once()


@pytest.mark.asyncio
async def test_entries_are_namespaced_by_identity(resolver, identity, store):
    identity.sign_in("alice")
    await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value="alice data"), TTL)
    identity.sign_in("bob")
    bob_call = AsyncMock(return_value="bob data")

    assert await resolver.resolve_deduped("insights", HASH_A, bob_call, TTL) == "bob data"
    bob_call.assert_awaited_once()
    assert store.get("alice:insights") is not None
    assert store.get("bob:insights") is not None


@pytest.mark.asyncio
async def test_empty_results_are_not_persisted(resolver, store):
    await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value=""), TTL)

    assert store.get("anonymous:insights") is None


@pytest.mark.asyncio
async def test_registry_cleared_after_failure(make_governor, store):
    resolver = DedupResolver(make_governor(max_retries=0), store)

    with pytest.raises(RetriesExhaustedError):
        await resolver.resolve_deduped("insights", HASH_A, AsyncMock(side_effect=RuntimeError("down")), TTL)

    assert resolver.in_flight_count == 0


@pytest.mark.asyncio
async def test_one_cancelled_waiter_does_not_cancel_shared_call(resolver):
    gate = asyncio.Event()

    async def slow():
        await gate.wait()
        return "shared"

    first = asyncio.ensure_future(resolver.resolve_deduped("insights", HASH_A, slow, TTL))
    second = asyncio.ensure_future(resolver.resolve_deduped("insights", HASH_A, slow, TTL))
    for _ in range(5):
        await asyncio.sleep(0)

    first.cancel()
    gate.set()

    assert await second == "shared"


@pytest.mark.asyncio
async def test_persistence_failure_is_not_fatal(governor, failing_store):
    resolver = DedupResolver(governor, failing_store)

    assert await resolver.resolve_deduped("insights", HASH_A, AsyncMock(return_value="ok"), TTL) == "ok"
    assert failing_store.write_attempts == 1


@pytest.mark.asyncio
async def test_malformed_persisted_entry_is_ignored(resolver, store):
    store.set("anonymous:insights", "not json")
    api_call = AsyncMock(return_value="fresh")

    assert await resolver.resolve_deduped("insights", HASH_A, api_call, TTL) == "fresh"


@pytest.mark.asyncio
async def test_failure_after_all_waiters_cancelled_is_not_reported_unhandled(make_governor, store):
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda _, context: reported.append(context))
    try:
        resolver = DedupResolver(make_governor(max_retries=0), store)
        gate = asyncio.Event()

        async def failing():
            await gate.wait()
            raise RuntimeError("down")

        waiter = asyncio.ensure_future(resolver.resolve_deduped("insights", HASH_A, failing, TTL))
        await settle()
        waiter.cancel()
        await settle()
        gate.set()
        await settle(30)
        gc.collect()

        assert resolver.in_flight_count == 0
        assert not [c for c in reported if "never retrieved" in c.get("message", "")]
    finally:
        loop.set_exception_handler(None)
