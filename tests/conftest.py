import asyncio
from typing import Dict, List, Optional

import pytest
from typer.testing import CliRunner

from quotaguard.domain.interfaces.clock import Clock
from quotaguard.domain.interfaces.storage import KeyValueStore
from quotaguard.domain.models.common import StorageKey
from quotaguard.domain.models.errors import StorageError
from quotaguard.domain.models.limiter import RateLimiterConfig
from quotaguard.infrastructure.cache.caching_service import CacheStore
from quotaguard.infrastructure.config.settings import clear_test_config
from quotaguard.infrastructure.resilience.governor import RequestGovernor
from quotaguard.infrastructure.storage.memory_store import InMemoryKeyValueStore

START_MS = 1_700_000_000_000.0


class MockClock(Clock):
    """Virtual clock: ``sleep`` advances time instantly and yields once to the loop."""

    def __init__(self, start_ms: float = START_MS):
        self._now = start_ms
        self.sleeps: List[float] = []

    def now_ms(self) -> float:
        return self._now

    def advance(self, delay_ms: float) -> None:
        self._now += delay_ms

    async def sleep(self, delay_ms: float) -> None:
        self.sleeps.append(delay_ms)
        if delay_ms > 0:
            self._now += delay_ms
        await asyncio.sleep(0)


class FailingStore(KeyValueStore):
    """Store whose writes always fail, reads optionally too."""

    def __init__(self, fail_reads: bool = False):
        self.fail_reads = fail_reads
        self.write_attempts = 0

    def get(self, key: StorageKey) -> Optional[str]:
        if self.fail_reads:
            raise StorageError("read failed")
        return None

    def set(self, key: StorageKey, value: str) -> None:
        self.write_attempts += 1
        raise StorageError("disk full")

    def remove(self, key: StorageKey) -> None:
        raise StorageError("disk full")

    def keys(self):
        raise StorageError("unreadable")


async def settle(rounds: int = 10) -> None:
    """Lets scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def cache(clock, store) -> CacheStore:
    return CacheStore(clock, store)


@pytest.fixture
def events() -> List:
    return []


@pytest.fixture
def make_governor(clock, cache, events):
    """Factory building a governor on the virtual clock; keyword args override config."""

    def _make(**config_overrides) -> RequestGovernor:
        config = RateLimiterConfig(**config_overrides)
        return RequestGovernor(clock, cache=cache, config=config, event_listener=events.append)

    return _make


@pytest.fixture
def governor(make_governor) -> RequestGovernor:
    return make_governor()


@pytest.fixture(autouse=True)
def reset_test_config():
    yield
    clear_test_config()


@pytest.fixture(autouse=True)
def no_provider_keys(monkeypatch):
    """Keep real API keys from the environment out of the tests."""
    for name in ("GROQ_API_KEY", "OPENAI_API_KEY", "QUOTAGUARD_GROQ_API_KEY", "QUOTAGUARD_OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def store_contents(store: InMemoryKeyValueStore) -> Dict[str, str]:
    return {key: store.get(key) for key in store.keys()}
