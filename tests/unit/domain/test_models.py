import pytest

from quotaguard.domain.models.common import ScopeId
from quotaguard.domain.models.errors import CooldownActiveError, RetriesExhaustedError
from quotaguard.domain.models.fingerprint import StateSnapshot, round_money
from quotaguard.domain.models.limiter import CacheEntry, LimiterStats, RateLimiterConfig


def test_fingerprint_is_deterministic_and_short():
    snapshot = StateSnapshot(ScopeId("alice"), 1234.0, 7, "tx-9", "avalanche")

    assert snapshot.fingerprint() == StateSnapshot(ScopeId("alice"), 1234.0, 7, "tx-9", "avalanche").fingerprint()
    assert len(snapshot.fingerprint()) == 16


def test_small_money_drift_keeps_fingerprint():
    assert StateSnapshot(balance=1210.0).fingerprint() == StateSnapshot(balance=1240.0).fingerprint()


@pytest.mark.parametrize("changed", [
    StateSnapshot(scope=ScopeId("bob"), balance=1200.0, transaction_count=3),
    StateSnapshot(balance=1300.0, transaction_count=3),
    StateSnapshot(balance=1200.0, transaction_count=4),
    StateSnapshot(balance=1200.0, transaction_count=3, latest_transaction="tx-1"),
    StateSnapshot(balance=1200.0, transaction_count=3, strategy_id="snowball"),
])
def test_result_affecting_changes_alter_fingerprint(changed):
    assert changed.fingerprint() != StateSnapshot(balance=1200.0, transaction_count=3).fingerprint()


def test_round_money_is_half_up():
    assert round_money(149) == 1
    assert round_money(150) == 2
    assert round_money(-50) == 0


def test_cache_entry_validation_and_expiry():
    entry = CacheEntry(data="x", created_at=100, expires_at=200)

    assert not entry.is_expired(200)
    assert entry.is_expired(201)
    assert CacheEntry.from_dict(entry.to_dict()) == entry
    with pytest.raises(ValueError):
        CacheEntry(data="x", created_at=200, expires_at=100)


def test_config_validation():
    with pytest.raises(ValueError):
        RateLimiterConfig(max_requests_per_minute=0)
    with pytest.raises(ValueError):
        RateLimiterConfig(max_retries=-1)


def test_usage_percent():
    stats = LimiterStats(5, 10, 0, 0, False)
    assert stats.usage_percent == 50.0


def test_error_messages():
    cooldown = CooldownActiveError(1500)
    exhausted = RetriesExhaustedError(RuntimeError("boom"), 4)

    assert cooldown.retry_after_seconds == 2
    assert "Retry after 2 seconds" in str(cooldown)
    assert "4 attempts" in str(exhausted)
    assert "boom" in str(exhausted)
