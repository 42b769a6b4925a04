from unittest.mock import AsyncMock, MagicMock

import pytest

from quotaguard.core.command_handler import CommandHandler
from quotaguard.core.services.generation_service import GenerationService
from quotaguard.domain.interfaces.user_interface import UserInterface
from quotaguard.domain.models.common import ANONYMOUS_SCOPE, Priority
from quotaguard.domain.models.errors import (
    CooldownActiveError, ProviderUnavailableError, RetriesExhaustedError,
)
from quotaguard.domain.models.limiter import LimiterStats, SaveResult
from quotaguard.infrastructure.cache.cache_manager import CacheManager
from quotaguard.infrastructure.monitoring.stats_monitor import StatsMonitor
from quotaguard.infrastructure.resilience.governor import RequestGovernor


@pytest.fixture
def mock_generation_service():
    service = MagicMock(spec=GenerationService)
    service.generate = AsyncMock(return_value="generated")
    service.generate_contextual = AsyncMock(return_value="contextual result")
    service.dedup = MagicMock()
    service.dedup.current_scope.return_value = ANONYMOUS_SCOPE
    return service


@pytest.fixture
def mock_governor():
    governor = MagicMock(spec=RequestGovernor)
    governor.cache = MagicMock()
    governor.cache.last_save = SaveResult(ok=True)
    governor.get_stats.return_value = LimiterStats(1, 10, 2, 0, False)
    return governor


@pytest.fixture
def mock_cache_manager():
    manager = MagicMock(spec=CacheManager)
    manager.clear_user_cache.return_value = 3
    return manager


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)


@pytest.fixture
def command_handler(mock_generation_service, mock_governor, mock_cache_manager, mock_ui):
    return CommandHandler(
        generation_service=mock_generation_service,
        governor=mock_governor,
        cache_manager=mock_cache_manager,
        stats_monitor=MagicMock(spec=StatsMonitor),
        ui=mock_ui,
    )


@pytest.mark.asyncio
async def test_handle_generate(command_handler, mock_generation_service, mock_ui):
    assert await command_handler.handle_generate("hello", priority=Priority.HIGH, use_cache=False)

    mock_generation_service.generate.assert_awaited_once_with(
        "hello", model=None, priority=Priority.HIGH, use_cache=False, force_refresh=False
    )
    mock_ui.display_output.assert_called_once_with("generated")


@pytest.mark.asyncio
async def test_handle_generate_cooldown_shows_banner(command_handler, mock_generation_service, mock_ui):
    mock_generation_service.generate.side_effect = CooldownActiveError(42_000)

    assert not await command_handler.handle_generate("hello")

    mock_ui.display_cooldown_banner.assert_called_once_with(42)
    mock_ui.display_output.assert_not_called()


@pytest.mark.asyncio
async def test_handle_generate_exhausted(command_handler, mock_generation_service, mock_ui):
    mock_generation_service.generate.side_effect = RetriesExhaustedError(RuntimeError("down"), 4)

    assert not await command_handler.handle_generate("hello")

    mock_ui.display_error.assert_called_once_with("The API call failed after 4 attempts: down")


@pytest.mark.asyncio
async def test_handle_generate_without_provider(command_handler, mock_generation_service, mock_ui):
    mock_generation_service.generate.side_effect = ProviderUnavailableError("No provider")

    assert not await command_handler.handle_generate("hello")

    mock_ui.display_error.assert_called_once_with("No provider")


@pytest.mark.asyncio
async def test_handle_contextual_builds_snapshot(command_handler, mock_generation_service, mock_ui):
    assert await command_handler.handle_contextual(
        "insights", "summarize", balance=1234.0, transaction_count=5, strategy_id="avalanche", ttl_minutes=2
    )

    args = mock_generation_service.generate_contextual.await_args
    key, prompt, snapshot, ttl_ms = args.args
    assert (key, prompt, ttl_ms) == ("insights", "summarize", 120_000)
    assert snapshot.scope == ANONYMOUS_SCOPE
    assert snapshot.transaction_count == 5
    assert snapshot.strategy_id == "avalanche"
    mock_ui.display_output.assert_called_once_with("contextual result", title="insights")


@pytest.mark.asyncio
async def test_handle_stats_once(command_handler, mock_governor, mock_ui):
    assert await command_handler.handle_stats()

    mock_ui.display_stats.assert_called_once_with(mock_governor.get_stats.return_value)


@pytest.mark.asyncio
async def test_handle_stats_rejects_bad_interval(command_handler, mock_ui):
    assert not await command_handler.handle_stats(watch=True, interval_seconds=0)
    mock_ui.display_error.assert_called_once()


def test_handle_clear_cache(command_handler, mock_cache_manager, mock_ui):
    assert command_handler.handle_clear_cache("user_A")

    mock_cache_manager.clear_user_cache.assert_called_once_with("user_A")
    mock_ui.display_info.assert_called_once_with("Cache cleared for user 'user_A'. Stored entries removed: 3.")


def test_handle_clear_cache_warns_on_persistence_failure(command_handler, mock_governor, mock_ui):
    mock_governor.cache.last_save = SaveResult(ok=False, error=OSError("disk full"))

    command_handler.handle_clear_cache()

    mock_ui.display_warning.assert_called_once()


def test_handle_sweep_cache(command_handler, mock_governor, mock_ui):
    mock_governor.sweep_cache.return_value = 2

    assert command_handler.handle_sweep_cache()
    mock_ui.display_info.assert_called_once_with("Removed 2 expired cache entries.")


def test_handle_reset_cooldown(command_handler, mock_governor, mock_ui):
    mock_governor.get_stats.return_value = LimiterStats(10, 10, 0, 0, True, 5000)

    command_handler.handle_reset_cooldown()

    mock_governor.reset_cooldown.assert_called_once()
    mock_ui.display_warning.assert_called_once()


def test_handle_switch_user(command_handler, mock_cache_manager, mock_ui):
    mock_cache_manager.handle_session_transition.return_value = True

    assert command_handler.handle_switch_user("bob")
    assert not command_handler.handle_switch_user("  ")

    mock_cache_manager.handle_session_transition.assert_called_once_with("bob")


def test_handle_logout(command_handler, mock_cache_manager):
    mock_cache_manager.handle_full_logout.return_value = 4

    assert command_handler.handle_logout()
    mock_cache_manager.handle_full_logout.assert_called_once()
