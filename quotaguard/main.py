"""Main entry point for the quotaguard application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import sys
from typing import Any, Coroutine, Dict, List, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from quotaguard.core.command_handler import CommandHandler
from quotaguard.core.services.generation_service import GenerationService

# --- Domain Layer ---
from quotaguard.domain.interfaces.ai_model import TextGenerationModel
from quotaguard.domain.models.common import Priority
from quotaguard.domain.models.errors import StorageError

# --- Infrastructure Layer ---
from quotaguard.infrastructure.ai.groq.groq_client import GroqClient
from quotaguard.infrastructure.ai.openai.gpt_client import GptClient
from quotaguard.infrastructure.cache.cache_manager import CacheManager
from quotaguard.infrastructure.cache.caching_service import CacheStore
from quotaguard.infrastructure.cli.display import ConsoleDisplay
from quotaguard.infrastructure.clock.system_clock import SystemClock
from quotaguard.infrastructure.config.settings import (
    get_config, get_default_model, get_default_provider, get_groq_api_key,
    get_openai_api_key, get_quota_markers, get_store_directory,
    load_configuration, persistence_enabled, rate_limiter_config_from_settings,
)
from quotaguard.infrastructure.identity.static_identity import StaticIdentityProvider
from quotaguard.infrastructure.monitoring.logger_setup import setup_logging
from quotaguard.infrastructure.monitoring.stats_monitor import StatsMonitor
from quotaguard.infrastructure.resilience.dedup import DedupResolver
from quotaguard.infrastructure.resilience.error_classifier import ErrorClassifier
from quotaguard.infrastructure.resilience.governor import RequestGovernor
from quotaguard.infrastructure.storage.disk_store import DiskKeyValueStore
from quotaguard.infrastructure.storage.memory_store import InMemoryKeyValueStore

logger = logging.getLogger(__name__)

PROVIDER_FACTORIES = {
    "groq": (GroqClient, get_groq_api_key),
    "openai": (GptClient, get_openai_api_key),
}


# --- Dependency Injection Container (Manual) ---

def create_ai_model(classifier: ErrorClassifier) -> Optional[TextGenerationModel]:
    """Instantiates the configured provider, falling back to any provider with an API key."""
    preferred = get_default_provider()
    if preferred not in PROVIDER_FACTORIES:
        logger.warning(f"Unknown provider '{preferred}' configured, trying the others.")
    order = [preferred] + [name for name in PROVIDER_FACTORIES if name != preferred]

    for name in order:
        if name not in PROVIDER_FACTORIES:
            continue
        client_class, key_getter = PROVIDER_FACTORIES[name]
        api_key = key_getter()
        if not api_key:
            logger.debug(f"No API key for provider '{name}'.")
            continue
        if name != preferred:
            logger.warning(f"Default provider '{preferred}' not available, falling back to {name}.")
        return client_class(api_key=api_key, model=get_default_model(name), classifier=classifier)

    logger.warning("No AI provider API key found; generation commands are disabled.")
    return None


def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    # 1. Configuration and logging
    load_configuration()
    setup_logging(
        log_level=get_config('logging.level', 'WARNING'),
        log_format=get_config('logging.format'),
        log_file=get_config('logging.file'),
    )
    logger.info("Initializing application dependencies...")

    dependencies: Dict[str, Any] = {}
    dependencies['ui'] = ConsoleDisplay()
    dependencies['clock'] = SystemClock()

    # 2. Storage; a broken store directory degrades to memory-only
    store = None
    if persistence_enabled():
        try:
            store = DiskKeyValueStore(get_store_directory())
        except StorageError as e:
            logger.error(f"Persistent store unavailable, continuing in memory: {e}")
            dependencies['ui'].display_warning(f"Persistent cache unavailable ({e}); using memory only.")
    dependencies['store'] = store or InMemoryKeyValueStore()

    # 3. Governor and resilience services
    markers = get_quota_markers()
    dependencies['classifier'] = ErrorClassifier(markers) if markers else ErrorClassifier()
    dependencies['cache'] = CacheStore(dependencies['clock'], dependencies['store'])
    dependencies['governor'] = RequestGovernor(
        clock=dependencies['clock'],
        cache=dependencies['cache'],
        config=rate_limiter_config_from_settings(),
        classifier=dependencies['classifier'],
    )
    dependencies['cache_manager'] = CacheManager(dependencies['store'], dependencies['governor'])

    user = get_config('identity.user') or dependencies['cache_manager'].last_session_user()
    if user:
        dependencies['cache_manager'].handle_session_transition(str(user))
    dependencies['identity'] = StaticIdentityProvider(str(user) if user else None)
    dependencies['dedup'] = DedupResolver(
        dependencies['governor'], dependencies['store'], dependencies['identity']
    )
    dependencies['stats_monitor'] = StatsMonitor(dependencies['governor'])

    # 4. Provider client (optional: stats and cache commands work without one)
    dependencies['ai_model'] = create_ai_model(dependencies['classifier'])

    # 5. Core services and command handler
    dependencies['generation_service'] = GenerationService(
        dependencies['governor'], dependencies['dedup'], dependencies['ai_model']
    )
    dependencies['command_handler'] = CommandHandler(
        generation_service=dependencies['generation_service'],
        governor=dependencies['governor'],
        cache_manager=dependencies['cache_manager'],
        stats_monitor=dependencies['stats_monitor'],
        ui=dependencies['ui'],
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies


# Wired lazily so importing this module (e.g. in tests) has no side effects
_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


def get_handler() -> CommandHandler:
    return get_dependencies()['command_handler']


# --- Typer App Definition ---
app = typer.Typer(
    name="quotaguard",
    help=(
        "quotaguard: rate-limited, cached and quota-aware text generation. "
        "Rate limits and cooldowns are tracked per process; only cached results persist across runs."
    ),
    add_completion=False,
)


def run_async(coro: Coroutine[Any, Any, bool]) -> bool:
    """Runs an async command handler from a sync Typer command."""
    return asyncio.run(coro)


def finish(success: bool) -> None:
    if not success:
        raise typer.Exit(code=1)


# --- CLI Commands ---

ModelOption = Annotated[
    Optional[str],
    typer.Option("--model", "-m", help="Model to use. Uses the provider default if not set."),
]


@app.command()
def generate(
    prompt: Annotated[List[str], typer.Argument(help="The prompt text.")],
    priority: Annotated[Priority, typer.Option("--priority", "-p", help="Queue priority.")] = Priority.NORMAL,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Neither read nor write the response cache.")] = False,
    force_refresh: Annotated[bool, typer.Option("--force-refresh", help="Ignore cached results, then cache the new one.")] = False,
    model: ModelOption = None,
):
    """Generate text for a prompt through the governor.

    The per-minute ceiling and the cooldown apply within one invocation only;
    separate runs share the persisted response cache, not the rate window.
    """
    handler = get_handler()
    finish(run_async(handler.handle_generate(
        " ".join(prompt), priority=priority, use_cache=not no_cache, force_refresh=force_refresh, model=model
    )))


@app.command()
def contextual(
    key: Annotated[str, typer.Argument(help="Logical key of the result, e.g. 'insights'.")],
    prompt: Annotated[str, typer.Argument(help="The prompt text.")],
    balance: Annotated[float, typer.Option("--balance", help="Current balance.")] = 0.0,
    tx_count: Annotated[int, typer.Option("--tx-count", help="Transactions in the period.")] = 0,
    latest_tx: Annotated[Optional[str], typer.Option("--latest-tx", help="Id or timestamp of the newest transaction.")] = None,
    strategy: Annotated[Optional[str], typer.Option("--strategy", help="Selected strategy id.")] = None,
    ttl_minutes: Annotated[float, typer.Option("--ttl-minutes", help="How long the result stays reusable.")] = 60,
    force_refresh: Annotated[bool, typer.Option("--force-refresh", help="Recompute even if a valid result exists.")] = False,
):
    """Generate a result that is reused while the given state is unchanged."""
    handler = get_handler()
    finish(run_async(handler.handle_contextual(
        key, prompt,
        balance=balance,
        transaction_count=tx_count,
        latest_transaction=latest_tx,
        strategy_id=strategy,
        ttl_minutes=ttl_minutes,
        force_refresh=force_refresh,
    )))


@app.command()
def stats(
    watch: Annotated[bool, typer.Option("--watch", "-w", help="Keep printing snapshots.")] = False,
    interval: Annotated[float, typer.Option("--interval", help="Seconds between snapshots.")] = 1.0,
    count: Annotated[Optional[int], typer.Option("--count", "-n", help="Stop after this many snapshots.")] = None,
):
    """Show API usage statistics."""
    handler = get_handler()
    finish(run_async(handler.handle_stats(watch=watch, interval_seconds=interval, count=count)))


@app.command(name="clear-cache")
def clear_cache_command(
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="Only clear entries of this user.")] = None,
):
    """Clear cached responses and derived results."""
    finish(get_handler().handle_clear_cache(user))


@app.command(name="sweep-cache")
def sweep_cache_command():
    """Remove expired cache entries."""
    finish(get_handler().handle_sweep_cache())


@app.command(name="reset-cooldown")
def reset_cooldown_command():
    """Forcibly end an active cooldown."""
    finish(get_handler().handle_reset_cooldown())


@app.command(name="switch-user")
def switch_user_command(
    user: Annotated[str, typer.Argument(help="Identity that owns subsequent contextual results.")],
):
    """Record the session user, clearing the previous user's cached data."""
    finish(get_handler().handle_switch_user(user))


@app.command()
def logout():
    """Clear every cached entry and forget the session user."""
    finish(get_handler().handle_logout())


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    try:
        app()
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    cli_entry_point()
