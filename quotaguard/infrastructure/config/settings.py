"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML configuration file (``~/.quotaguard/config.yaml``),
``.env`` files and environment variables. Keys are dotted paths such as
``rate_limit.max_requests_per_minute``; nested YAML mappings are flattened
into that form.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from quotaguard.domain.models.limiter import RateLimiterConfig

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".quotaguard"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_STORE_DIR = DEFAULT_CONFIG_DIR / "store"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "QUOTAGUARD_"
DEFAULT_PROVIDER = "groq"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(mapping: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in mapping.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def load_configuration(
    config_file: Path = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Loads configuration from the YAML file and the .env file.

    Priority order (highest to lowest):
    1. Test overrides (set_config_for_testing)
    2. Environment variables
    3. .env file
    4. YAML configuration file
    5. Defaults passed to get_config

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. YAML file (lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
        else:
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False keeps real environment variables on top
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    # 3. Environment variables are read lazily in get_config
    _loaded = True
    logger.info("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def env_var_name(key: str) -> str:
    """Environment variable consulted for a dotted key, e.g. QUOTAGUARD_LOGGING_LEVEL."""
    return f"{ENV_PREFIX}{key.upper().replace('.', '_')}"


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by key.

    Args:
        key: Dotted configuration key.
        default: Value returned when the key is not set anywhere.

    Returns:
        The configuration value.
    """
    if key in _test_config:
        return _test_config[key]

    for env_key in (env_var_name(key), key.upper()):
        if env_key in os.environ:
            return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the running process.

    Args:
        key: Configuration key (e.g., 'logging.level').
        value: Value to set.
    """
    _config[key] = value
    os.environ[env_var_name(key)] = str(value)
    logger.debug(f"Config set: {key}={value}")


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def get_openai_api_key() -> Optional[str]:
    """Convenience function to get the OpenAI API key."""
    key = get_config('OPENAI_API_KEY') or get_config('openai.api_key')
    return str(key) if key is not None else None


def get_groq_api_key() -> Optional[str]:
    """Convenience function to get the Groq API key."""
    key = get_config('GROQ_API_KEY') or get_config('groq.api_key')
    return str(key) if key is not None else None


def get_default_provider() -> str:
    """Gets the default AI provider."""
    provider = get_config('ai.default_provider', DEFAULT_PROVIDER)
    return str(provider).lower() if provider else DEFAULT_PROVIDER


def get_default_model(provider: Optional[str] = None) -> Optional[str]:
    """Gets the configured default model for a provider, if any."""
    selected_provider = provider or get_default_provider()
    model = get_config(f'ai.{selected_provider}.default_model')
    return str(model) if model is not None else None


def get_store_directory() -> Path:
    """Directory of the persistent key-value store."""
    return Path(str(get_config('storage.directory', DEFAULT_STORE_DIR))).expanduser()


def persistence_enabled() -> bool:
    return _as_bool(get_config('storage.persist', True))


def get_quota_markers() -> Optional[list]:
    """Configured quota-error markers (``errors.quota_markers``), comma separated or a list."""
    markers = get_config('errors.quota_markers')
    if markers is None:
        return None
    if isinstance(markers, str):
        return [m.strip() for m in markers.split(',') if m.strip()]
    return [str(m) for m in markers]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def rate_limiter_config_from_settings() -> RateLimiterConfig:
    """Builds a RateLimiterConfig from the ``rate_limit.*`` keys.

    Unset keys keep the RateLimiterConfig defaults.

    Raises:
        ValueError: If a configured value is invalid.
    """
    defaults = RateLimiterConfig()
    values: Dict[str, Any] = {}
    for name in sorted(RateLimiterConfig.field_names()):
        value = get_config(f'rate_limit.{name}')
        if value is None:
            continue
        current = getattr(defaults, name)
        try:
            values[name] = _as_bool(value) if isinstance(current, bool) else int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for rate_limit.{name}: {value!r}") from e
    return RateLimiterConfig(**values)


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values for testing purposes.

    These values override any other configuration source.

    Args:
        config_dict: Dictionary of configuration values to set.
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
