"""Centralized logging configuration for the quotaguard application.

Sets up standard Python logging with a configurable level, format and an
optional rotating log file. Values normally come from the ``logging.*``
configuration keys.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_LEVEL = logging.WARNING
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = None  # e.g. Path.home() / ".quotaguard" / "quotaguard.log"
MAX_LOG_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

# SDK transport loggers are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "groq")


def resolve_level(level: Union[int, str, None]) -> int:
    """Turns a level name ("debug", "INFO") or number into a logging level."""
    if level is None:
        return DEFAULT_LOG_LEVEL
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logging(
    log_level: Union[int, str, None] = DEFAULT_LOG_LEVEL,
    log_format: Optional[str] = DEFAULT_LOG_FORMAT,
    log_file: Optional[Union[str, Path]] = DEFAULT_LOG_FILE,
) -> None:
    """Configures the root logger for the application.

    Args:
        log_level: Minimum logging level, as a number or a level name.
        log_format: Format string for log messages.
        log_file: Optional path to a file for logging output.
    """
    level = resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format or DEFAULT_LOG_FORMAT)

    # stderr keeps generated text on stdout pipeable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding='utf-8'
            )
        except OSError as e:
            logging.error(f"Failed to set up file logging to {path}: {e}")
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {path}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.info(f"Logging configured. Level={logging.getLevelName(level)}")
