import logging

import pytest

from quotaguard.infrastructure.monitoring.logger_setup import (
    DEFAULT_LOG_LEVEL, resolve_level, setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize("value, expected", [
    (None, DEFAULT_LOG_LEVEL),
    ("debug", logging.DEBUG),
    (" Info ", logging.INFO),
    (logging.ERROR, logging.ERROR),
])
def test_resolve_level(value, expected):
    assert resolve_level(value) == expected


def test_resolve_level_rejects_unknown_names():
    with pytest.raises(ValueError):
        resolve_level("loud")


def test_setup_logging_replaces_handlers(restore_root_logger):
    setup_logging("INFO")
    setup_logging("DEBUG")

    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 1
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_writes_file(restore_root_logger, tmp_path):
    log_file = tmp_path / "logs" / "quotaguard.log"

    setup_logging("INFO", log_file=log_file)
    logging.getLogger("quotaguard.test").info("hello file")
    for handler in restore_root_logger.handlers:
        handler.flush()

    assert "hello file" in log_file.read_text(encoding="utf-8")
