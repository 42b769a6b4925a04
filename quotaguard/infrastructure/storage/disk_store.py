"""Disk-backed key-value store built on ``diskcache``.

Survives process restarts, which is what lets the governor cache and the
fingerprint cache outlive a single CLI invocation.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Iterator, Optional, Union

import diskcache as dc

from quotaguard.domain.interfaces.storage import KeyValueStore
from quotaguard.domain.models.common import StorageKey
from quotaguard.domain.models.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_STORE_DIR = Path.home() / ".quotaguard" / "store"

# Errors diskcache surfaces for locked, full or unreadable databases
_BACKEND_ERRORS = (dc.Timeout, sqlite3.Error, OSError)


class DiskKeyValueStore(KeyValueStore):
    """KeyValueStore persisting string values in a diskcache directory."""

    def __init__(self, directory: Union[str, Path] = DEFAULT_STORE_DIR, timeout: float = 1.0):
        """Initializes the disk store.

        Args:
            directory: Directory holding the diskcache database.
            timeout: SQLite lock timeout in seconds.
        """
        try:
            self._cache = dc.Cache(str(directory), timeout=timeout)
        except _BACKEND_ERRORS as e:
            logger.error(f"Failed to open disk store at {directory}: {e}", exc_info=True)
            raise StorageError(f"Cannot open disk store at {directory}: {e}") from e
        logger.info(f"Initialized disk store at: {self._cache.directory}")

    @property
    def directory(self) -> str:
        return self._cache.directory

    def get(self, key: StorageKey) -> Optional[str]:
        try:
            return self._cache.get(key, default=None)
        except _BACKEND_ERRORS as e:
            raise StorageError(f"Failed to read key '{key}': {e}") from e

    def set(self, key: StorageKey, value: str) -> None:
        try:
            self._cache.set(key, value)
        except _BACKEND_ERRORS as e:
            raise StorageError(f"Failed to write key '{key}': {e}") from e
        logger.debug(f"Disk store PUT key: {key}")

    def remove(self, key: StorageKey) -> None:
        try:
            self._cache.delete(key)
        except _BACKEND_ERRORS as e:
            raise StorageError(f"Failed to remove key '{key}': {e}") from e

    def keys(self) -> Iterator[StorageKey]:
        try:
            # Materialize so callers may remove while iterating
            return iter([StorageKey(k) for k in self._cache.iterkeys()])
        except _BACKEND_ERRORS as e:
            raise StorageError(f"Failed to list keys: {e}") from e

    def close(self) -> None:
        self._cache.close()
