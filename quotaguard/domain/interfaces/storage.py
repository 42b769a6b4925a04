"""Interface for persistent key-value storage.

Defines the contract used for cache persistence and for the fingerprint
cache of derived results. Values are plain strings (serialized JSON).
"""

import abc
from typing import Iterator, Optional

from ..models.common import StorageKey


class KeyValueStore(abc.ABC):
    """Abstract Base Class for string key-value persistence."""

    @abc.abstractmethod
    def get(self, key: StorageKey) -> Optional[str]:
        """Retrieves the value stored under ``key``.

        Returns:
            The stored string, or None if absent.

        Raises:
            StorageError: If the backing store cannot be read.
        """
        pass

    @abc.abstractmethod
    def set(self, key: StorageKey, value: str) -> None:
        """Stores ``value`` under ``key``, replacing any previous value.

        Raises:
            StorageError: If the value could not be persisted.
        """
        pass

    @abc.abstractmethod
    def remove(self, key: StorageKey) -> None:
        """Removes ``key`` if present. Missing keys are ignored."""
        pass

    @abc.abstractmethod
    def keys(self) -> Iterator[StorageKey]:
        """Iterates over all stored keys."""
        pass
