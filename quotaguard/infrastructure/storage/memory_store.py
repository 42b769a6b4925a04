"""In-memory key-value store.

Used when persistence is disabled and as a lightweight store in tests.
"""

from typing import Dict, Iterator, Optional

from quotaguard.domain.interfaces.storage import KeyValueStore
from quotaguard.domain.models.common import StorageKey


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed KeyValueStore. Contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: StorageKey) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: StorageKey, value: str) -> None:
        self._data[key] = value

    def remove(self, key: StorageKey) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[StorageKey]:
        return iter([StorageKey(k) for k in self._data])

    def __len__(self) -> int:
        return len(self._data)
