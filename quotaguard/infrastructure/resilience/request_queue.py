"""Three-tier priority queue of pending governor requests.

``high`` goes to the front, ``low`` to the back and ``normal`` right before
the first ``low`` entry, which keeps FIFO order inside each tier.
"""

import logging
from typing import Iterator, List, Optional

from quotaguard.domain.models.common import Priority
from quotaguard.domain.models.limiter import QueuedRequest

logger = logging.getLogger(__name__)


class RequestQueue:
    """Priority-ordered pending operations, owned by the governor."""

    def __init__(self) -> None:
        self._items: List[QueuedRequest] = []

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[QueuedRequest]:
        return iter(list(self._items))

    def enqueue(self, request: QueuedRequest) -> None:
        """Inserts a request according to its priority tier."""
        if request.priority is Priority.HIGH:
            # Newest high-priority request goes first; retries rely on this
            self._items.insert(0, request)
        elif request.priority is Priority.LOW:
            self._items.append(request)
        else:
            index = next(
                (i for i, queued in enumerate(self._items) if queued.priority is Priority.LOW),
                None,
            )
            if index is None:
                self._items.append(request)
            else:
                self._items.insert(index, request)
        logger.debug(f"Queued request {request.id} ({request.priority.value}). Queue length: {len(self._items)}")

    def requeue_front(self, request: QueuedRequest) -> None:
        """Puts a retried request back at the head with elevated priority."""
        request.priority = Priority.HIGH
        self._items.insert(0, request)

    def peek(self) -> Optional[QueuedRequest]:
        return self._items[0] if self._items else None

    def pop(self) -> Optional[QueuedRequest]:
        """Removes and returns the head, or None when empty."""
        if not self._items:
            return None
        return self._items.pop(0)

    def drain(self) -> List[QueuedRequest]:
        """Removes and returns every pending request."""
        items, self._items = self._items, []
        return items
