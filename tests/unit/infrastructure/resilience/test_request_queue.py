import asyncio

import pytest

from quotaguard.domain.models.common import CacheKey, Priority
from quotaguard.domain.models.limiter import QueuedRequest
from quotaguard.infrastructure.resilience.request_queue import RequestQueue


async def _noop():
    return None


@pytest.fixture
def make_request():
    loop = asyncio.new_event_loop()

    def _make(request_id: str, priority: Priority = Priority.NORMAL) -> QueuedRequest:
        return QueuedRequest(
            id=request_id,
            operation=_noop,
            future=loop.create_future(),
            cache_key=CacheKey(request_id),
            priority=priority,
        )

    yield _make
    loop.close()


def ids(queue: RequestQueue):
    return [request.id for request in queue]


def test_tiers_are_ordered_and_fifo_within_tier(make_request):
    queue = RequestQueue()
    queue.enqueue(make_request("n1"))
    queue.enqueue(make_request("l1", Priority.LOW))
    queue.enqueue(make_request("n2"))
    queue.enqueue(make_request("l2", Priority.LOW))
    queue.enqueue(make_request("n3"))

    assert ids(queue) == ["n1", "n2", "n3", "l1", "l2"]


def test_high_goes_to_front(make_request):
    queue = RequestQueue()
    queue.enqueue(make_request("n1"))
    queue.enqueue(make_request("h1", Priority.HIGH))

    assert ids(queue) == ["h1", "n1"]


def test_requeue_front_elevates_priority(make_request):
    queue = RequestQueue()
    queue.enqueue(make_request("n1"))
    retried = make_request("l1", Priority.LOW)

    queue.requeue_front(retried)

    assert ids(queue) == ["l1", "n1"]
    assert retried.priority is Priority.HIGH


def test_pop_peek_and_drain(make_request):
    queue = RequestQueue()
    assert queue.pop() is None
    assert queue.peek() is None

    queue.enqueue(make_request("a"))
    queue.enqueue(make_request("b"))

    assert queue.peek().id == "a"
    assert queue.pop().id == "a"
    assert len(queue) == 1
    assert [r.id for r in queue.drain()] == ["b"]
    assert not queue
