"""Service for executing governed API calls.

Combines the response cache, the priority queue, the sliding rate window
and the cooldown breaker behind a single ``execute`` entry point. Failed
calls are retried with exponential backoff; repeated quota violations arm a
cooldown during which new arrivals fail fast or are served stale cache data.
"""

import asyncio
import dataclasses
import itertools
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

from quotaguard.domain.events.api_events import (
    ApiCallSucceeded, CacheHit, CooldownArmed, DomainEvent,
    RequestDeferred, RequestQueued, RequestRejected, RetryScheduled,
)
from quotaguard.domain.interfaces.clock import Clock
from quotaguard.domain.models.common import CacheKey, ErrorKind
from quotaguard.domain.models.errors import (
    ApiCallError, CooldownActiveError, GovernorClosedError, RetriesExhaustedError,
)
from quotaguard.domain.models.limiter import (
    ExecuteOptions, LimiterStats, QueuedRequest, RateLimiterConfig, SaveResult,
)
from quotaguard.infrastructure.cache.caching_service import CacheStore
from quotaguard.infrastructure.resilience.cooldown import CooldownBreaker
from quotaguard.infrastructure.resilience.error_classifier import ErrorClassifier
from quotaguard.infrastructure.resilience.rate_window import RateWindow
from quotaguard.infrastructure.resilience.request_queue import RequestQueue

logger = logging.getLogger(__name__)

EventListener = Callable[[DomainEvent], None]

CLOSED_MESSAGE = "Governor was shut down before the request completed."


class RequestGovernor:
    """Handles API call admission with caching, rate limiting, retries and cooldown."""

    def __init__(
        self,
        clock: Clock,
        cache: Optional[CacheStore] = None,
        config: Optional[RateLimiterConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the RequestGovernor.

        Args:
            clock: Clock used for timestamps and every wait.
            cache: Response cache. A memory-only CacheStore is created if None.
            config: Limits and durations. Defaults to RateLimiterConfig().
            classifier: Classifier for errors that are not ApiCallError.
            event_listener: Optional callback receiving domain events.
        """
        self.clock = clock
        self.config = config or RateLimiterConfig()
        self.cache = cache if cache is not None else CacheStore(clock)
        self.classifier = classifier or ErrorClassifier()
        self.event_listener = event_listener

        self.queue = RequestQueue()
        self.window = RateWindow(
            window_ms=self.config.window_ms,
            min_spacing_ms=self.config.min_spacing_ms,
            wait_margin_ms=self.config.wait_margin_ms,
        )
        self.cooldown = CooldownBreaker(
            base_cooldown_ms=self.config.base_cooldown_ms,
            max_cooldown_ms=self.config.max_cooldown_ms,
        )

        self._is_processing = False
        self._drain_task: Optional["asyncio.Future[None]"] = None
        self._active_request: Optional[QueuedRequest] = None
        self._closed = False
        self._ids = itertools.count(1)

        logger.info(
            f"RequestGovernor initialized: max_requests_per_minute={self.config.max_requests_per_minute}, "
            f"max_retries={self.config.max_retries}, cache_enabled={self.config.enable_cache}"
        )

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "RequestGovernor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # --- Entry point ---

    async def execute(
        self,
        cache_key: CacheKey,
        operation: Callable[[], Awaitable[Any]],
        options: Optional[ExecuteOptions] = None,
    ) -> Any:
        """Executes ``operation`` under the governor's admission control.

        Args:
            cache_key: Key under which the result is cached.
            operation: Zero-argument coroutine function performing the API call.
            options: Per-call options (cache duration, priority, cache bypass).

        Returns:
            The operation result, possibly served from the cache.

        Raises:
            CooldownActiveError: If the cooldown is active and no cached data exists.
            RetriesExhaustedError: If the operation kept failing past max_retries.
            GovernorClosedError: If the governor was shut down.
        """
        if self._closed:
            raise GovernorClosedError("Governor is shut down.")

        options = options or ExecuteOptions()
        use_cache = self.config.enable_cache and not options.skip_cache
        now = self.clock.now_ms()

        # 1. Cooldown: prefer stale data over failure, never queue
        if self.cooldown.is_active(now):
            if use_cache:
                stale = self.cache.get(cache_key, allow_expired=True)
                if stale is not None:
                    logger.info(f"Cooldown active, serving cached data for key: {cache_key[:50]}")
                    self._dispatch_event(CacheHit(cache_key=cache_key, stale=True))
                    return stale
            error = CooldownActiveError(self.cooldown.remaining_ms(now))
            logger.warning(f"Rejecting request during cooldown: {error}")
            self._dispatch_event(RequestRejected(
                cache_key=cache_key, error_type=type(error).__name__, error_message=str(error)
            ))
            raise error

        # 2. Fresh cache hit
        if use_cache and not options.force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache HIT for key: {cache_key[:50]}")
                self._dispatch_event(CacheHit(cache_key=cache_key))
                return cached

        # 3. Queue and wait for the drain loop to settle our future
        cache_duration = options.cache_duration_ms
        if cache_duration is None:
            cache_duration = self.config.base_cache_duration_ms
        future = asyncio.get_running_loop().create_future()
        request = QueuedRequest(
            id=f"req-{next(self._ids)}",
            operation=operation,
            future=future,
            cache_key=cache_key,
            priority=options.priority,
            cache_duration_ms=cache_duration,
            store_result=use_cache,
        )
        self.queue.enqueue(request)
        self._dispatch_event(RequestQueued(
            request_id=request.id, priority=request.priority.value, queue_length=len(self.queue)
        ))
        self._ensure_processing()
        return await future

    # --- Processing loop ---

    def _ensure_processing(self) -> None:
        if self._is_processing:
            return
        # Set before the task is scheduled so concurrent callers never start a second drain
        self._is_processing = True
        self._drain_task = asyncio.ensure_future(self._process_queue())

    async def _process_queue(self) -> None:
        try:
            while self.queue:
                wait_ms = self.window.wait_time(self.clock.now_ms(), self.config.max_requests_per_minute)
                if wait_ms > 0:
                    head = self.queue.peek()
                    logger.debug(f"Rate window full or spacing required, waiting {wait_ms:.0f}ms")
                    self._dispatch_event(RequestDeferred(request_id=head.id, wait_ms=wait_ms))
                    await self.clock.sleep(wait_ms)
                    # Re-evaluate: the head may have changed while sleeping
                    continue

                request = self.queue.pop()
                if request is None:
                    break
                if request.future.done():
                    # Caller went away (cancelled) while queued
                    logger.debug(f"Skipping settled request {request.id}")
                    continue
                await self._run(request)
        finally:
            interrupted = self._active_request
            self._is_processing = False
            self._drain_task = None
            self._active_request = None
            # Only reached with an active request when the drain itself was stopped
            if interrupted is not None and not interrupted.future.done():
                interrupted.future.set_exception(GovernorClosedError(CLOSED_MESSAGE))

    async def _run(self, request: QueuedRequest) -> None:
        started_at = self.clock.now_ms()
        # Counted at dispatch, so failed calls also consume budget
        self.window.record(started_at)
        # Stays active through the backoff sleep; if the drain is cancelled
        # meanwhile, its finally block fails the caller
        self._active_request = request
        result, error = await self._invoke(request)
        if error is not None:
            await self._handle_error(request, error)
            self._active_request = None
            return
        self._active_request = None

        latency_ms = self.clock.now_ms() - started_at
        self.cooldown.record_success()
        if request.store_result:
            self.cache.set(request.cache_key, result, request.cache_duration_ms)
        if not request.future.done():
            request.future.set_result(result)
        logger.debug(f"Request {request.id} succeeded on attempt {request.retry_count + 1}")
        self._dispatch_event(ApiCallSucceeded(
            request_id=request.id, latency_ms=latency_ms, attempt_number=request.retry_count + 1
        ))

    async def _invoke(self, request: QueuedRequest) -> Tuple[Any, Optional[BaseException]]:
        """Runs the operation in its own task and returns ``(result, error)``.

        A separate task tells the operation cancelling itself apart from the
        drain loop being cancelled; the former counts as a failed attempt.
        """
        operation_task = asyncio.ensure_future(request.operation())
        try:
            await asyncio.wait([operation_task])
        except asyncio.CancelledError:
            operation_task.cancel()
            raise
        if operation_task.cancelled():
            logger.warning(f"Operation of request {request.id} was cancelled")
            return None, ApiCallError("API call was cancelled before completing.", kind=ErrorKind.TRANSIENT)
        error = operation_task.exception()
        if error is not None:
            return None, error
        return operation_task.result(), None

    async def _handle_error(self, request: QueuedRequest, error: BaseException) -> None:
        kind = self.classifier.classify(error)
        attempt = request.retry_count + 1

        if kind is ErrorKind.QUOTA_EXHAUSTED:
            duration = self.cooldown.record_quota_error(self.clock.now_ms())
            self._dispatch_event(CooldownArmed(
                duration_ms=duration, consecutive_errors=self.cooldown.consecutive_errors
            ))

        if request.retry_count < self.config.max_retries:
            delay_ms = min(
                self.config.base_backoff_ms * (2 ** request.retry_count),
                self.config.max_backoff_ms,
            )
            logger.warning(
                f"{kind.value} error on request {request.id} attempt {attempt}/"
                f"{self.config.max_retries + 1}: {type(error).__name__}. Waiting {delay_ms / 1000:.1f}s..."
            )
            self._dispatch_event(RetryScheduled(
                request_id=request.id, attempt_number=attempt, delay_ms=delay_ms, error_kind=kind.value
            ))
            await self.clock.sleep(delay_ms)
            request.retry_count += 1
            self.queue.requeue_front(request)
            return

        logger.error(f"Max retries ({self.config.max_retries}) reached for request {request.id}. Last error: {error}")
        self._dispatch_event(RequestRejected(
            cache_key=request.cache_key,
            error_type=type(error).__name__,
            error_message=str(error),
            request_id=request.id,
        ))
        if not request.future.done():
            request.future.set_exception(RetriesExhaustedError(error, attempt))

    def _dispatch_event(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        if self.event_listener is None:
            return
        try:
            self.event_listener(event)
        except Exception as e:
            logger.error(f"Event listener failed for {type(event).__name__}: {e}", exc_info=True)

    # --- Management ---

    def get_stats(self) -> LimiterStats:
        """Returns a snapshot of the current admission state."""
        now = self.clock.now_ms()
        in_cooldown = self.cooldown.is_active(now)
        return LimiterStats(
            requests_in_last_minute=self.window.count(now),
            max_requests_per_minute=self.config.max_requests_per_minute,
            cache_size=len(self.cache),
            queue_length=len(self.queue),
            is_in_cooldown=in_cooldown,
            cooldown_remaining_ms=self.cooldown.remaining_ms(now) if in_cooldown else 0.0,
        )

    def clear_cache(self) -> SaveResult:
        return self.cache.clear()

    def sweep_cache(self) -> int:
        return self.cache.sweep_expired()

    def reset_cooldown(self) -> None:
        """Forcibly closes the cooldown circuit. Use with care."""
        self.cooldown.reset()

    def update_config(self, **changes: Any) -> RateLimiterConfig:
        """Applies a partial configuration update.

        Raises:
            ValueError: For unknown keys or invalid values.
        """
        unknown = set(changes) - RateLimiterConfig.field_names()
        if unknown:
            raise ValueError(f"Unknown rate limiter settings: {', '.join(sorted(unknown))}")
        self.config = dataclasses.replace(self.config, **changes)
        self.window.window_ms = self.config.window_ms
        self.window.min_spacing_ms = self.config.min_spacing_ms
        self.window.wait_margin_ms = self.config.wait_margin_ms
        self.cooldown.base_cooldown_ms = self.config.base_cooldown_ms
        self.cooldown.max_cooldown_ms = self.config.max_cooldown_ms
        logger.info(f"Rate limiter config updated: {changes}")
        return self.config

    async def shutdown(self) -> None:
        """Stops the drain loop and fails every pending caller with GovernorClosedError."""
        if self._closed:
            return
        self._closed = True
        pending = self.queue.drain()
        if self._active_request is not None:
            pending.append(self._active_request)

        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Drain loop cancelled.")

        for request in pending:
            if not request.future.done():
                request.future.set_exception(GovernorClosedError(CLOSED_MESSAGE))
        logger.info(f"RequestGovernor shut down. Failed {len(pending)} pending request(s).")
