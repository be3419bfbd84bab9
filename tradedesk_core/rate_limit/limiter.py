"""
Request Limiter
===============
Rate limiting, response caching and in-flight deduplication in front of
a circuit breaker.
"""

import asyncio
import contextlib
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tradedesk_core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from tradedesk_core.exceptions import (
    NON_RETRYABLE_ERRORS,
    CircuitOpenError,
    RateLimitExceededError,
    ServiceUnavailableError,
    TradeDeskError,
    UpstreamCallError,
    UpstreamTimeoutError,
)
from tradedesk_core.metrics import record_cache_event, record_upstream_call

from .models import CacheEntry, RateLimitConfig
from .sliding_window import SlidingWindow

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ADMISSION_BUFFER = 0.1  # Seconds added after the oldest entry leaves the window
WINDOW_SECONDS = 60.0


class RateLimiter:
    """
    Single-flight request cache with sliding-window admission.

    For each key there is at most one outstanding upstream call. Callers
    arriving while it runs await the same task and get the same value or
    the same exception. Callers that stop waiting never cancel the shared
    call; it completes and populates the cache.

    Example:
        limiter = RateLimiter("stock-polygon", get_rate_limit_config("polygon"), registry=registry)
        quote = await limiter.execute_request("quote-AAPL", lambda: provider.get_quote("AAPL"))
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[RateLimitConfig] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        breaker: Optional[CircuitBreaker] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.service_name = service_name
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep

        if breaker is None:
            breaker_config = CircuitBreakerConfig(
                failure_threshold=self.config.failure_threshold,
                reset_timeout=self.config.reset_timeout,
            )
            if registry is not None:
                breaker = registry.get_or_create(service_name, breaker_config)
            else:
                breaker = CircuitBreaker(service_name, breaker_config, clock=clock)
        self.breaker = breaker

        self._window = SlidingWindow(self.config.burst_limit, WINDOW_SECONDS, clock=clock)
        self._admission_lock = asyncio.Lock()
        self._cache: Dict[str, CacheEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None
        self._closed = False

    async def execute_request(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
        force_refresh: bool = False,
    ) -> T:
        """
        Return a cached, coalesced or freshly fetched value for ``key``.

        Args:
            key: Request fingerprint, e.g. "quote-AAPL"
            request_fn: Zero-argument coroutine function performing the call
            force_refresh: Skip the cache and any in-flight call

        Raises:
            ServiceUnavailableError: The breaker is refusing calls
            TradeDeskError: The call failed after retries
        """
        now = self._clock()
        entry = self._cache.get(key)

        # Joining a live call starts no upstream work; only new calls face the breaker
        if (
            entry is not None
            and not force_refresh
            and entry.task is not None
            and not entry.task.done()
            and now - entry.timestamp < self.config.in_flight_window
        ):
            record_cache_event(self.service_name, "coalesced")
            logger.debug("request_coalesced", service=self.service_name, key=key)
            return await asyncio.shield(entry.task)

        if not self.breaker.is_available:
            self.breaker.record_rejection()
            record_upstream_call(self.service_name, "circuit_open", 0.0)
            raise ServiceUnavailableError(
                self.service_name,
                self.breaker.state.value,
                max(0.0, self.breaker.next_attempt_time - now),
            )

        if (
            entry is not None
            and not force_refresh
            and entry.has_data
            and now - entry.timestamp < self.config.cache_ttl
        ):
            record_cache_event(self.service_name, "hit")
            logger.debug("cache_hit", service=self.service_name, key=key)
            return entry.data

        record_cache_event(self.service_name, "miss")
        self._ensure_sweeper()

        # Registered before admission so concurrent callers join this task
        task = asyncio.create_task(self._run(key, request_fn))
        task.add_done_callback(self._on_task_done)
        self._cache[key] = CacheEntry(task=task, timestamp=now)

        return await asyncio.shield(task)

    async def _run(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> T:
        task = asyncio.current_task()
        try:
            await self._acquire_slot()
            result = await self._call_with_retry(request_fn)
        except asyncio.CancelledError:
            self._evict(key, task)
            raise
        except TradeDeskError:
            self._evict(key, task)
            raise
        except Exception as exc:
            self._evict(key, task)
            raise UpstreamCallError(
                str(exc) or type(exc).__name__,
                service=self.service_name,
            ) from exc

        entry = self._cache.get(key)
        if entry is not None and entry.task is task:
            entry.data = result
            entry.has_data = True
            entry.timestamp = self._clock()
            entry.task = None
        return result

    async def _acquire_slot(self) -> None:
        """Wait until the sliding window has room, then record the request."""
        async with self._admission_lock:
            while True:
                info = self._window.check()
                if info.allowed:
                    return

                wait = info.retry_after + ADMISSION_BUFFER
                max_wait = self.config.max_queue_wait
                if max_wait is not None and wait > max_wait:
                    raise RateLimitExceededError(
                        f"Admission would wait {wait:.1f}s (limit {max_wait:.1f}s)",
                        service=self.service_name,
                        retry_after=wait,
                    )

                logger.info(
                    "rate_limit_wait",
                    service=self.service_name,
                    wait_seconds=round(wait, 3),
                    burst_limit=self.config.burst_limit,
                )
                await self._sleep(wait)

    async def _call_with_retry(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.config.max_retries)),
            wait=wait_exponential(multiplier=self.config.retry_base_delay),
            retry=retry_if_not_exception_type(NON_RETRYABLE_ERRORS),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._attempt(request_fn)

    async def _attempt(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        start = time.perf_counter()
        status = "success"
        try:
            return await self.breaker.execute(request_fn)
        except CircuitOpenError:
            status = "circuit_open"
            raise
        except (UpstreamTimeoutError, asyncio.TimeoutError):
            status = "timeout"
            raise
        except Exception:
            status = "error"
            raise
        finally:
            record_upstream_call(self.service_name, status, time.perf_counter() - start)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "request_retry",
            service=self.service_name,
            attempt=retry_state.attempt_number,
            max_attempts=self.config.max_retries,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
        )

    def _evict(self, key: str, task: Optional[asyncio.Task]) -> None:
        entry = self._cache.get(key)
        if entry is not None and entry.task is task:
            del self._cache[key]
            record_cache_event(self.service_name, "evicted")

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("request_failed", service=self.service_name, error=str(exc))

    def sweep(self) -> int:
        """Drop entries older than the cache TTL. Returns the number removed."""
        now = self._clock()
        removed = 0
        for key, entry in list(self._cache.items()):
            age = now - entry.timestamp
            if entry.task is not None and not entry.task.done():
                if age < self.config.in_flight_window:
                    continue
            if age > self.config.cache_ttl:
                del self._cache[key]
                removed += 1
        if removed:
            logger.debug("cache_swept", service=self.service_name, removed=removed)
        return removed

    def _ensure_sweeper(self) -> None:
        if self._closed or self.config.sweep_interval is None:
            return
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval)
            self.sweep()

    def clear_cache(self) -> None:
        self._cache.clear()

    def reset_circuit_breaker(self) -> None:
        """Force the limiter's breaker back to CLOSED."""
        self.breaker.force_reset()
        logger.info("circuit_reset", service=self.service_name)

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        return self.breaker.metrics

    def get_stats(self) -> Dict[str, Any]:
        """Cache and window statistics."""
        in_flight = sum(
            1 for entry in self._cache.values()
            if entry.task is not None and not entry.task.done()
        )
        return {
            "service": self.service_name,
            "cache_size": len(self._cache),
            "in_flight": in_flight,
            "window_size": len(self._window),
            "burst_limit": self.config.burst_limit,
            "requests_per_minute": self.config.requests_per_minute,
            "circuit_state": self.breaker.state.value,
            "failure_count": self.breaker.failure_count,
            "is_circuit_open": not self.breaker.is_available,
        }

    async def aclose(self) -> None:
        """Stop the background sweep and forget cached values."""
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        self._cache.clear()
