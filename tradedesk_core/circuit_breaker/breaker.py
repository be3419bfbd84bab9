"""
Circuit Breaker Core
====================
Per-service failure-tracking state machine guarding calls to one upstream.
"""

import time
from dataclasses import asdict, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog

from tradedesk_core.exceptions import CircuitOpenError

from .models import (
    CircuitBreakerConfig,
    CircuitBreakerState,
    CircuitState,
    CircuitStats,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

StateListener = Callable[[CircuitState, Optional[BaseException]], None]


class CircuitBreaker:
    """
    Async-compatible circuit breaker.

    OPEN -> HALF_OPEN happens lazily on the next call once the reset timeout
    has elapsed; there is no background timer. While HALF_OPEN exactly one
    trial call is let through.

    Example:
        breaker = CircuitBreaker("stock-polygon")

        try:
            quote = await breaker.execute(lambda: provider.get_quote("AAPL"))
        except CircuitOpenError:
            return cached_quote
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitBreakerState()
        self._stats = CircuitStats(last_state_change_time=clock())
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state.state

    @property
    def failure_count(self) -> int:
        return self._state.failure_count

    @property
    def next_attempt_time(self) -> float:
        return self._state.next_attempt_time

    @property
    def stats(self) -> CircuitStats:
        """Snapshot of the cumulative counters."""
        return replace(self._stats)

    @property
    def is_available(self) -> bool:
        """True if a call made now would reach the operation."""
        if self._state.state == CircuitState.CLOSED:
            return True
        if self._state.state == CircuitState.OPEN:
            return self._clock() >= self._state.next_attempt_time
        return not self._state.trial_in_flight

    @property
    def metrics(self) -> Dict[str, Any]:
        """Get circuit breaker metrics."""
        return {
            "name": self.name,
            "state": self._state.state.value,
            "failure_count": self._state.failure_count,
            "last_failure_time": self._state.last_failure_time,
            "next_attempt_time": self._state.next_attempt_time,
            "is_available": self.is_available,
            "config": asdict(self.config),
            **asdict(self._stats),
        }

    def on_state_change(self, listener: StateListener) -> None:
        """Register a callback invoked with (new_state, error) on every transition."""
        self._listeners.append(listener)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection."""
        now = self._clock()
        self._stats.total_requests += 1

        if (
            self._state.state == CircuitState.OPEN
            and now >= self._state.next_attempt_time
        ):
            self._transition(CircuitState.HALF_OPEN)
            logger.info("circuit_half_open", service=self.name)

        if self._state.state == CircuitState.OPEN:
            self._stats.failed_requests += 1
            raise CircuitOpenError(
                self.name,
                self._state.state.value,
                max(0.0, self._state.next_attempt_time - now),
            )

        is_trial = False
        if self._state.state == CircuitState.HALF_OPEN:
            if self._state.trial_in_flight:
                self._stats.failed_requests += 1
                raise CircuitOpenError(self.name, self._state.state.value, 0.0)
            self._state.trial_in_flight = True
            is_trial = True

        try:
            result = await operation()
        except Exception as exc:
            self._on_failure(exc)
            raise
        finally:
            if is_trial:
                self._state.trial_in_flight = False

        self._on_success()
        return result

    def record_rejection(self) -> None:
        """Count a call turned away before reaching ``execute``."""
        self._stats.total_requests += 1
        self._stats.failed_requests += 1

    def force_open(self) -> None:
        """Trip the breaker manually."""
        self._trip(None)

    def force_reset(self) -> None:
        """Close the breaker manually."""
        self._reset()

    def _on_success(self) -> None:
        self._stats.successful_requests += 1

        if self._state.state == CircuitState.HALF_OPEN:
            self._reset()
            logger.info("circuit_closed", service=self.name)

    def _on_failure(self, exc: BaseException) -> None:
        self._stats.failed_requests += 1
        self._state.failure_count += 1
        self._state.last_failure_time = self._clock()

        logger.debug(
            "circuit_failure_recorded",
            service=self.name,
            failures=self._state.failure_count,
            error=str(exc),
        )

        if self._state.state == CircuitState.HALF_OPEN:
            self._trip(exc)
        elif (
            self._state.state == CircuitState.CLOSED
            and self._state.failure_count >= self.config.failure_threshold
        ):
            self._trip(exc)

    def _trip(self, error: Optional[BaseException]) -> None:
        now = self._clock()
        self._state.next_attempt_time = now + self.config.reset_timeout
        self._stats.circuit_open_count += 1
        logger.warning(
            "circuit_opened",
            service=self.name,
            failures=self._state.failure_count,
            reset_timeout=self.config.reset_timeout,
        )
        self._transition(CircuitState.OPEN, error)

    def _reset(self) -> None:
        self._state.failure_count = 0
        self._state.last_failure_time = 0
        self._state.next_attempt_time = 0
        self._state.trial_in_flight = False
        self._transition(CircuitState.CLOSED)

    def _transition(
        self,
        new_state: CircuitState,
        error: Optional[BaseException] = None,
    ) -> None:
        self._state.state = new_state
        self._stats.last_state_change_time = self._clock()

        for listener in list(self._listeners):
            try:
                listener(new_state, error)
            except Exception as exc:
                logger.error(
                    "circuit_listener_failed",
                    service=self.name,
                    error=str(exc),
                )
