"""
Circuit Breaker Registry
========================
Registry for managing circuit breaker instances by service name.
"""

import time
from typing import Any, Callable, Dict, Optional

import structlog

from tradedesk_core.metrics import record_circuit_state

from .breaker import CircuitBreaker
from .models import CircuitBreakerConfig

logger = structlog.get_logger(__name__)


class CircuitBreakerRegistry:
    """
    Holds one breaker per service name.

    The registry is constructed explicitly and handed to whoever needs it;
    every breaker it creates reports its transitions to the metrics module.

    Example:
        registry = CircuitBreakerRegistry()
        breaker = registry.get_or_create("stock-polygon")
    """

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.default_config = default_config
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_or_create(
        self,
        service_name: str,
        config: Optional[CircuitBreakerConfig] = None,
    ) -> CircuitBreaker:
        """
        Get or create a circuit breaker for a service.

        Args:
            service_name: Name of the downstream service
            config: Optional configuration (only used if creating new breaker)

        Returns:
            CircuitBreaker instance
        """
        breaker = self._breakers.get(service_name)
        if breaker is None:
            breaker = CircuitBreaker(
                name=service_name,
                config=config or self.default_config,
                clock=self._clock,
            )
            breaker.on_state_change(
                lambda state, _error: record_circuit_state(service_name, state.value)
            )
            record_circuit_state(service_name, breaker.state.value)
            self._breakers[service_name] = breaker
            logger.debug("circuit_registered", service=service_name)
        return breaker

    def get(self, service_name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(service_name)

    def reset(self, service_name: str) -> bool:
        """Reset a circuit breaker to closed state. Returns False if unknown."""
        breaker = self._breakers.get(service_name)
        if breaker is None:
            return False
        breaker.force_reset()
        logger.info("circuit_reset", service=service_name)
        return True

    def reset_all(self) -> None:
        """Reset all circuit breakers to closed state."""
        for name in list(self._breakers):
            self.reset(name)

    def get_all_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get metrics for all registered circuit breakers."""
        return {
            name: breaker.metrics
            for name, breaker in self._breakers.items()
        }

    def __contains__(self, service_name: str) -> bool:
        return service_name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
