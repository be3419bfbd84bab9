"""
TradeDesk Core - Circuit Breaker
================================
Async circuit breaker for upstream resilience.

States:

1. CLOSED: Normal operation, requests flow through
2. OPEN: Upstream is failing, requests are immediately rejected
3. HALF-OPEN: One trial request checks whether the upstream recovered

Usage:
    from tradedesk_core.circuit_breaker import CircuitBreakerRegistry, circuit_breaker

    registry = CircuitBreakerRegistry()

    @circuit_breaker(registry, "stock-polygon")
    async def fetch_snapshot(symbol: str):
        return await client.get(f"/v2/snapshot/locale/us/markets/stocks/tickers/{symbol}")
"""

from .models import (
    CircuitState,
    CircuitBreakerConfig,
    CircuitBreakerState,
    CircuitStats,
)

from .breaker import CircuitBreaker, StateListener

from .registry import CircuitBreakerRegistry

from .decorators import circuit_breaker

__all__ = [
    # Models
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CircuitStats",
    # Breaker
    "CircuitBreaker",
    "StateListener",
    # Registry
    "CircuitBreakerRegistry",
    # Decorator
    "circuit_breaker",
]
