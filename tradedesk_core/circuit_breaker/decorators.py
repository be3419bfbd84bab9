"""
Circuit Breaker Decorator
=========================
Decorator for wrapping async functions with circuit breaker protection.
"""

from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

from .models import CircuitBreakerConfig
from .registry import CircuitBreakerRegistry

T = TypeVar("T")


def circuit_breaker(
    registry: CircuitBreakerRegistry,
    service_name: str,
    config: Optional[CircuitBreakerConfig] = None,
):
    """
    Decorator to wrap async functions with a registry-managed breaker.

    Example:
        registry = CircuitBreakerRegistry()

        @circuit_breaker(registry, "stock-finnhub")
        async def fetch_quote(symbol: str):
            return await finnhub.get_quote(symbol)
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        breaker = registry.get_or_create(service_name, config)

        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await breaker.execute(lambda: func(*args, **kwargs))

        wrapper.breaker = breaker
        return wrapper

    return decorator
