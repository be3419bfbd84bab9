"""
TradeDesk Exceptions
====================
Error taxonomy shared by the breaker, limiter, providers and model router.
"""

from typing import Any, Optional


class TradeDeskError(Exception):
    """Base exception for all orchestration-layer errors."""

    def __init__(self, message: str, service: str = "unknown", details: Any = None):
        self.message = message
        self.service = service
        self.details = details
        super().__init__(f"[{service}] {message}")


class CircuitOpenError(TradeDeskError):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, service_name: str, state: str, retry_after: float):
        self.service_name = service_name
        self.state = state
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker is {state}. Retry after {retry_after:.1f}s",
            service=service_name,
        )


class ServiceUnavailableError(CircuitOpenError):
    """Raised by a rate limiter that refuses to queue work for an unhealthy service."""
    pass


class RateLimitExceededError(TradeDeskError):
    """Raised when admission would wait too long or a vendor answers 429."""

    def __init__(
        self,
        message: str,
        service: str = "unknown",
        retry_after: Optional[float] = None,
        details: Any = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, service=service, details=details)


class UpstreamCallError(TradeDeskError):
    """Network, HTTP or vendor error from an upstream dependency."""

    def __init__(
        self,
        message: str,
        service: str = "unknown",
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        details: Any = None,
    ):
        self.status_code = status_code
        self.provider = provider
        super().__init__(message, service=service, details=details)


class UpstreamTimeoutError(UpstreamCallError):
    """Raised specifically on upstream timeouts."""
    pass


class CapabilityUnsupportedError(TradeDeskError):
    """Raised when the active provider does not offer the requested operation."""

    def __init__(self, capability: str, provider: str):
        self.capability = capability
        self.provider = provider
        super().__init__(
            f"Provider '{provider}' does not support '{capability}'",
            service=provider,
        )


class DuplicateRequestError(TradeDeskError):
    """Raised when an identical batch request is already in flight."""

    def __init__(self, key: str, service: str = "unknown"):
        self.key = key
        super().__init__(f"Duplicate request already in flight: {key}", service=service)


class ValidationError(TradeDeskError):
    """Malformed input or an unusable upstream response."""

    def __init__(self, message: str, field: Optional[str] = None, service: str = "unknown"):
        self.field = field
        super().__init__(message, service=service)


# Never retried locally by the limiter
NON_RETRYABLE_ERRORS = (
    CircuitOpenError,
    DuplicateRequestError,
    CapabilityUnsupportedError,
)
