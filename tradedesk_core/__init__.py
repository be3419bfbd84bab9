"""
TradeDesk Core
==============
Resilient external-call orchestration for a trading dashboard: circuit
breakers, rate-limited single-flight request caching, interchangeable
quote providers and a policy-driven AI model router.

Usage:
    from tradedesk_core import TradeDeskClient

    async with TradeDeskClient() as client:
        quote = await client.get_quote("AAPL")
"""

__version__ = "1.0.0"

# =============================================================================
# Errors
# =============================================================================
from tradedesk_core.exceptions import (
    TradeDeskError,
    CircuitOpenError,
    ServiceUnavailableError,
    RateLimitExceededError,
    UpstreamCallError,
    UpstreamTimeoutError,
    CapabilityUnsupportedError,
    DuplicateRequestError,
    ValidationError,
)

# =============================================================================
# Circuit Breaker
# =============================================================================
from tradedesk_core.circuit_breaker import (
    CircuitState,
    CircuitBreakerConfig,
    CircuitBreaker,
    CircuitBreakerRegistry,
    circuit_breaker,
)

# =============================================================================
# Rate Limiting
# =============================================================================
from tradedesk_core.rate_limit import (
    RateLimitConfig,
    RateLimiter,
    PROVIDER_RATE_LIMITS,
    get_rate_limit_config,
)

# =============================================================================
# Providers
# =============================================================================
from tradedesk_core.providers import (
    Capability,
    Quote,
    StockProvider,
    MockProvider,
    AlphaVantageProvider,
    FinnhubProvider,
    PolygonProvider,
    create_provider,
)

# =============================================================================
# Services
# =============================================================================
from tradedesk_core.stock import StockService, StockServiceManager
from tradedesk_core.ai import (
    ModelBackend,
    AnalysisCategory,
    ModelPreferences,
    AnalysisResult,
    ModelRouter,
)

# =============================================================================
# Configuration & Client
# =============================================================================
from tradedesk_core.config import StockServiceConfig, AIConfig, TradeDeskConfig
from tradedesk_core.log_setup import setup_logging
from tradedesk_core.metrics import get_metrics_text
from tradedesk_core.client import TradeDeskClient

__all__ = [
    "__version__",
    # Errors
    "TradeDeskError",
    "CircuitOpenError",
    "ServiceUnavailableError",
    "RateLimitExceededError",
    "UpstreamCallError",
    "UpstreamTimeoutError",
    "CapabilityUnsupportedError",
    "DuplicateRequestError",
    "ValidationError",
    # Circuit Breaker
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "circuit_breaker",
    # Rate Limiting
    "RateLimitConfig",
    "RateLimiter",
    "PROVIDER_RATE_LIMITS",
    "get_rate_limit_config",
    # Providers
    "Capability",
    "Quote",
    "StockProvider",
    "MockProvider",
    "AlphaVantageProvider",
    "FinnhubProvider",
    "PolygonProvider",
    "create_provider",
    # Services
    "StockService",
    "StockServiceManager",
    "ModelBackend",
    "AnalysisCategory",
    "ModelPreferences",
    "AnalysisResult",
    "ModelRouter",
    # Configuration & Client
    "StockServiceConfig",
    "AIConfig",
    "TradeDeskConfig",
    "setup_logging",
    "get_metrics_text",
    "TradeDeskClient",
]
