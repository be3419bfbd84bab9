"""
Provider Rate Limits
====================
Per-provider limiter settings, keyed by provider type.
"""

from dataclasses import replace
from typing import Any, Dict

from .models import RateLimitConfig

PROVIDER_RATE_LIMITS: Dict[str, RateLimitConfig] = {
    # Free tier: 5 calls/min, so cache for a full minute
    "alpha-vantage": RateLimitConfig(requests_per_minute=5, burst_limit=5, cache_ttl=60.0),
    "finnhub": RateLimitConfig(requests_per_minute=60, burst_limit=30, cache_ttl=15.0),
    "polygon": RateLimitConfig(requests_per_minute=300, burst_limit=100, cache_ttl=5.0),
    "mock": RateLimitConfig(requests_per_minute=1000, burst_limit=100, cache_ttl=5.0),
}

# AI backends: one limiter per backend, short cache for identical prompts
AI_RATE_LIMIT = RateLimitConfig(
    requests_per_minute=60,
    burst_limit=20,
    cache_ttl=60.0,
    max_retries=2,
    failure_threshold=10,
    reset_timeout=30.0,
)


def get_rate_limit_config(provider_type: str, **overrides: Any) -> RateLimitConfig:
    """
    Look up the limiter settings for a provider type.

    Unknown types get the mock settings. Keyword overrides replace
    individual fields without touching the shared table.
    """
    base = PROVIDER_RATE_LIMITS.get(provider_type, PROVIDER_RATE_LIMITS["mock"])
    return replace(base, **overrides)
