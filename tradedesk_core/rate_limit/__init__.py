"""
Rate Limiting Module for TradeDesk Core
=======================================
Sliding-window admission, TTL response cache and single-flight
deduplication for upstream calls.
"""

from .models import RateLimitConfig, RateLimitInfo, CacheEntry
from .sliding_window import SlidingWindow
from .config import PROVIDER_RATE_LIMITS, AI_RATE_LIMIT, get_rate_limit_config
from .limiter import RateLimiter

__all__ = [
    # Models
    "RateLimitConfig",
    "RateLimitInfo",
    "CacheEntry",
    # Window
    "SlidingWindow",
    # Configuration
    "PROVIDER_RATE_LIMITS",
    "AI_RATE_LIMIT",
    "get_rate_limit_config",
    # Limiter
    "RateLimiter",
]
