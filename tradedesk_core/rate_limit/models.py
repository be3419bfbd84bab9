"""
Rate Limit Models
=================
Configuration and bookkeeping records for the request limiter.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class RateLimitConfig:
    """Per-limiter configuration."""
    requests_per_minute: int = 60
    burst_limit: int = 30
    cache_ttl: float = 15.0               # Seconds a resolved value is served from cache
    max_retries: int = 3                  # Attempts per fresh call, including the first
    retry_base_delay: float = 1.0         # Backoff is 2 ** (attempt - 1) * base
    in_flight_window: float = 30.0        # Grace window for joining an in-flight call
    sweep_interval: Optional[float] = 300.0  # None disables the background sweep
    max_queue_wait: Optional[float] = None   # Longest admission wait before giving up
    failure_threshold: int = 5
    reset_timeout: float = 60.0


@dataclass
class RateLimitInfo:
    """Sliding window admission decision."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: float  # Unix timestamp when the oldest entry leaves the window
    retry_after: Optional[float] = None  # Seconds until a slot frees up


@dataclass
class CacheEntry:
    """Single-flight record for one request key."""
    task: Optional["asyncio.Task[Any]"]
    timestamp: float
    data: Any = None
    has_data: bool = False
