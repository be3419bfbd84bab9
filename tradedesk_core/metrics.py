"""
Upstream Call Metrics
=====================
Prometheus metrics for breakers, limiters and upstream calls.

Tracks:
- Circuit breaker states
- Upstream call counts and latency by status
- Cache events (hit, coalesced, miss, evicted)

Usage:
    from tradedesk_core.metrics import get_metrics_text

    print(get_metrics_text())
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry so embedding applications keep their default one clean
TRADEDESK_REGISTRY = CollectorRegistry()

CIRCUIT_BREAKER_STATE = Gauge(
    name="tradedesk_circuit_breaker_state",
    documentation="Circuit breaker state (0=closed, 1=half-open, 2=open)",
    labelnames=["service"],
    registry=TRADEDESK_REGISTRY,
)

UPSTREAM_REQUEST_LATENCY = Histogram(
    name="tradedesk_upstream_request_duration_seconds",
    documentation="Time spent on upstream vendor and model calls",
    labelnames=["service", "status"],
    buckets=[
        0.005, 0.01, 0.025, 0.05, 0.1,
        0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0,
    ],
    registry=TRADEDESK_REGISTRY,
)

UPSTREAM_REQUEST_TOTAL = Counter(
    name="tradedesk_upstream_requests_total",
    documentation="Total number of upstream calls",
    labelnames=["service", "status"],
    registry=TRADEDESK_REGISTRY,
)

CACHE_EVENTS = Counter(
    name="tradedesk_cache_events_total",
    documentation="Request cache events",
    labelnames=["service", "event"],
    registry=TRADEDESK_REGISTRY,
)

_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def record_circuit_state(service: str, state: str) -> None:
    """
    Record circuit breaker state change.

    Args:
        service: Service name
        state: State (closed, half_open, open)
    """
    CIRCUIT_BREAKER_STATE.labels(service=service).set(_STATE_VALUES.get(state, -1))


def record_upstream_call(service: str, status: str, duration_seconds: float) -> None:
    """
    Record one upstream attempt.

    Args:
        service: Breaker name of the upstream (e.g. "stock-polygon")
        status: success, error, timeout or circuit_open
        duration_seconds: Attempt duration in seconds
    """
    UPSTREAM_REQUEST_LATENCY.labels(service=service, status=status).observe(duration_seconds)
    UPSTREAM_REQUEST_TOTAL.labels(service=service, status=status).inc()


def record_cache_event(service: str, event: str) -> None:
    """Record a cache hit, coalesced join, miss or eviction."""
    CACHE_EVENTS.labels(service=service, event=event).inc()


def get_metrics_text() -> str:
    """Get metrics in Prometheus text format."""
    return generate_latest(TRADEDESK_REGISTRY).decode("utf-8")


__all__ = [
    "CONTENT_TYPE_LATEST",
    "TRADEDESK_REGISTRY",
    "CIRCUIT_BREAKER_STATE",
    "UPSTREAM_REQUEST_LATENCY",
    "UPSTREAM_REQUEST_TOTAL",
    "CACHE_EVENTS",
    "record_circuit_state",
    "record_upstream_call",
    "record_cache_event",
    "get_metrics_text",
]
