"""
Circuit Breaker Models
======================
Data models and enums for the circuit breaker pattern.
"""

import time
from dataclasses import dataclass, field
from enum import Enum


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # One trial call allowed


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker."""
    failure_threshold: int = 5        # Failures before opening
    reset_timeout: float = 60.0       # Seconds to stay open before half-open
    monitoring_period: float = 300.0  # Reported only


@dataclass
class CircuitBreakerState:
    """Runtime state of a circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0
    next_attempt_time: float = 0
    trial_in_flight: bool = False


@dataclass
class CircuitStats:
    """Cumulative counters, never decremented."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    circuit_open_count: int = 0
    last_state_change_time: float = field(default_factory=time.time)
