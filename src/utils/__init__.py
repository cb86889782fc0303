"""Resilience helpers shared by the quote service, gate and health monitor."""

from src.utils.resilience import (
    BreakerState,
    CircuitBreaker,
    CircuitBreakerError,
    backoff_delay,
    with_exponential_backoff,
    with_timeout,
)

__all__ = [
    "BreakerState",
    "CircuitBreaker",
    "CircuitBreakerError",
    "backoff_delay",
    "with_exponential_backoff",
    "with_timeout",
]
