"""Resilience utilities for conversation service calls.

- Circuit Breaker: stops hammering a failing service
- Retry Logic: rides out transient errors
"""

from pipeline_converter.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from pipeline_converter.resilience.retry import retry_with_backoff, RetryConfig

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "retry_with_backoff",
    "RetryConfig",
]
