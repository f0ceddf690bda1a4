"""Resilience layer for provider calls.

- RateLimiter / TokenBucket: throttle outbound requests
- CircuitBreaker / CircuitBreakerRegistry: per-endpoint failure isolation
- RetryPolicy / RequestTracker: backoff constants and request lifecycle
- ResilientExecutor: composes cache, limiter, breaker and retry
"""

from research_system.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from research_system.resilience.executor import ExecutionResult, ResilientExecutor
from research_system.resilience.rate_limiter import RateLimiter, TokenBucket
from research_system.resilience.retry import (
    RequestState,
    RequestTracker,
    RetryPolicy,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "ExecutionResult",
    "RateLimiter",
    "RequestState",
    "RequestTracker",
    "ResilientExecutor",
    "RetryPolicy",
    "TokenBucket",
]
