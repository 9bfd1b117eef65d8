# vectorlink_sdk/resilience/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
Resilience primitives: retry, circuit breaker, token-bucket limiter and
connection pool. Each is a standalone object; the middleware package wraps
them as pipeline units.
"""

from vectorlink_sdk.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from vectorlink_sdk.resilience.pool import ConnectionPool, PoolClosedError
from vectorlink_sdk.resilience.rate_limiter import RateLimiterRegistry, TokenBucketLimiter
from vectorlink_sdk.resilience.retry import RetryPolicy, RetryStats, retry_async

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "ConnectionPool",
    "PoolClosedError",
    "RateLimiterRegistry",
    "TokenBucketLimiter",
    "RetryPolicy",
    "RetryStats",
    "retry_async",
]
