# vectorlink_sdk/middleware/resilience.py
# SPDX-License-Identifier: Apache-2.0

"""
Resilience primitives as pipeline units.

Position in the unit list decides layering. With the standalone default
order ``[..., RateLimitMiddleware, RetryMiddleware, CircuitBreakerMiddleware]``
one logical call consumes one token, every retry attempt passes through the
breaker, and an open circuit (not a retryable kind) ends the retry loop at
once.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from vectorlink_sdk.core.operations import OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware, NextCall
from vectorlink_sdk.resilience.circuit_breaker import CircuitBreakerRegistry
from vectorlink_sdk.resilience.rate_limiter import TokenBucketLimiter
from vectorlink_sdk.resilience.retry import RetryPolicy, retry_async

LOG = logging.getLogger(__name__)

#: Breaker name used for operations that are not scoped to an index.
GLOBAL_CIRCUIT = "_global"


class RetryMiddleware(Middleware):
    """Re-invokes the rest of the chain for retryable error kinds."""

    def __init__(self, policy: Optional[RetryPolicy] = None) -> None:
        self.policy = policy or RetryPolicy()

    async def call(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        def _on_backoff(attempt: int, delay: float, error: BaseException) -> None:
            request.metadata["retry_count"] = attempt
            LOG.debug(
                "retrying vector.%s (attempt %d, request_id=%s) in %.3fs",
                request.kind.value, attempt + 1, request.metadata.get("request_id"), delay,
            )

        response, stats = await retry_async(
            lambda: call_next(request),
            policy=self.policy,
            on_backoff=_on_backoff,
            return_stats=True,
        )
        response.metadata["retry_count"] = stats.attempts - 1
        return response


def index_circuit_name(request: OperationRequest) -> str:
    """One breaker per backend/index pair."""
    return f"{request.backend}:{request.index or GLOBAL_CIRCUIT}"


class CircuitBreakerMiddleware(Middleware):
    """
    Gates the rest of the chain behind a named breaker.

    ``name_for`` maps a request to a breaker name; by default every
    backend/index pair gets its own circuit.
    """

    def __init__(
        self,
        registry: Optional[CircuitBreakerRegistry] = None,
        *,
        name_for: Callable[[OperationRequest], str] = index_circuit_name,
    ) -> None:
        self.registry = registry or CircuitBreakerRegistry()
        self._name_for = name_for

    async def call(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        breaker = self.registry.get(self._name_for(request))
        response = await breaker.call(lambda: call_next(request))
        response.metadata["circuit"] = breaker.name
        return response


class RateLimitMiddleware(Middleware):
    """Takes one token per call before continuing down the chain."""

    def __init__(self, limiter: TokenBucketLimiter, *, blocking: Optional[bool] = None) -> None:
        self.limiter = limiter
        self.blocking = blocking

    async def call(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        await self.limiter.acquire(blocking=self.blocking)
        return await call_next(request)


__all__ = [
    "RetryMiddleware",
    "CircuitBreakerMiddleware",
    "RateLimitMiddleware",
    "index_circuit_name",
    "GLOBAL_CIRCUIT",
]
