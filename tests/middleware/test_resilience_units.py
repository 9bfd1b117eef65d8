# SPDX-License-Identifier: Apache-2.0
"""
Middleware: Retry, circuit breaker and rate limiting as pipeline units.
"""

import pytest

from vectorlink_sdk.core.errors import (
    BackendConnectionError,
    BackendTimeoutError,
    CircuitBreakerOpenError,
    RateLimitError,
    ValidationError,
)
from vectorlink_sdk.middleware.resilience import (
    CircuitBreakerMiddleware,
    RateLimitMiddleware,
    RetryMiddleware,
    index_circuit_name,
)
from vectorlink_sdk.middleware.stack import MiddlewareStack
from vectorlink_sdk.resilience.circuit_breaker import CircuitBreakerRegistry, CircuitState
from vectorlink_sdk.resilience.rate_limiter import TokenBucketLimiter
from vectorlink_sdk.resilience.retry import RetryPolicy

pytestmark = pytest.mark.asyncio

FAST = RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False)


async def test_retry_unit_reinvokes_inner_chain(adapter):
    adapter.fail_next("list_indexes", BackendTimeoutError("slow"), times=2)
    stack = MiddlewareStack(adapter, [RetryMiddleware(FAST)])
    response = await stack.execute("list_indexes")
    assert response.result == []
    assert response.metadata["retry_count"] == 2
    assert adapter.calls["list_indexes"] == 3


async def test_retry_unit_does_not_retry_validation_errors(adapter):
    adapter.fail_next("list_indexes", ValidationError("bad"), times=3)
    stack = MiddlewareStack(adapter, [RetryMiddleware(FAST)])
    with pytest.raises(ValidationError):
        await stack.call("list_indexes")
    assert adapter.calls["list_indexes"] == 1


async def test_circuit_unit_opens_per_index(adapter, clock):
    registry = CircuitBreakerRegistry(failure_threshold=2, recovery_timeout=10.0, clock=clock)
    stack = MiddlewareStack(adapter, [CircuitBreakerMiddleware(registry)])
    adapter.fail_when("query", lambda kw: kw["index"] == "bad", BackendConnectionError("down"))

    for _ in range(2):
        with pytest.raises(BackendConnectionError):
            await stack.call("query", index="bad", vector=[1.0, 0.0])
    with pytest.raises(CircuitBreakerOpenError) as exc_info:
        await stack.call("query", index="bad", vector=[1.0, 0.0])
    assert exc_info.value.circuit_name == "scripted:bad"
    assert adapter.calls["query"] == 2

    response = await stack.execute("query", index="good", vector=[1.0, 0.0])
    assert response.metadata["circuit"] == "scripted:good"
    assert registry.get("scripted:bad").state is CircuitState.OPEN
    assert registry.get("scripted:good").state is CircuitState.CLOSED


async def test_circuit_unit_global_name_for_unscoped_operations(adapter):
    stack = MiddlewareStack(adapter, [CircuitBreakerMiddleware()])
    response = await stack.execute("list_indexes")
    assert response.metadata["circuit"] == "scripted:_global"
    request = stack.build_request("list_indexes")
    assert index_circuit_name(request) == "scripted:_global"


async def test_retry_outside_breaker_stops_when_circuit_opens(adapter, clock):
    registry = CircuitBreakerRegistry(failure_threshold=2, clock=clock)
    adapter.fail_next("describe_index", BackendConnectionError("down"), times=10)
    stack = MiddlewareStack(
        adapter,
        [RetryMiddleware(RetryPolicy(max_attempts=5, base_delay=0.0, max_delay=0.0, jitter=False)),
         CircuitBreakerMiddleware(registry)],
    )
    with pytest.raises(CircuitBreakerOpenError):
        await stack.call("describe_index", index="docs")
    # two real attempts open the circuit; the third is rejected and not retried
    assert adapter.calls["describe_index"] == 2


async def test_rate_limit_unit_non_blocking(adapter, clock):
    limiter = TokenBucketLimiter(1, burst_size=2, clock=clock)
    stack = MiddlewareStack(adapter, [RateLimitMiddleware(limiter, blocking=False)])
    await stack.call("list_indexes")
    await stack.call("list_indexes")
    with pytest.raises(RateLimitError) as exc_info:
        await stack.call("list_indexes")
    assert exc_info.value.retry_after == pytest.approx(1.0)
    assert adapter.calls["list_indexes"] == 2

    clock.advance(1.0)
    await stack.call("list_indexes")
    assert adapter.calls["list_indexes"] == 3
