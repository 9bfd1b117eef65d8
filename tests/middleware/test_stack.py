# SPDX-License-Identifier: Apache-2.0
"""
Middleware: Pipeline composition and hook ordering.
"""

import pytest

from vectorlink_sdk.core.errors import (
    BackendConnectionError,
    BackendTimeoutError,
    ConfigurationError,
    PoolTimeoutError,
    UnsupportedOperationError,
)
from vectorlink_sdk.core.error_context import get_context
from vectorlink_sdk.core.operations import OperationKind, OperationResponse
from vectorlink_sdk.middleware.base import Middleware
from vectorlink_sdk.middleware.stack import MiddlewareStack, PipelineBuilder
from vectorlink_sdk.resilience.pool import ConnectionPool
from vectorlink_sdk.vector.memory_adapter import InMemoryBackendAdapter

pytestmark = pytest.mark.asyncio


class _Recorder(Middleware):
    def __init__(self, label, events):
        self.label = label
        self.events = events

    def before(self, request):
        self.events.append(f"{self.label}.before")

    def after(self, request, response):
        self.events.append(f"{self.label}.after")

    def on_error(self, request, error):
        self.events.append(f"{self.label}.on_error")


class _ShortCircuit(Middleware):
    async def call(self, request, call_next):
        return OperationResponse(result="cached", metadata={"short_circuit": True})


async def test_hooks_run_in_onion_order_on_success(adapter):
    events = []
    stack = MiddlewareStack(adapter, [_Recorder("A", events), _Recorder("B", events)])
    await stack.call("upsert", index="docs", vectors=[{"id": "a", "values": [1.0, 0.0]}])
    assert events == ["A.before", "B.before", "B.after", "A.after"]
    assert adapter.calls["upsert"] == 1


async def test_on_error_runs_once_per_unit_and_error_propagates(adapter):
    events = []
    err = BackendConnectionError("refused")
    adapter.fail_next("query", err)
    stack = MiddlewareStack(adapter, [_Recorder("A", events), _Recorder("B", events)])

    with pytest.raises(BackendConnectionError) as exc_info:
        await stack.call(OperationKind.QUERY, index="docs", vector=[1.0, 0.0])
    assert exc_info.value is err
    assert events == ["A.before", "B.before", "B.on_error", "A.on_error"]


async def test_adapter_errors_carry_pipeline_context(adapter):
    adapter.fail_next("fetch", BackendConnectionError("refused"))
    stack = MiddlewareStack(adapter)
    with pytest.raises(BackendConnectionError) as exc_info:
        await stack.call("fetch", index="docs", ids=["a"], metadata={"request_id": "r-1"})
    ctx = get_context(exc_info.value, component="pipeline")
    assert ctx["operation"] == "fetch"
    assert ctx["index"] == "docs"
    assert ctx["backend"] == "scripted"
    assert ctx["request_id"] == "r-1"


async def test_empty_stack_dispatches_directly_and_times_the_call(adapter):
    stack = MiddlewareStack(adapter)
    response = await stack.execute("list_indexes")
    assert response.result == []
    assert response.metadata["duration_ms"] >= 0
    assert adapter.calls["list_indexes"] == 1


async def test_unit_can_short_circuit_the_adapter(adapter):
    events = []
    stack = MiddlewareStack(adapter, [_Recorder("A", events), _ShortCircuit()])
    response = await stack.execute("query", index="docs", vector=[1.0])
    assert response.result == "cached"
    assert adapter.total_calls == 0
    assert events == ["A.before", "A.after"]


async def test_unknown_operation_is_rejected(adapter):
    stack = MiddlewareStack(adapter)
    with pytest.raises(UnsupportedOperationError):
        await stack.call("reindex", index="docs")


async def test_builder_preserves_order_and_skips_none(adapter):
    events = []
    stack = (
        PipelineBuilder()
        .use(_Recorder("outer", events))
        .use(None)
        .use_all([_Recorder("inner", events)])
        .build(adapter)
    )
    assert [unit.label for unit in stack.middlewares] == ["outer", "inner"]
    assert stack.backend_name == "scripted"
    await stack.call("list_indexes")
    assert events == ["outer.before", "inner.before", "inner.after", "outer.after"]


async def test_stack_rejects_objects_without_call(adapter):
    with pytest.raises(TypeError):
        MiddlewareStack(adapter, [object()])


async def test_stack_timeout_raises_backend_timeout_and_runs_error_hooks():
    events = []
    stack = MiddlewareStack(InMemoryBackendAdapter(latency=0.5), [_Recorder("A", events)], timeout=0.02)
    with pytest.raises(BackendTimeoutError) as exc_info:
        await stack.call(OperationKind.LIST_INDEXES)
    assert events == ["A.before", "A.on_error"]
    assert get_context(exc_info.value)["operation"] == "list_indexes"


async def test_stack_timeout_keeps_pool_timeout_distinct():
    pool = ConnectionPool(object, size=1, timeout=0.02)
    held = await pool.checkout()
    stack = MiddlewareStack(InMemoryBackendAdapter(pool=pool), timeout=5.0)
    with pytest.raises(PoolTimeoutError):
        await stack.call(OperationKind.LIST_INDEXES)
    pool.checkin(held)


async def test_stack_rejects_non_positive_timeout():
    with pytest.raises(ConfigurationError):
        MiddlewareStack(InMemoryBackendAdapter(), timeout=0)
