# SPDX-License-Identifier: Apache-2.0
"""
SyncVectorClient: blocking facade over the async client.

These tests are synchronous on purpose; each call spins its own event loop
through AsyncBridge, and resilience state must survive across those loops.
"""

import asyncio

import pytest

from tests.mock.mock_backend_adapter import ScriptedAdapter, make_vectors
from vectorlink_sdk.client import SyncVectorClient, VectorClient
from vectorlink_sdk.core.async_bridge import AsyncBridge, AsyncBridgeTimeoutError
from vectorlink_sdk.core.config import ClientConfig
from vectorlink_sdk.core.errors import BackendConnectionError, CircuitBreakerOpenError
from vectorlink_sdk.resilience.pool import ConnectionPool
from vectorlink_sdk.vector.memory_adapter import InMemoryBackendAdapter


def test_sync_client_mirrors_async_operations(adapter):
    sync = SyncVectorClient(VectorClient(adapter))
    sync.create_index("docs", dimension=3)
    assert sync.upsert("docs", make_vectors(4))["upserted_count"] == 4
    assert len(sync.query("docs", [1.0, 0.5, 0.5], top_k=3)) == 3
    assert set(sync.fetch("docs", ["v0", "v1"])) == {"v0", "v1"}
    sync.update("docs", "v0", metadata={"k": "v"})
    sync.delete("docs", ids=["v3"])
    assert sync.describe_index("docs")["vector_count"] == 3
    assert sync.stats("docs")["total_vector_count"] == 3
    assert sync.list_indexes()[0]["name"] == "docs"
    assert sync.healthy() is True
    assert sync.ping()["backend"] == "scripted"
    assert sync.health_check()["healthy"] is True
    sync.delete_index("docs")
    assert sync.list_indexes() == []


def test_breaker_state_survives_across_bridged_calls(metrics):
    adapter = ScriptedAdapter()
    config = ClientConfig(mode="standalone", max_retries=0, failure_threshold=2)
    sync = SyncVectorClient(VectorClient(adapter, config=config, metrics=metrics))
    adapter.fail_next("describe_index", BackendConnectionError("down"), times=5)
    for _ in range(2):
        with pytest.raises(BackendConnectionError):
            sync.describe_index("docs")
    with pytest.raises(CircuitBreakerOpenError):
        sync.describe_index("docs")
    assert adapter.calls["describe_index"] == 2


def test_pool_is_reused_across_bridged_calls():
    created = []

    def factory():
        created.append(object())
        return created[-1]

    pool = ConnectionPool(factory, size=1, timeout=1.0)
    sync = SyncVectorClient(VectorClient(InMemoryBackendAdapter(pool=pool)))
    for _ in range(3):
        sync.upsert("docs", make_vectors(1))
    assert len(created) == 1
    sync.close()
    assert pool.closed


def test_bridge_timeout_is_translated():
    async def slow():
        await asyncio.sleep(1.0)

    with pytest.raises(AsyncBridgeTimeoutError):
        AsyncBridge.run_async(slow(), timeout=0.01)


def test_sync_client_drains_streams(adapter):
    client = SyncVectorClient(VectorClient(adapter))
    client.upsert("docs", [{"id": f"d{i}", "values": [1.0, i * 0.1]} for i in range(8)])
    matches = client.query_all("docs", [1.0, 0.0], total=8, page_size=3)
    assert [m.id for m in matches] == [f"d{i}" for i in range(8)]
    assert [v.id for v in client.fetch_all("docs", ["d7", "d0"])] == ["d7", "d0"]


@pytest.mark.asyncio
async def test_sync_client_inside_running_loop_uses_worker_thread(adapter):
    sync = SyncVectorClient(VectorClient(adapter), timeout=5.0)
    assert sync.list_indexes() == []
    assert adapter.calls["list_indexes"] == 1
