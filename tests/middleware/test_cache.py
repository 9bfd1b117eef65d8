# SPDX-License-Identifier: Apache-2.0
"""
Middleware: read-through query/fetch cache with per-index invalidation.
"""

import asyncio

import pytest

from tests.mock.mock_backend_adapter import make_vectors
from vectorlink_sdk.core.errors import ConfigurationError, ValidationError
from vectorlink_sdk.middleware.cache import CacheMiddleware, InMemoryTTLCache
from vectorlink_sdk.middleware.stack import MiddlewareStack

pytestmark = pytest.mark.asyncio


@pytest.fixture
def cache(clock):
    return InMemoryTTLCache(ttl=60, max_size=100, clock=clock)


async def _seeded(adapter, cache, **options):
    await adapter.upsert("docs", make_vectors(5))
    return MiddlewareStack(adapter, [CacheMiddleware(cache, **options)])


async def test_repeated_query_served_from_cache(adapter, cache):
    stack = await _seeded(adapter, cache)
    first = await stack.execute("query", index="docs", vector=[1.0, 0.5, 0.5], top_k=3)
    second = await stack.execute("query", index="docs", vector=[1.0, 0.5, 0.5], top_k=3)

    assert adapter.calls["query"] == 1
    assert first.metadata["cache"] == "miss"
    assert second.metadata["cache"] == "hit"
    assert second.result is first.result


async def test_query_key_covers_parameters(adapter, cache):
    stack = await _seeded(adapter, cache)
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5], top_k=3)
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5], top_k=4)
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5], top_k=3, filter={"n": 1})
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5], top_k=3, namespace="other")
    await stack.call("query", index="docs", vector=[2.0, 0.5, 0.5], top_k=3)
    assert adapter.calls["query"] == 5


async def test_entries_expire_after_ttl(adapter, cache, clock):
    stack = await _seeded(adapter, cache)
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5])
    clock.advance(61)
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5])
    assert adapter.calls["query"] == 2


async def test_fetch_only_requests_uncached_ids(adapter, cache):
    stack = await _seeded(adapter, cache)
    await stack.call("fetch", index="docs", ids=["v0", "v1"])
    response = await stack.execute("fetch", index="docs", ids=["v1", "v2", "v9"])

    assert adapter.call_log[-1]["ids"] == ["v2", "v9"]
    assert list(response.result) == ["v1", "v2"]
    assert response.metadata["cache"] == "partial"

    hit = await stack.execute("fetch", index="docs", ids=["v0", "v2"])
    assert hit.metadata["cache"] == "hit"
    assert adapter.calls["fetch"] == 2


async def test_writes_invalidate_only_their_index(adapter, cache):
    stack = await _seeded(adapter, cache)
    await adapter.upsert("other", make_vectors(2))
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5])
    await stack.call("query", index="other", vector=[1.0, 0.5, 0.5])
    await stack.call("fetch", index="docs", ids=["v0"])

    await stack.call("update", index="docs", id="v0", metadata={"n": 99})

    fetched = await stack.call("fetch", index="docs", ids=["v0"])
    assert fetched["v0"].metadata["n"] == 99
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5])
    await stack.call("query", index="other", vector=[1.0, 0.5, 0.5])
    assert adapter.calls["query"] == 3


async def test_failed_write_still_invalidates(adapter, cache):
    stack = await _seeded(adapter, cache)
    await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5])
    adapter.fail_next("upsert", ValidationError("rejected"))
    with pytest.raises(ValidationError):
        await stack.call("upsert", index="docs", vectors=make_vectors(1))
    assert len(cache) == 0


async def test_cache_toggles(adapter, cache):
    stack = await _seeded(adapter, cache, cache_queries=False, cache_fetches=False)
    for _ in range(2):
        await stack.call("query", index="docs", vector=[1.0, 0.5, 0.5])
        await stack.call("fetch", index="docs", ids=["v0"])
    assert adapter.calls["query"] == 2
    assert adapter.calls["fetch"] == 2


async def test_cache_size_cap_evicts_oldest(clock):
    cache = InMemoryTTLCache(ttl=60, max_size=10, clock=clock)
    for i in range(10):
        cache.set(f"k{i}", i)
        clock.advance(1)
    cache.set("k10", 10)
    assert len(cache) <= 10
    assert "k0" not in cache
    assert cache.get("k10") == 10


async def test_cache_is_safe_under_concurrent_access(clock):
    cache = InMemoryTTLCache(ttl=60, max_size=1000, clock=clock)

    async def writer(n):
        for i in range(50):
            cache.set(f"{n}:{i}", i)
            await asyncio.sleep(0)
            cache.get(f"{n}:{i}")

    await asyncio.gather(*(writer(n) for n in range(4)))
    assert len(cache) == 200
    assert cache.stats()["hits"] == 200


async def test_cache_rejects_invalid_settings():
    with pytest.raises(ConfigurationError):
        InMemoryTTLCache(ttl=0)
    with pytest.raises(ConfigurationError):
        InMemoryTTLCache(max_size=0)
