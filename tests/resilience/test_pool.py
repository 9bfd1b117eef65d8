# SPDX-License-Identifier: Apache-2.0
"""
Resilience: bounded connection pool, capacity, reuse, waiting, lifecycle.
"""

import asyncio

import pytest

from vectorlink_sdk.core.config import ClientConfig
from vectorlink_sdk.core.errors import ConfigurationError, PoolTimeoutError
from vectorlink_sdk.resilience.pool import ConnectionPool, PoolClosedError

pytestmark = pytest.mark.asyncio


class _Conn:
    def __init__(self, n):
        self.n = n
        self.closed = False
        self.healthy = True


class _Factory:
    def __init__(self):
        self.created = []

    def __call__(self):
        conn = _Conn(len(self.created))
        self.created.append(conn)
        return conn


def _close(conn):
    conn.closed = True


async def test_pool_third_checkout_waits_for_checkin():
    factory = _Factory()
    pool = ConnectionPool(factory, size=2, timeout=2.0)
    a = await pool.checkout()
    b = await pool.checkout()
    assert pool.checked_out == 2

    waiter = asyncio.create_task(pool.checkout())
    await asyncio.sleep(0.05)
    assert not waiter.done()
    assert pool.stats()["waiting"] == 1

    pool.checkin(a)
    c = await asyncio.wait_for(waiter, 1.0)
    assert c is a
    assert pool.checked_out == 2
    assert len(factory.created) == 2
    pool.checkin(b)
    pool.checkin(c)


async def test_pool_timeout_raises_pool_timeout_error():
    pool = ConnectionPool(_Factory(), size=1, timeout=0.05)
    await pool.checkout()
    with pytest.raises(PoolTimeoutError) as exc_info:
        await pool.checkout()
    assert exc_info.value.code == "POOL_TIMEOUT"
    assert exc_info.value.details["pool"] == "pool"
    assert pool.stats()["waiting"] == 0


async def test_pool_never_exceeds_capacity_under_contention():
    factory = _Factory()
    pool = ConnectionPool(factory, size=2, timeout=5.0)
    peak = 0

    async def job():
        nonlocal peak
        async with pool.connection():
            peak = max(peak, pool.checked_out)
            await asyncio.sleep(0.01)

    await asyncio.gather(*(job() for _ in range(20)))
    assert peak <= 2
    assert len(factory.created) == 2
    assert pool.checked_out == 0


async def test_pool_reuses_connection_identity():
    factory = _Factory()
    pool = ConnectionPool(factory, size=3)
    async with pool.connection() as first:
        pass
    async with pool.connection() as second:
        pass
    assert first is second
    assert pool.stats()["total_created"] == 1


async def test_pool_connection_returned_on_exception():
    pool = ConnectionPool(_Factory(), size=1, timeout=0.1)
    with pytest.raises(RuntimeError):
        async with pool.connection():
            raise RuntimeError("query blew up")
    assert pool.checked_out == 0
    async with pool.connection() as conn:
        assert conn is not None


async def test_pool_discards_unhealthy_connection():
    factory = _Factory()
    pool = ConnectionPool(factory, size=1, close=_close, health_check=lambda c: c.healthy)
    conn = await pool.checkout()
    conn.healthy = False
    pool.checkin(conn)
    assert conn.closed is True

    replacement = await pool.checkout()
    assert replacement is not conn
    assert len(factory.created) == 2


async def test_pool_unhealthy_checkin_lets_waiter_build_new_connection():
    factory = _Factory()
    pool = ConnectionPool(factory, size=1, timeout=1.0, close=_close, health_check=lambda c: c.healthy)
    conn = await pool.checkout()
    waiter = asyncio.create_task(pool.checkout())
    await asyncio.sleep(0.01)

    conn.healthy = False
    pool.checkin(conn)
    fresh = await asyncio.wait_for(waiter, 1.0)
    assert fresh is not conn
    assert pool.checked_out == 1


async def test_pool_async_factory_and_warmup():
    created = []

    async def factory():
        await asyncio.sleep(0)
        conn = _Conn(len(created))
        created.append(conn)
        return conn

    pool = ConnectionPool(factory, size=3)
    assert await pool.warmup() == 3
    stats = pool.stats()
    assert stats["idle"] == 3
    assert stats["available"] == 3
    conn = await pool.checkout()
    assert conn in created
    assert len(created) == 3


async def test_pool_shutdown_closes_idle_and_refuses_checkout():
    factory = _Factory()
    pool = ConnectionPool(factory, size=2, close=_close)
    await pool.warmup(2)
    await pool.shutdown()
    assert all(c.closed for c in factory.created)
    assert pool.closed
    assert not pool.healthy()
    with pytest.raises(PoolClosedError):
        await pool.checkout()


async def test_pool_shutdown_closes_checked_out_connection_on_checkin():
    pool = ConnectionPool(_Factory(), size=1, close=_close)
    conn = await pool.checkout()
    await pool.shutdown()
    pool.checkin(conn)
    assert conn.closed is True


async def test_pool_rejects_invalid_size():
    with pytest.raises(ConfigurationError):
        ConnectionPool(_Factory(), size=0)


async def test_pool_from_config_uses_pool_settings():
    factory = _Factory()
    pool = ConnectionPool.from_config(factory, ClientConfig(pool_size=1, pool_timeout=0.05), name="cfg")
    assert pool.size == 1
    assert pool.timeout == pytest.approx(0.05)
    assert pool.name == "cfg"

    await pool.checkout()
    with pytest.raises(PoolTimeoutError):
        await pool.checkout()
