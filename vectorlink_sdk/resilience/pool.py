# vectorlink_sdk/resilience/pool.py
# SPDX-License-Identifier: Apache-2.0

"""
Bounded connection pool.

Purpose
-------
Backends that hold real connections (database sessions, HTTP clients,
gRPC channels) check them out of a :class:`ConnectionPool` for the duration
of one call. The pool guarantees:

- at most ``size`` connections exist, and at most ``size`` are checked out;
- connections are created lazily, on first demand, and then reused, so a
  connection object keeps its identity across checkouts;
- a caller that finds the pool exhausted waits, in FIFO order, until a
  connection is checked in or ``timeout`` elapses, at which point
  :class:`PoolTimeoutError` (distinct from backend timeouts) is raised;
- ``async with pool.connection() as conn`` checks the connection back in on
  every exit path, including exceptions and cancellation.

Concurrency
-----------
Membership (idle list, checked-out set, waiters) is guarded by a single
``threading.Lock``. Waiters are per-call futures bound to the waiting
coroutine's own event loop and woken thread-safely; a checkin hands the
connection directly to the oldest waiter. One pool can therefore be shared by
several clients, threads or event loops.
"""

from __future__ import annotations

import asyncio
import collections
import contextlib
import inspect
import logging
import threading
import time
from typing import Any, AsyncIterator, Callable, Deque, Dict, List, Optional, Set

from vectorlink_sdk.core.errors import ConfigurationError, PoolTimeoutError, VectorClientError

LOG = logging.getLogger(__name__)


class PoolClosedError(VectorClientError):
    """Checkout attempted on a pool that has been shut down."""
    default_code = "POOL_CLOSED"


class _Waiter:
    """One blocked checkout. ``assigned`` flips under the pool lock."""

    __slots__ = ("loop", "future", "assigned", "connection")

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self.future: asyncio.Future = loop.create_future()
        self.assigned = False
        # None with assigned=True means "a slot freed up, create a connection"
        self.connection: Any = None

    def wake(self) -> None:
        def _set() -> None:
            if not self.future.done():
                self.future.set_result(None)

        try:
            self.loop.call_soon_threadsafe(_set)
        except RuntimeError:
            # Loop already closed; the waiter is gone with it.
            LOG.debug("pool waiter loop closed before wake-up")


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ConnectionPool:
    """
    Args:
        factory: Zero-arg callable (sync or async) creating a connection
        size: Capacity N
        timeout: Seconds a checkout may wait before PoolTimeoutError
        close: Optional callable (sync or async) closing a connection
        health_check: Optional predicate; unhealthy connections are closed on checkin
        name: Label for logs and stats
    """

    def __init__(
        self,
        factory: Callable[[], Any],
        size: int = 5,
        *,
        timeout: float = 5.0,
        close: Optional[Callable[[Any], Any]] = None,
        health_check: Optional[Callable[[Any], bool]] = None,
        name: str = "pool",
    ) -> None:
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise ConfigurationError("pool size must be a positive integer")
        if timeout is None or timeout < 0:
            raise ConfigurationError("pool timeout must be non-negative")
        self._factory = factory
        self._close = close
        self._health_check = health_check
        self.size = size
        self.timeout = float(timeout)
        self.name = name

        self._lock = threading.Lock()
        self._idle: Deque[Any] = collections.deque()
        self._checked_out: Set[int] = set()
        self._slots = 0  # live connections plus creations in progress
        self._waiters: Deque[_Waiter] = collections.deque()
        self._total_created = 0
        self._closed = False

    @classmethod
    def from_config(cls, factory: Callable[[], Any], config: Any, **kwargs: Any) -> "ConnectionPool":
        return cls(factory, config.pool_size, timeout=config.pool_timeout, **kwargs)

    # ------------------------------------------------------------------ #
    # Checkout / checkin
    # ------------------------------------------------------------------ #

    async def checkout(self, timeout: Optional[float] = None) -> Any:
        """
        Return a connection, creating one if under capacity.

        Raises:
            PoolTimeoutError: no connection became available within the timeout.
            PoolClosedError: the pool was shut down.
        """
        timeout = self.timeout if timeout is None else timeout
        waiter: Optional[_Waiter] = None
        create = False
        with self._lock:
            if self._closed:
                raise PoolClosedError(f"pool '{self.name}' is shut down")
            if self._idle:
                conn = self._idle.popleft()
                self._checked_out.add(id(conn))
                return conn
            if self._slots < self.size:
                self._slots += 1
                create = True
            else:
                waiter = _Waiter(asyncio.get_running_loop())
                self._waiters.append(waiter)

        if create:
            return await self._create_checked_out()

        assert waiter is not None
        conn = await self._wait(waiter, timeout)
        if conn is None:
            # Slot handed over without a connection: build a fresh one.
            return await self._create_checked_out()
        return conn

    async def _wait(self, waiter: _Waiter, timeout: float) -> Any:
        started = time.monotonic()
        try:
            await asyncio.wait_for(waiter.future, timeout=timeout)
        except asyncio.TimeoutError:
            with self._lock:
                if waiter.assigned:
                    return waiter.connection
                self._remove_waiter_locked(waiter)
            raise PoolTimeoutError(
                f"timed out after {timeout}s waiting for a connection from pool '{self.name}'",
                details={"pool": self.name, "size": self.size, "waited_ms": int((time.monotonic() - started) * 1000)},
            ) from None
        except asyncio.CancelledError:
            with self._lock:
                if not waiter.assigned:
                    self._remove_waiter_locked(waiter)
                    raise
            # Handed a connection/slot while being cancelled: give it back.
            self._release_assignment(waiter)
            raise
        with self._lock:
            if self._closed and not waiter.assigned:
                raise PoolClosedError(f"pool '{self.name}' is shut down")
        return waiter.connection

    def _remove_waiter_locked(self, waiter: _Waiter) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def _release_assignment(self, waiter: _Waiter) -> None:
        if waiter.connection is not None:
            self.checkin(waiter.connection)
        else:
            with self._lock:
                self._slots -= 1
                self._hand_slot_locked()

    async def _create_checked_out(self) -> Any:
        try:
            conn = await _maybe_await(self._factory())
        except BaseException:
            with self._lock:
                self._slots -= 1
                self._hand_slot_locked()
            LOG.warning("pool '%s' failed to create a connection", self.name, exc_info=True)
            raise
        with self._lock:
            self._total_created += 1
            self._checked_out.add(id(conn))
        return conn

    def _hand_slot_locked(self) -> None:
        # A slot freed up without a connection to pass on; let the oldest waiter build one.
        if self._waiters and self._slots < self.size:
            waiter = self._waiters.popleft()
            self._slots += 1
            waiter.assigned = True
            waiter.connection = None
            waiter.wake()

    def checkin(self, conn: Any) -> None:
        """Return ``conn`` to the pool (or close it if unhealthy / pool shut down)."""
        discard = False
        with self._lock:
            if id(conn) not in self._checked_out:
                LOG.debug("pool '%s' ignoring checkin of unknown connection", self.name)
                return
            self._checked_out.discard(id(conn))
            if self._closed or not self._is_healthy(conn):
                discard = True
                self._slots -= 1
                self._hand_slot_locked()
            elif self._waiters:
                waiter = self._waiters.popleft()
                waiter.assigned = True
                waiter.connection = conn
                self._checked_out.add(id(conn))
                waiter.wake()
            else:
                self._idle.append(conn)
        if discard:
            self._close_quietly(conn)

    def _is_healthy(self, conn: Any) -> bool:
        if self._health_check is None:
            return True
        try:
            return bool(self._health_check(conn))
        except Exception:  # noqa: BLE001
            LOG.warning("pool '%s' health check raised; discarding connection", self.name, exc_info=True)
            return False

    def _close_quietly(self, conn: Any) -> None:
        if self._close is None:
            return
        try:
            result = self._close(conn)
        except Exception:  # noqa: BLE001
            LOG.warning("pool '%s' failed to close a connection", self.name, exc_info=True)
            return
        if inspect.isawaitable(result):
            # Async closer: schedule it on the running loop if there is one.
            try:
                asyncio.get_running_loop().create_task(result)
            except RuntimeError:
                result.close()
                LOG.debug("pool '%s' dropped async close outside an event loop", self.name)

    @contextlib.asynccontextmanager
    async def connection(self, timeout: Optional[float] = None) -> AsyncIterator[Any]:
        """Scoped checkout; the connection is checked in on every exit path."""
        conn = await self.checkout(timeout)
        try:
            yield conn
        finally:
            self.checkin(conn)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def warmup(self, count: Optional[int] = None) -> int:
        """Pre-create up to ``count`` idle connections (default: full capacity)."""
        target = self.size if count is None else min(count, self.size)
        created = 0
        while True:
            with self._lock:
                if self._closed or self._slots >= target:
                    break
                self._slots += 1
            try:
                conn = await _maybe_await(self._factory())
            except BaseException:
                with self._lock:
                    self._slots -= 1
                raise
            with self._lock:
                self._total_created += 1
                self._idle.append(conn)
            created += 1
        LOG.debug("pool '%s' warmed up %d connection(s)", self.name, created)
        return created

    async def shutdown(self) -> None:
        """Close idle connections, fail waiters and refuse new checkouts."""
        with self._lock:
            self._closed = True
            idle: List[Any] = list(self._idle)
            self._idle.clear()
            self._slots -= len(idle)
            waiters = list(self._waiters)
            self._waiters.clear()
        for waiter in waiters:
            waiter.wake()
        for conn in idle:
            if self._close is not None:
                try:
                    await _maybe_await(self._close(conn))
                except Exception:  # noqa: BLE001
                    LOG.warning("pool '%s' failed to close a connection", self.name, exc_info=True)
        LOG.info("pool '%s' shut down (%d idle closed)", self.name, len(idle))

    # ------------------------------------------------------------------ #
    # Observability
    # ------------------------------------------------------------------ #

    @property
    def checked_out(self) -> int:
        with self._lock:
            return len(self._checked_out)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def healthy(self) -> bool:
        with self._lock:
            return not self._closed and len(self._checked_out) < self.size

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            checked_out = len(self._checked_out)
            return {
                "name": self.name,
                "size": self.size,
                "available": self.size - checked_out,
                "idle": len(self._idle),
                "checked_out": checked_out,
                "total_created": self._total_created,
                "waiting": len(self._waiters),
                "closed": self._closed,
            }

    def __repr__(self) -> str:
        return f"ConnectionPool(name={self.name!r}, size={self.size})"


__all__ = ["ConnectionPool", "PoolClosedError"]
