# vectorlink_sdk/core/async_bridge.py
# SPDX-License-Identifier: Apache-2.0

"""
Run vectorlink coroutines from synchronous code.

The client is async-first. :class:`~vectorlink_sdk.client.SyncVectorClient`
sits on top of this bridge so scripts and sync frameworks can use it without
managing an event loop.

Event loop strategy
-------------------
- No loop running in this thread: ``asyncio.run`` on a fresh loop.
- A loop already running (Jupyter, async apps calling sync helpers): the
  coroutine runs on a fresh loop in a worker thread, inside a copy of the
  caller's ``contextvars.Context``.

Each call gets its own loop. The resilience primitives (breaker, limiter,
pool) do not bind to a loop, so state carries across bridged calls.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Coroutine, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

#: Worker threads used only when a loop is already running in the caller's thread.
DEFAULT_MAX_WORKERS: int = 4


class AsyncBridgeTimeoutError(TimeoutError):
    """Raised when a bridged coroutine exceeds its timeout."""


class AsyncBridge:
    """
    Helper for running coroutines from sync call sites.

    Thread safety: executor creation is guarded by a class-level lock and
    ``run_async`` may be called from many threads at once.
    """

    _lock = threading.RLock()
    _executor: Optional[ThreadPoolExecutor] = None
    _max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def configure(cls, max_workers: int) -> None:
        """Set the worker count for executors created after this call."""
        if max_workers <= 0:
            raise ValueError("max_workers must be a positive integer")
        with cls._lock:
            cls._max_workers = max_workers

    @classmethod
    def _get_or_create_executor(cls) -> ThreadPoolExecutor:
        # Caller must hold cls._lock.
        if cls._executor is None:
            cls._executor = ThreadPoolExecutor(
                max_workers=cls._max_workers,
                thread_name_prefix="vectorlink_bridge_",
            )
            logger.debug("AsyncBridge: created executor (max_workers=%d)", cls._max_workers)
        return cls._executor

    @staticmethod
    async def _with_timeout(coro: Coroutine[Any, Any, T], timeout: Optional[float]) -> T:
        if timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise AsyncBridgeTimeoutError(
                f"bridged call exceeded timeout={timeout!r} seconds"
            ) from exc

    @classmethod
    def run_async(cls, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """
        Execute ``coro`` to completion and return its result.

        Exceptions raised by the coroutine propagate unchanged; only the
        bridge's own timeout is translated (to AsyncBridgeTimeoutError).
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(cls._with_timeout(coro, timeout))

        ctx = contextvars.copy_context()

        def _runner() -> T:
            return asyncio.run(cls._with_timeout(coro, timeout))

        with cls._lock:
            executor = cls._get_or_create_executor()
        logger.debug("AsyncBridge.run_async: loop running in caller thread, using worker")
        return executor.submit(ctx.run, _runner).result()

    @classmethod
    def shutdown(cls, *, wait: bool = False) -> None:
        """Tear down the shared executor; safe to call repeatedly."""
        with cls._lock:
            if cls._executor is not None:
                cls._executor.shutdown(wait=wait)
                cls._executor = None


def run_async(coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
    return AsyncBridge.run_async(coro, timeout=timeout)


__all__ = [
    "AsyncBridge",
    "AsyncBridgeTimeoutError",
    "DEFAULT_MAX_WORKERS",
    "run_async",
]
