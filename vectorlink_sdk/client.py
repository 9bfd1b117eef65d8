# vectorlink_sdk/client.py
# SPDX-License-Identifier: Apache-2.0

"""
VectorClient: the public entry point.

A client wires one backend adapter to a middleware pipeline and owns its
resilience primitives. Nothing is process-global: two clients built without
arguments get independent breakers and limiters, and sharing is explicit:

    limiter = TokenBucketLimiter(requests_per_second=50)
    a = VectorClient(adapter_a, config=cfg, rate_limiter=limiter, mode="standalone")
    b = VectorClient(adapter_b, config=cfg, rate_limiter=limiter, mode="standalone")

Modes
-----
- ``thin`` (default): only the middleware you pass is installed.
- ``standalone``: a default stack is built from the config, outermost first:
  RequestId, Logging, Instrumentation, RateLimit (when
  ``requests_per_second`` is set), Retry, CircuitBreaker. Middleware you pass
  is appended inside it, closest to the backend.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from vectorlink_sdk.batch import BatchExecutor
from vectorlink_sdk.core.async_bridge import AsyncBridge
from vectorlink_sdk.core.config import ClientConfig
from vectorlink_sdk.core.errors import ConfigurationError
from vectorlink_sdk.core.metrics import MetricsSink, NoopMetrics
from vectorlink_sdk.core.operations import OperationKind, OperationResponse
from vectorlink_sdk.middleware.base import Middleware
from vectorlink_sdk.middleware.instrumentation import InstrumentationMiddleware
from vectorlink_sdk.middleware.request_id import RequestIdMiddleware
from vectorlink_sdk.middleware.request_logging import LoggingMiddleware
from vectorlink_sdk.middleware.resilience import (
    CircuitBreakerMiddleware,
    RateLimitMiddleware,
    RetryMiddleware,
)
from vectorlink_sdk.middleware.stack import MiddlewareStack, PipelineBuilder
from vectorlink_sdk.resilience.circuit_breaker import CircuitBreakerRegistry
from vectorlink_sdk.resilience.rate_limiter import TokenBucketLimiter
from vectorlink_sdk.resilience.retry import RetryPolicy
from vectorlink_sdk.streaming import DEFAULT_PAGE_SIZE, fetch_stream, query_stream
from vectorlink_sdk.vector.types import Match, QueryResult, Vector

LOG = logging.getLogger(__name__)


class VectorClient:
    """
    Args:
        adapter: Backend adapter (see vector.adapter_base.BackendAdapter)
        config: ClientConfig; defaults are used when omitted
        middleware: Explicit units, outermost first
        mode: Overrides ``config.mode``
        metrics: Sink for the standalone instrumentation unit
        retry_policy / circuit_breakers / rate_limiter: Injected primitives;
            omitted ones are created from the config, owned by this client
        logger: Logger for the standalone logging unit
    """

    def __init__(
        self,
        adapter: Any,
        *,
        config: Optional[ClientConfig] = None,
        middleware: Optional[Sequence[Middleware]] = None,
        mode: Optional[str] = None,
        metrics: Optional[MetricsSink] = None,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breakers: Optional[CircuitBreakerRegistry] = None,
        rate_limiter: Optional[TokenBucketLimiter] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if adapter is None:
            raise ConfigurationError("an adapter is required")
        self.config = config or ClientConfig()
        if mode is not None:
            self.config = self.config.with_overrides(mode=mode)

        self._adapter = adapter
        self._metrics: MetricsSink = metrics or NoopMetrics()
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self.circuit_breakers = circuit_breakers or CircuitBreakerRegistry.from_config(self.config)
        self.rate_limiter = rate_limiter or TokenBucketLimiter.from_config(self.config)

        builder = PipelineBuilder()
        if self.config.mode == "standalone":
            if metrics is None:
                LOG.warning("Using standalone mode without metrics; provide a MetricsSink for production use")
            builder.use_all(self._default_middleware(logger))
        builder.use_all(middleware or ())
        self._stack: MiddlewareStack = builder.build(adapter, timeout=self.config.timeout)

    def _default_middleware(self, logger: Optional[logging.Logger]) -> List[Optional[Middleware]]:
        return [
            RequestIdMiddleware(),
            LoggingMiddleware(logger),
            InstrumentationMiddleware(self._metrics),
            RateLimitMiddleware(self.rate_limiter) if self.rate_limiter is not None else None,
            RetryMiddleware(self.retry_policy),
            CircuitBreakerMiddleware(self.circuit_breakers),
        ]

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def adapter(self) -> Any:
        return self._adapter

    @property
    def pipeline(self) -> MiddlewareStack:
        return self._stack

    @property
    def backend_name(self) -> str:
        return self._stack.backend_name

    @property
    def mode(self) -> str:
        return self.config.mode

    # ------------------------------------------------------------------ #
    # Generic dispatch
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        kind: Any,
        *,
        index: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        **params: Any,
    ) -> OperationResponse:
        return await self._stack.execute(kind, index=index, metadata=metadata, **params)

    async def call(
        self,
        kind: Any,
        *,
        index: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        **params: Any,
    ) -> Any:
        return await self._stack.call(kind, index=index, metadata=metadata, **params)

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def upsert(self, index: str, vectors: Sequence[Any], *, namespace: Optional[str] = None) -> Dict[str, Any]:
        return await self.call(OperationKind.UPSERT, index=index, vectors=list(vectors), namespace=namespace)

    async def query(
        self,
        index: str,
        vector: Sequence[float],
        *,
        top_k: int = 10,
        namespace: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        include_values: bool = False,
        include_metadata: bool = True,
    ) -> QueryResult:
        return await self.call(
            OperationKind.QUERY,
            index=index,
            vector=list(vector),
            top_k=top_k,
            namespace=namespace,
            filter=filter,
            include_values=include_values,
            include_metadata=include_metadata,
        )

    async def fetch(self, index: str, ids: Sequence[str], *, namespace: Optional[str] = None) -> Dict[str, Vector]:
        return await self.call(OperationKind.FETCH, index=index, ids=list(ids), namespace=namespace)

    async def update(
        self,
        index: str,
        id: str,
        *,
        metadata: Optional[Mapping[str, Any]] = None,
        values: Optional[Sequence[float]] = None,
        namespace: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.call(
            OperationKind.UPDATE, index=index, id=id, metadata=metadata, values=values, namespace=namespace,
        )

    async def delete(
        self,
        index: str,
        *,
        ids: Optional[Sequence[str]] = None,
        namespace: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        delete_all: bool = False,
    ) -> Dict[str, Any]:
        return await self.call(
            OperationKind.DELETE,
            index=index,
            ids=list(ids) if ids is not None else None,
            namespace=namespace,
            filter=filter,
            delete_all=delete_all,
        )

    async def create_index(self, index: str, *, dimension: int, metric: str = "cosine") -> Dict[str, Any]:
        return await self.call(OperationKind.CREATE_INDEX, index=index, dimension=dimension, metric=metric)

    async def delete_index(self, index: str) -> Dict[str, Any]:
        return await self.call(OperationKind.DELETE_INDEX, index=index)

    async def list_indexes(self) -> List[Dict[str, Any]]:
        return await self.call(OperationKind.LIST_INDEXES)

    async def describe_index(self, index: str) -> Dict[str, Any]:
        return await self.call(OperationKind.DESCRIBE_INDEX, index=index)

    async def stats(self, index: str, *, namespace: Optional[str] = None) -> Dict[str, Any]:
        return await self.call(OperationKind.STATS, index=index, namespace=namespace)

    # ------------------------------------------------------------------ #
    # Streaming
    # ------------------------------------------------------------------ #

    def query_stream(
        self,
        index: str,
        vector: Sequence[float],
        *,
        total: int,
        page_size: int = DEFAULT_PAGE_SIZE,
        namespace: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        include_values: bool = False,
    ) -> AsyncIterator[Match]:
        """Lazily page through up to ``total`` matches; see :mod:`vectorlink_sdk.streaming`."""
        return query_stream(
            self,
            index,
            vector,
            total=total,
            page_size=page_size,
            namespace=namespace,
            filter=filter,
            include_values=include_values,
        )

    def fetch_stream(
        self,
        index: str,
        ids: Sequence[str],
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        namespace: Optional[str] = None,
    ) -> AsyncIterator[Vector]:
        return fetch_stream(self, index, ids, page_size=page_size, namespace=namespace)

    # ------------------------------------------------------------------ #
    # Health (bypasses middleware)
    # ------------------------------------------------------------------ #

    async def healthy(self) -> bool:
        return bool(await self._adapter.healthy())

    async def ping(self) -> Dict[str, Any]:
        result = dict(await self._adapter.ping())
        result.setdefault("backend", self.backend_name)
        return result

    async def health_check(
        self,
        *,
        index: Optional[str] = None,
        include_stats: bool = False,
        timeout: float = 5.0,
    ) -> Dict[str, Any]:
        """
        Probe the backend directly and report resilience state.

        Returns ``{healthy, backend, latency_ms, indexes?, index_stats?, pool?,
        circuits, rate_limiter?, error?}``; never raises for backend failures.
        """
        t0 = time.monotonic()
        report: Dict[str, Any] = {"backend": self.backend_name}
        try:
            indexes = await asyncio.wait_for(self._adapter.list_indexes(), timeout=timeout)
            report["indexes"] = len(indexes)
            if include_stats and index:
                report["index_stats"] = await asyncio.wait_for(self._adapter.stats(index), timeout=timeout)
            report["healthy"] = True
        except Exception as exc:  # noqa: BLE001
            report["healthy"] = False
            report["error"] = f"{type(exc).__name__}: {exc}"
            report["error_type"] = type(exc).__name__
        report["latency_ms"] = round((time.monotonic() - t0) * 1000.0, 3)
        report.update(self.resilience_stats())
        return report

    def resilience_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"circuits": self.circuit_breakers.stats()}
        if self.rate_limiter is not None:
            stats["rate_limiter"] = self.rate_limiter.stats()
        pool_stats = getattr(self._adapter, "pool_stats", None)
        if callable(pool_stats):
            pool = pool_stats()
            if pool is not None:
                stats["pool"] = pool
        return stats

    # ------------------------------------------------------------------ #
    # Batch + lifecycle
    # ------------------------------------------------------------------ #

    def batch(self, *, concurrency: Optional[int] = None, chunk_size: Optional[int] = None) -> BatchExecutor:
        return BatchExecutor(
            self,
            concurrency=self.config.concurrency if concurrency is None else concurrency,
            chunk_size=self.config.batch_size if chunk_size is None else chunk_size,
        )

    async def aclose(self) -> None:
        close = getattr(self._adapter, "close", None)
        if callable(close):
            await close()

    async def __aenter__(self) -> "VectorClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"VectorClient(backend={self.backend_name!r}, mode={self.mode!r})"


class SyncVectorClient:
    """
    Blocking facade over :class:`VectorClient` for sync call sites.

    Every method runs the corresponding coroutine through AsyncBridge.
    """

    def __init__(self, client: VectorClient, *, timeout: Optional[float] = None) -> None:
        self._client = client
        self._timeout = timeout

    @property
    def client(self) -> VectorClient:
        return self._client

    def _run(self, coro: Any) -> Any:
        return AsyncBridge.run_async(coro, timeout=self._timeout)

    def upsert(self, index: str, vectors: Sequence[Any], **kwargs: Any) -> Dict[str, Any]:
        return self._run(self._client.upsert(index, vectors, **kwargs))

    def query(self, index: str, vector: Sequence[float], **kwargs: Any) -> QueryResult:
        return self._run(self._client.query(index, vector, **kwargs))

    def fetch(self, index: str, ids: Sequence[str], **kwargs: Any) -> Dict[str, Vector]:
        return self._run(self._client.fetch(index, ids, **kwargs))

    def update(self, index: str, id: str, **kwargs: Any) -> Dict[str, Any]:
        return self._run(self._client.update(index, id, **kwargs))

    def delete(self, index: str, **kwargs: Any) -> Dict[str, Any]:
        return self._run(self._client.delete(index, **kwargs))

    def create_index(self, index: str, **kwargs: Any) -> Dict[str, Any]:
        return self._run(self._client.create_index(index, **kwargs))

    def delete_index(self, index: str) -> Dict[str, Any]:
        return self._run(self._client.delete_index(index))

    def list_indexes(self) -> List[Dict[str, Any]]:
        return self._run(self._client.list_indexes())

    def describe_index(self, index: str) -> Dict[str, Any]:
        return self._run(self._client.describe_index(index))

    def stats(self, index: str, **kwargs: Any) -> Dict[str, Any]:
        return self._run(self._client.stats(index, **kwargs))

    def query_all(self, index: str, vector: Sequence[float], **kwargs: Any) -> List[Match]:
        """Drain :meth:`VectorClient.query_stream` into a list."""
        async def collect() -> List[Match]:
            return [match async for match in self._client.query_stream(index, vector, **kwargs)]

        return self._run(collect())

    def fetch_all(self, index: str, ids: Sequence[str], **kwargs: Any) -> List[Vector]:
        async def collect() -> List[Vector]:
            return [vector async for vector in self._client.fetch_stream(index, ids, **kwargs)]

        return self._run(collect())

    def healthy(self) -> bool:
        return self._run(self._client.healthy())

    def ping(self) -> Dict[str, Any]:
        return self._run(self._client.ping())

    def health_check(self, **kwargs: Any) -> Dict[str, Any]:
        return self._run(self._client.health_check(**kwargs))

    def close(self) -> None:
        self._run(self._client.aclose())


__all__ = ["VectorClient", "SyncVectorClient"]
