# vectorlink_sdk/middleware/stack.py
# SPDX-License-Identifier: Apache-2.0

"""
Middleware pipeline.

:class:`MiddlewareStack` composes an ordered list of units around a backend
adapter once, at construction time. For units ``[A, B]`` a call runs:

    A.before -> B.before -> adapter -> B.after -> A.after

and, when the adapter raises:

    A.before -> B.before -> adapter! -> B.on_error -> A.on_error -> raise

Each hook runs exactly once per call. The stack has no retry logic of its own;
retry, circuit breaking and rate limiting are ordinary units, so their
position in the list decides how they layer.

With ``timeout`` set, each backend call is bounded by it and an expired call
raises :class:`BackendTimeoutError` (retryable, breaker-monitored). Waiting
for a pooled connection happens inside that call, but the pool raises its own
:class:`PoolTimeoutError` when its shorter wait runs out.

:class:`PipelineBuilder` assembles the list fluently:

    stack = (
        PipelineBuilder()
        .use(RequestIdMiddleware())
        .use(LoggingMiddleware())
        .use(RetryMiddleware(RetryPolicy()))
        .build(adapter)
    )
    result = await stack.call(OperationKind.QUERY, index="docs", vector=[...], top_k=5)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from vectorlink_sdk.core.error_context import attach_context
from vectorlink_sdk.core.errors import BackendTimeoutError, ConfigurationError, UnsupportedOperationError
from vectorlink_sdk.core.operations import OperationKind, OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware, NextCall

LOG = logging.getLogger(__name__)


class MiddlewareStack:
    def __init__(
        self,
        adapter: Any,
        middlewares: Iterable[Middleware] = (),
        *,
        timeout: Optional[float] = None,
    ) -> None:
        if timeout is not None and timeout <= 0:
            raise ConfigurationError("timeout must be positive when set")
        self._adapter = adapter
        self.timeout = timeout
        self._middlewares: Tuple[Middleware, ...] = tuple(middlewares)
        for unit in self._middlewares:
            if not callable(getattr(unit, "call", None)):
                raise TypeError(f"middleware {unit!r} does not implement call(request, call_next)")
        self._chain: NextCall = self._build_chain()

    @property
    def adapter(self) -> Any:
        return self._adapter

    @property
    def middlewares(self) -> Tuple[Middleware, ...]:
        return self._middlewares

    @property
    def backend_name(self) -> str:
        return str(getattr(self._adapter, "name", type(self._adapter).__name__))

    def _build_chain(self) -> NextCall:
        chain: NextCall = self._dispatch_to_adapter
        # Wrap innermost first so the first registered unit ends up outermost.
        for unit in reversed(self._middlewares):
            chain = _bind(unit, chain)
        return chain

    async def _dispatch_to_adapter(self, request: OperationRequest) -> OperationResponse:
        method = getattr(self._adapter, request.kind.value, None)
        if method is None:
            raise UnsupportedOperationError(
                f"backend '{self.backend_name}' does not support '{request.kind.value}'",
                details={"operation": request.kind.value, "backend": self.backend_name},
            )
        t0 = time.monotonic()
        try:
            result = await self._await_backend(method(**request.adapter_kwargs()), request)
        except Exception as exc:
            attach_context(
                exc,
                "pipeline",
                operation=request.kind.value,
                index=request.index,
                backend=self.backend_name,
                request_id=request.metadata.get("request_id"),
            )
            raise
        return OperationResponse(
            result=result,
            metadata={"duration_ms": round((time.monotonic() - t0) * 1000.0, 3)},
        )

    async def _await_backend(self, pending: Any, request: OperationRequest) -> Any:
        if self.timeout is None:
            return await pending
        try:
            return await asyncio.wait_for(pending, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise BackendTimeoutError(
                f"backend '{self.backend_name}' did not answer '{request.kind.value}' within {self.timeout}s",
                details={"operation": request.kind.value, "timeout": self.timeout},
                original_error=exc,
            ) from exc

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def build_request(
        self,
        kind: Any,
        *,
        index: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        **params: Any,
    ) -> OperationRequest:
        return OperationRequest(
            kind=OperationKind.parse(kind),
            index=index,
            backend=self.backend_name,
            payload=dict(params),
            metadata=dict(metadata or {}),
        )

    async def dispatch(self, request: OperationRequest) -> OperationResponse:
        return await self._chain(request)

    async def execute(
        self,
        kind: Any,
        *,
        index: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        **params: Any,
    ) -> OperationResponse:
        """Run one operation and return the full response (result + metadata)."""
        request = self.build_request(kind, index=index, metadata=metadata, **params)
        return await self.dispatch(request)

    async def call(
        self,
        kind: Any,
        *,
        index: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        **params: Any,
    ) -> Any:
        """Run one operation and return its result payload."""
        response = await self.execute(kind, index=index, metadata=metadata, **params)
        return response.result

    def __repr__(self) -> str:
        names = ", ".join(unit.name for unit in self._middlewares)
        return f"MiddlewareStack(backend={self.backend_name!r}, middlewares=[{names}])"


def _bind(unit: Middleware, call_next: NextCall) -> NextCall:
    async def _call(request: OperationRequest) -> OperationResponse:
        return await unit.call(request, call_next)

    return _call


class PipelineBuilder:
    """Collects units in order and builds a :class:`MiddlewareStack`."""

    def __init__(self, middlewares: Sequence[Middleware] = ()) -> None:
        self._middlewares: List[Middleware] = list(middlewares)

    def use(self, unit: Optional[Middleware]) -> "PipelineBuilder":
        if unit is not None:
            self._middlewares.append(unit)
        return self

    def use_all(self, units: Iterable[Optional[Middleware]]) -> "PipelineBuilder":
        for unit in units:
            self.use(unit)
        return self

    @property
    def middlewares(self) -> List[Middleware]:
        return list(self._middlewares)

    def build(self, adapter: Any, *, timeout: Optional[float] = None) -> MiddlewareStack:
        return MiddlewareStack(adapter, self._middlewares, timeout=timeout)


__all__ = ["MiddlewareStack", "PipelineBuilder"]
