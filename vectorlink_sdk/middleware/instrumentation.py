# vectorlink_sdk/middleware/instrumentation.py
# SPDX-License-Identifier: Apache-2.0

"""
Metrics emission for every operation.

Reports ``observe(component="vector", op=<kind>, ms, ok, code)`` to a
:class:`MetricsSink` and bumps an ``errors`` counter on failure. Only
low-cardinality fields are sent: index names, ids and payloads stay out.
A misbehaving sink never fails the operation.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from vectorlink_sdk.core.errors import error_code
from vectorlink_sdk.core.metrics import MetricsSink, NoopMetrics
from vectorlink_sdk.core.operations import OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware, NextCall

LOG = logging.getLogger(__name__)


class InstrumentationMiddleware(Middleware):
    component = "vector"

    def __init__(self, metrics: Optional[MetricsSink] = None) -> None:
        self._metrics: MetricsSink = metrics or NoopMetrics()

    async def call(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        t0 = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as exc:
            self._observe(request, t0, ok=False, code=error_code(exc))
            self._count("errors", {"op": request.kind.value, "code": error_code(exc)})
            raise
        extra: Dict[str, Any] = {"backend": request.backend}
        if response.metadata.get("dry_run"):
            extra["dry_run"] = True
        self._observe(request, t0, ok=True, code="OK", extra=extra)
        return response

    def _observe(
        self,
        request: OperationRequest,
        t0: float,
        *,
        ok: bool,
        code: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            self._metrics.observe(
                component=self.component,
                op=request.kind.value,
                ms=(time.monotonic() - t0) * 1000.0,
                ok=ok,
                code=code,
                extra=extra or {"backend": request.backend},
            )
        except Exception:  # noqa: BLE001
            LOG.debug("metrics sink observe() raised", exc_info=True)

    def _count(self, name: str, extra: Dict[str, Any]) -> None:
        try:
            self._metrics.counter(component=self.component, name=name, value=1, extra=extra)
        except Exception:  # noqa: BLE001
            LOG.debug("metrics sink counter() raised", exc_info=True)


__all__ = ["InstrumentationMiddleware"]
