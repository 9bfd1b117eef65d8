# vectorlink_sdk/core/metrics.py
# SPDX-License-Identifier: Apache-2.0

"""
Metrics interface (low-cardinality, PII-free).

Sinks receive the operation name, duration, outcome and error code. Index
names, ids and payload contents are never passed to a sink.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class MetricsSink(Protocol):
    """Protocol for metrics collection implementations."""

    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Record operation timing and status."""
        ...

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Increment a counter metric."""
        ...


class NoopMetrics:
    """No-operation metrics sink for testing or when metrics are disabled."""
    def observe(self, **_: Any) -> None: ...
    def counter(self, **_: Any) -> None: ...


__all__ = ["MetricsSink", "NoopMetrics"]
