# vectorlink_sdk/middleware/cost_tracker.py
# SPDX-License-Identifier: Apache-2.0

"""
Approximate per-operation cost accounting.

After each successful, non-simulated call the unit multiplies the backend's
per-unit read or write price by the number of items touched and records it as
``cost_usd`` in the response metadata. Prices are rough defaults meant to be
overridden with real contract pricing.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional

from vectorlink_sdk.core.operations import OperationKind, OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware

LOG = logging.getLogger(__name__)

#: USD per item, keyed by backend name.
DEFAULT_PRICING: Dict[str, Dict[str, float]] = {
    "pinecone": {"read": 0.000008, "write": 0.000002},
    "qdrant": {"read": 0.000005, "write": 0.000001},
    "weaviate": {"read": 0.000006, "write": 0.0000015},
    "pgvector": {"read": 0.0, "write": 0.0},
    "memory": {"read": 0.0, "write": 0.0},
}

#: Multiplier used for delete_all, whose size is unknown up front.
DELETE_ALL_UNITS = 100


def item_units(request: OperationRequest) -> int:
    payload = request.payload
    kind = request.kind
    if kind is OperationKind.UPSERT:
        return max(1, len(payload.get("vectors") or []))
    if kind is OperationKind.DELETE and payload.get("delete_all"):
        return DELETE_ALL_UNITS
    if kind in (OperationKind.FETCH, OperationKind.DELETE):
        return max(1, len(payload.get("ids") or []))
    return 1


class CostTrackerMiddleware(Middleware):
    def __init__(
        self,
        pricing: Optional[Mapping[str, Mapping[str, float]]] = None,
        *,
        on_cost: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        self.pricing = {k: dict(v) for k, v in (pricing or DEFAULT_PRICING).items()}
        self._on_cost = on_cost
        self._lock = threading.Lock()
        self._total = 0.0

    @property
    def total_cost(self) -> float:
        with self._lock:
            return self._total

    def reset(self) -> None:
        with self._lock:
            self._total = 0.0

    def after(self, request: OperationRequest, response: OperationResponse) -> None:
        if response.metadata.get("dry_run"):
            return
        rates = self.pricing.get(request.backend)
        if rates is None:
            return
        rate = rates.get("write" if request.is_mutating else "read", 0.0)
        units = item_units(request)
        cost = rate * units
        response.metadata["cost_usd"] = cost
        with self._lock:
            self._total += cost
        if self._on_cost is not None:
            try:
                self._on_cost(
                    {
                        "operation": request.kind.value,
                        "backend": request.backend,
                        "index": request.index,
                        "units": units,
                        "cost_usd": cost,
                    }
                )
            except Exception:  # noqa: BLE001
                LOG.warning("on_cost callback raised", exc_info=True)


__all__ = ["CostTrackerMiddleware", "DEFAULT_PRICING", "DELETE_ALL_UNITS", "item_units"]
