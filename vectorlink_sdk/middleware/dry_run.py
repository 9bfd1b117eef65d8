# vectorlink_sdk/middleware/dry_run.py
# SPDX-License-Identifier: Apache-2.0

"""
Dry-run mode.

Mutating operations (upsert, update, delete, create_index, delete_index)
never reach the backend. Instead the unit returns a simulated result whose
metadata carries ``dry_run: True`` and a ``plan`` describing what would have
happened:

    response = await stack.execute("upsert", index="docs", vectors=vectors)
    response.metadata["plan"]
    # {"operation": "upsert", "index": "docs", "namespace": None,
    #  "vector_count": 3, "vector_ids": ["a", "b", "c"]}

Read operations pass through untouched and get no dry-run metadata.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, Optional

from vectorlink_sdk.core.operations import OperationKind, OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware, NextCall

LOG = logging.getLogger(__name__)

#: Cap on ids listed in a plan; ``vector_count`` always has the full size.
MAX_PLAN_IDS = 100


def _vector_id(vector: Any) -> Optional[str]:
    if isinstance(vector, dict):
        return vector.get("id")
    return getattr(vector, "id", None)


def build_plan(request: OperationRequest) -> Dict[str, Any]:
    """Describe what ``request`` would do, without doing it."""
    payload = request.payload
    plan: Dict[str, Any] = {
        "operation": request.kind.value,
        "index": request.index,
        "namespace": request.namespace,
    }
    kind = request.kind
    if kind is OperationKind.UPSERT:
        vectors = list(payload.get("vectors") or [])
        plan["vector_count"] = len(vectors)
        plan["vector_ids"] = [_vector_id(v) for v in vectors[:MAX_PLAN_IDS]]
    elif kind is OperationKind.DELETE:
        if payload.get("delete_all"):
            plan["delete_all"] = True
        else:
            plan["id_count"] = len(payload.get("ids") or [])
        if payload.get("filter"):
            plan["filter"] = payload["filter"]
    elif kind is OperationKind.UPDATE:
        plan["id"] = payload.get("id")
        plan["has_metadata"] = payload.get("metadata") is not None
        plan["has_values"] = payload.get("values") is not None
    elif kind is OperationKind.CREATE_INDEX:
        plan["name"] = request.index
        plan["dimension"] = payload.get("dimension")
        plan["metric"] = payload.get("metric", "cosine")
    elif kind is OperationKind.DELETE_INDEX:
        plan["name"] = request.index
    return plan


def simulated_result(request: OperationRequest) -> Dict[str, Any]:
    payload = request.payload
    kind = request.kind
    if kind is OperationKind.UPSERT:
        return {"upserted_count": len(payload.get("vectors") or []), "dry_run": True}
    if kind is OperationKind.DELETE:
        return {"deleted": True, "dry_run": True}
    if kind is OperationKind.UPDATE:
        return {"updated": True, "dry_run": True}
    if kind is OperationKind.CREATE_INDEX:
        return {"created": True, "name": request.index, "dry_run": True}
    return {"deleted": True, "name": request.index, "dry_run": True}


def default_formatter(plan: Dict[str, Any]) -> str:
    details = ", ".join(f"{k}={v}" for k, v in plan.items() if k not in ("operation", "vector_ids"))
    return f"[DRY RUN] would {plan['operation']}: {details}"


class DryRunMiddleware(Middleware):
    """
    Args:
        enabled: Toggle without rebuilding the pipeline
        logger: Where plan lines are written (INFO)
        formatter: plan -> log line
        on_dry_run: Callback (plan, request) invoked for every intercepted call
    """

    def __init__(
        self,
        enabled: bool = True,
        *,
        logger: Optional[logging.Logger] = None,
        formatter: Callable[[Dict[str, Any]], str] = default_formatter,
        on_dry_run: Optional[Callable[[Dict[str, Any], OperationRequest], Any]] = None,
    ) -> None:
        self.enabled = enabled
        self._log = logger or LOG
        self._formatter = formatter
        self._on_dry_run = on_dry_run

    async def call(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        if not self.enabled or not request.is_mutating:
            return await call_next(request)

        plan = build_plan(request)
        request.metadata["dry_run"] = True
        self._log.info(self._formatter(plan))
        if self._on_dry_run is not None:
            try:
                maybe = self._on_dry_run(plan, request)
                if inspect.isawaitable(maybe):
                    await maybe
            except Exception:  # noqa: BLE001
                LOG.warning("on_dry_run callback raised", exc_info=True)
        return OperationResponse(
            result=simulated_result(request),
            metadata={"dry_run": True, "plan": plan},
        )


__all__ = ["DryRunMiddleware", "build_plan", "default_formatter", "MAX_PLAN_IDS"]
