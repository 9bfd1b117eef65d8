# vectorlink_sdk/wire.py
# SPDX-License-Identifier: Apache-2.0

"""
Canonical JSON envelope handler.

Exposes a :class:`VectorClient` over a transport-agnostic envelope contract:

    {"op": "vector.query", "ctx": {"request_id": "..."}, "args": {...}}

Success:

    {"ok": true, "code": "OK", "ms": 1.2, "result": {...}, "meta": {...}}

Failure:

    {"ok": false, "code": "RATE_LIMITED", "error": "RateLimitError",
     "message": "...", "retry_after_ms": 250, "details": {...}, "ms": 0.4}

``ctx`` becomes the request metadata, so a caller-supplied ``request_id``
is propagated. Plug :meth:`WireVectorHandler.handle` into HTTP, gRPC or a
queue consumer; the handler itself never raises.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
import time
from typing import Any, Dict, Mapping

from vectorlink_sdk.core.errors import (
    UnsupportedOperationError,
    ValidationError,
    VectorClientError,
    error_code,
)
from vectorlink_sdk.core.operations import OperationKind

LOG = logging.getLogger(__name__)

OP_PREFIX = "vector."

# Metadata keys that stay server-side.
_PRIVATE_META_PREFIX = "_"


def _to_wire(value: Any) -> Any:
    """Convert results (dataclasses, nested containers) to JSON-safe values."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Mapping):
        return {str(k): _to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_wire(v) for v in value]
    return value


def error_to_wire(e: BaseException, ms: float) -> Dict[str, Any]:
    """Map an exception to the canonical error envelope."""
    if isinstance(e, VectorClientError):
        payload = e.asdict()
        return {
            "ok": False,
            "code": payload["code"],
            "error": type(e).__name__,
            "message": payload["message"],
            "retry_after_ms": payload["retry_after_ms"],
            "details": payload["details"] or None,
            "ms": ms,
        }
    return {
        "ok": False,
        "code": error_code(e),
        "error": type(e).__name__,
        "message": str(e) or "internal error",
        "retry_after_ms": None,
        "details": None,
        "ms": ms,
    }


def success_to_wire(result: Any, meta: Mapping[str, Any], ms: float) -> Dict[str, Any]:
    return {
        "ok": True,
        "code": "OK",
        "ms": ms,
        "result": _to_wire(result),
        "meta": {k: _to_wire(v) for k, v in meta.items() if not k.startswith(_PRIVATE_META_PREFIX)},
    }


class WireVectorHandler:
    """Envelope-level front end for a VectorClient."""

    def __init__(self, client: Any) -> None:
        self._client = client

    async def handle(self, envelope: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Handle one request envelope and return a response envelope.

        Expects:
            op: "vector.<operation>" (or "vector.ping" / "vector.health")
            ctx: {...} optional, copied into request metadata
            args: {...} operation arguments, ``index`` included
        """
        t0 = time.monotonic()
        try:
            op = envelope.get("op")
            if not isinstance(op, str) or not op.startswith(OP_PREFIX):
                raise ValidationError("missing or invalid 'op'")
            name = op[len(OP_PREFIX):]

            ctx = envelope.get("ctx") or {}
            args = envelope.get("args") or {}
            if not isinstance(ctx, Mapping) or not isinstance(args, Mapping):
                raise ValidationError("'ctx' and 'args' must be objects")

            if name == "ping":
                res = await self._client.ping()
                return success_to_wire(res, {}, (time.monotonic() - t0) * 1000.0)
            if name == "health":
                res = await self._client.health_check()
                return success_to_wire(res, {}, (time.monotonic() - t0) * 1000.0)

            try:
                kind = OperationKind(name)
            except ValueError:
                raise UnsupportedOperationError(f"unknown operation '{op}'") from None

            params = dict(args)
            index = params.pop("index", None)
            self._check_arguments(kind, index, params)
            response = await self._client.execute(kind, index=index, metadata=dict(ctx), **params)
            return success_to_wire(response.result, response.metadata, (time.monotonic() - t0) * 1000.0)

        except Exception as e:  # noqa: BLE001
            ms = (time.monotonic() - t0) * 1000.0
            if not isinstance(e, VectorClientError):
                LOG.exception("unexpected error handling %s", envelope.get("op"))
            return error_to_wire(e, ms)

    def _check_arguments(self, kind: OperationKind, index: Any, params: Mapping[str, Any]) -> None:
        """Reject envelope args the adapter method does not accept."""
        adapter = getattr(self._client, "adapter", None)
        method = getattr(adapter, kind.value, None)
        if method is None:
            return
        try:
            signature = inspect.signature(method)
        except (TypeError, ValueError):
            # no introspectable signature; the call itself decides
            return
        kwargs = dict(params)
        if kind.targets_index:
            kwargs["index"] = index
        try:
            signature.bind(**kwargs)
        except TypeError as e:
            raise ValidationError(
                f"invalid arguments for '{kind.value}': {e}",
                details={"operation": kind.value, "args": sorted(params)},
            ) from None


__all__ = ["WireVectorHandler", "error_to_wire", "success_to_wire"]
