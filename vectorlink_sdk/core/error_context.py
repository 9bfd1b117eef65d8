# vectorlink_sdk/core/error_context.py
# SPDX-License-Identifier: Apache-2.0

"""
Attach debugging context to exceptions as they propagate.

The pipeline records which operation, index, backend and request id an error
belongs to; the batch executor adds the chunk number. The context lives on the
exception as attributes, so the original type, message and traceback reach the
caller unchanged:

    try:
        await client.upsert("docs", vectors)
    except VectorClientError as exc:
        ctx = get_context(exc)
        LOG.error("upsert failed", extra={"operation": ctx.get("operation"),
                                          "request_id": ctx.get("request_id")})

Two attributes are set: ``__vectorlink_context__`` (canonical) and
``__<component>_context__`` for the layer that attached it. Repeated calls
merge; the first ``component`` recorded wins. Attaching context never raises.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping

logger = logging.getLogger(__name__)

_CANONICAL_ATTR = "__vectorlink_context__"


def attach_context(exc: BaseException, component: str, **context: Any) -> None:
    """
    Merge ``context`` into the context stored on ``exc``.

    Parameters
    ----------
    exc:
        Any exception, SDK or not.
    component:
        Origin of this context, e.g. "pipeline" or "batch". Stored under the
        ``component`` key and used for the component-specific attribute.
    **context:
        Small, PII-free values (operation, index, request_id, chunk, ...).
    """
    try:
        merged: MutableMapping[str, Any] = {}
        existing = getattr(exc, _CANONICAL_ATTR, None)
        if isinstance(existing, Mapping):
            merged.update(existing)
        merged.setdefault("component", component)
        merged.update(context)
        setattr(exc, _CANONICAL_ATTR, merged)
        setattr(exc, f"__{component}_context__", merged)
    except Exception as attachment_error:  # noqa: BLE001
        # Some exception types reject attribute assignment; propagation matters more.
        logger.debug(
            "Failed to attach error context to %s: %s",
            type(exc).__name__,
            attachment_error,
        )


def get_context(exc: BaseException, *, component: str = "") -> Mapping[str, Any]:
    """Return the attached context (component-specific first), or an empty dict."""
    if component:
        ctx = getattr(exc, f"__{component}_context__", None)
        if isinstance(ctx, Mapping):
            return ctx
    ctx = getattr(exc, _CANONICAL_ATTR, None)
    if isinstance(ctx, Mapping):
        return ctx
    return {}


def has_context(exc: BaseException) -> bool:
    return bool(get_context(exc))


__all__ = ["attach_context", "get_context", "has_context"]
