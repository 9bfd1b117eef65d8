# vectorlink_sdk/core/operations.py
# SPDX-License-Identifier: Apache-2.0

"""
Operation envelope passed through the middleware pipeline.

A request is created once per call and flows inward; a response is produced
either by the backend adapter or by a unit that short-circuits, and flows back
out accumulating metadata.

The operation kind, target index and backend name of a request are fixed at
construction. ``payload`` and ``metadata`` are plain dicts that units may add
to (request ids, timings, dry-run flags) or rewrite (PII redaction).
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from vectorlink_sdk.core.errors import UnsupportedOperationError


class OperationKind(str, enum.Enum):
    UPSERT = "upsert"
    QUERY = "query"
    FETCH = "fetch"
    UPDATE = "update"
    DELETE = "delete"
    CREATE_INDEX = "create_index"
    DELETE_INDEX = "delete_index"
    LIST_INDEXES = "list_indexes"
    DESCRIBE_INDEX = "describe_index"
    STATS = "stats"

    @property
    def is_mutating(self) -> bool:
        return self in _MUTATING

    @property
    def is_read(self) -> bool:
        return not self.is_mutating

    @property
    def targets_index(self) -> bool:
        """False only for operations that are not scoped to one index."""
        return self is not OperationKind.LIST_INDEXES

    @classmethod
    def parse(cls, value: Any) -> "OperationKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise UnsupportedOperationError(
                f"unknown operation '{value}'",
                details={"operation": str(value)},
            ) from None


_MUTATING = frozenset(
    {
        OperationKind.UPSERT,
        OperationKind.UPDATE,
        OperationKind.DELETE,
        OperationKind.CREATE_INDEX,
        OperationKind.DELETE_INDEX,
    }
)


@dataclass(frozen=True)
class OperationRequest:
    """
    One logical call routed through the pipeline.

    Attributes:
        kind: Operation being performed (immutable)
        index: Target index/collection name, None for list_indexes (immutable)
        backend: Name of the adapter that will serve the call (immutable)
        payload: Operation-specific arguments (vectors, ids, filter, top_k, ...)
        metadata: Annotations added by callers and middleware
        created_at: Epoch seconds at construction
    """

    kind: OperationKind
    index: Optional[str] = None
    backend: str = "unknown"
    payload: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    @property
    def namespace(self) -> Optional[str]:
        return self.payload.get("namespace")

    @property
    def is_mutating(self) -> bool:
        return self.kind.is_mutating

    @property
    def is_read(self) -> bool:
        return self.kind.is_read

    def adapter_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the adapter method named after ``kind``."""
        kwargs = dict(self.payload)
        if self.kind.targets_index:
            kwargs["index"] = self.index
        return kwargs


@dataclass
class OperationResponse:
    result: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def merge_metadata(self, **items: Any) -> "OperationResponse":
        self.metadata.update(items)
        return self


__all__ = [
    "OperationKind",
    "OperationRequest",
    "OperationResponse",
]
