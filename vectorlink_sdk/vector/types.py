# vectorlink_sdk/vector/types.py
# SPDX-License-Identifier: Apache-2.0

"""Core vector data types shared by adapters, the client and the batch executor."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional

from vectorlink_sdk.core.errors import ValidationError


@dataclass(frozen=True)
class Vector:
    """
    A vector record.

    Attributes:
        id: Unique identifier within an index/namespace
        values: Dense embedding values
        metadata: Arbitrary JSON-like attributes used for filtering
    """
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dimension(self) -> int:
        return len(self.values)

    @classmethod
    def coerce(cls, obj: Any) -> "Vector":
        """Accept a Vector or a mapping with ``id``/``values``/``metadata``."""
        if isinstance(obj, Vector):
            return obj
        if not isinstance(obj, Mapping):
            raise ValidationError(f"vector must be a Vector or mapping, got {type(obj).__name__}")
        vid = obj.get("id")
        values = obj.get("values", obj.get("vector"))
        if not isinstance(vid, str) or not vid:
            raise ValidationError("vector id must be a non-empty string")
        if not isinstance(values, (list, tuple)) or not values:
            raise ValidationError(f"vector '{vid}' must have non-empty values")
        cleaned: List[float] = []
        for v in values:
            if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
                raise ValidationError(f"vector '{vid}' values must be finite numbers")
            cleaned.append(float(v))
        metadata = obj.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise ValidationError(f"vector '{vid}' metadata must be a mapping")
        return cls(id=vid, values=cleaned, metadata=dict(metadata))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "values": list(self.values), "metadata": dict(self.metadata)}


@dataclass(frozen=True)
class Match:
    """One query hit, ordered by ``score`` (higher is more similar)."""
    id: str
    score: float
    values: Optional[List[float]] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "score": self.score}
        if self.values is not None:
            out["values"] = list(self.values)
        if self.metadata is not None:
            out["metadata"] = dict(self.metadata)
        return out


@dataclass(frozen=True)
class QueryResult:
    matches: List[Match] = field(default_factory=list)
    namespace: Optional[str] = None

    @classmethod
    def empty(cls, namespace: Optional[str] = None) -> "QueryResult":
        return cls(matches=[], namespace=namespace)

    def __iter__(self) -> Iterator[Match]:
        return iter(self.matches)

    def __len__(self) -> int:
        return len(self.matches)

    def __bool__(self) -> bool:
        return bool(self.matches)

    def ids(self) -> List[str]:
        return [m.id for m in self.matches]

    def scores(self) -> List[float]:
        return [m.score for m in self.matches]

    @property
    def max_score(self) -> Optional[float]:
        return max(self.scores()) if self.matches else None

    def above_score(self, min_score: float) -> "QueryResult":
        return QueryResult([m for m in self.matches if m.score >= min_score], self.namespace)

    def to_dict(self) -> Dict[str, Any]:
        return {"matches": [m.to_dict() for m in self.matches], "namespace": self.namespace}


__all__ = ["Vector", "Match", "QueryResult"]
