# vectorlink_sdk/vector/memory_adapter.py
# SPDX-License-Identifier: Apache-2.0

"""
In-process reference backend.

Keeps vectors in dicts keyed by index and namespace and scores queries by
brute force. It exists so the pipeline, resilience units and batch executor
can run end to end without a database; it is not meant for real workloads.

Behavior worth knowing:
- an index is created implicitly on first upsert, with the dimension of the
  first vector and the cosine metric;
- ``update`` merges metadata and raises NotFoundError for unknown ids;
- ``describe_index``/``stats``/``delete_index`` raise NotFoundError for
  unknown indexes, ``query`` on an unknown index returns no matches;
- filters support plain equality plus ``$eq $ne $gt $gte $lt $lte $in $nin``;
  a list value means membership.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from vectorlink_sdk.core.errors import NotFoundError, ValidationError
from vectorlink_sdk.vector.adapter_base import BaseBackendAdapter
from vectorlink_sdk.vector.types import Match, QueryResult, Vector

DEFAULT_NAMESPACE = ""


def _cosine_sim(a: List[float], b: List[float]) -> float:
    num = sum(x * y for x, y in zip(a, b))
    den_a = math.sqrt(sum(x * x for x in a)) or 1.0
    den_b = math.sqrt(sum(y * y for y in b)) or 1.0
    return num / (den_a * den_b)


def _euclidean(a: List[float], b: List[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def _dot(a: List[float], b: List[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _score(metric: str, a: List[float], b: List[float]) -> float:
    if metric == "euclidean":
        return 1.0 / (1.0 + _euclidean(a, b))
    if metric == "dotproduct":
        return _dot(a, b)
    return _cosine_sim(a, b)


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "$eq":
        return actual == expected
    if op == "$ne":
        return actual != expected
    if op == "$in":
        return actual in expected
    if op == "$nin":
        return actual not in expected
    if actual is None:
        return False
    try:
        if op == "$gt":
            return actual > expected
        if op == "$gte":
            return actual >= expected
        if op == "$lt":
            return actual < expected
        if op == "$lte":
            return actual <= expected
    except TypeError:
        return False
    raise ValidationError(f"unsupported filter operator '{op}'")


def filter_matches(metadata: Optional[Mapping[str, Any]], flt: Optional[Mapping[str, Any]]) -> bool:
    """True if ``metadata`` satisfies every condition in ``flt``."""
    if not flt:
        return True
    metadata = metadata or {}
    for key, condition in flt.items():
        actual = metadata.get(key)
        if isinstance(condition, Mapping):
            for op, expected in condition.items():
                if not _compare(op, actual, expected):
                    return False
        elif isinstance(condition, list):
            if actual not in condition:
                return False
        elif actual != condition:
            return False
    return True


@dataclass
class _Index:
    dimension: int
    metric: str = "cosine"
    namespaces: Dict[str, Dict[str, Vector]] = field(default_factory=dict)

    def bucket(self, namespace: Optional[str]) -> Dict[str, Vector]:
        return self.namespaces.setdefault(namespace or DEFAULT_NAMESPACE, {})

    def count(self) -> int:
        return sum(len(b) for b in self.namespaces.values())


class InMemoryBackendAdapter(BaseBackendAdapter):
    """
    Args:
        latency: Seconds slept per call, to make concurrency observable in tests
        pool: Optional ConnectionPool (connections are not used by this backend)
    """

    name = "memory"

    def __init__(self, *, latency: float = 0.0, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.latency = latency
        self._indexes: Dict[str, _Index] = {}

    async def _tick(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def _get_index(self, index: str) -> _Index:
        idx = self._indexes.get(index)
        if idx is None:
            raise NotFoundError(f"index '{index}' not found", details={"index": index})
        return idx

    def clear(self) -> None:
        self._indexes.clear()

    # --- data plane ---

    async def _do_upsert(self, index, vectors, *, namespace, conn):
        await self._tick()
        idx = self._indexes.get(index)
        if idx is None:
            idx = self._indexes[index] = _Index(dimension=vectors[0].dimension)
        if vectors[0].dimension != idx.dimension:
            raise ValidationError(
                f"dimension {vectors[0].dimension} does not match index dimension {idx.dimension}",
                details={"expected": idx.dimension, "actual": vectors[0].dimension},
            )
        bucket = idx.bucket(namespace)
        for v in vectors:
            bucket[v.id] = v
        return {"upserted_count": len(vectors)}

    async def _do_query(self, index, vector, *, top_k, namespace, filter, include_values, include_metadata, conn):
        await self._tick()
        idx = self._indexes.get(index)
        if idx is None:
            return QueryResult.empty(namespace)
        if len(vector) != idx.dimension:
            raise ValidationError(
                f"query dimension {len(vector)} does not match index dimension {idx.dimension}",
                details={"expected": idx.dimension, "actual": len(vector)},
            )
        bucket = idx.bucket(namespace)
        scored = [
            (_score(idx.metric, vector, v.values), v)
            for v in bucket.values()
            if filter_matches(v.metadata, filter)
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        matches = [
            Match(
                id=v.id,
                score=float(score),
                values=list(v.values) if include_values else None,
                metadata=dict(v.metadata) if include_metadata else None,
            )
            for score, v in scored[:top_k]
        ]
        return QueryResult(matches=matches, namespace=namespace)

    async def _do_fetch(self, index, ids, *, namespace, conn):
        await self._tick()
        idx = self._indexes.get(index)
        if idx is None:
            return {}
        bucket = idx.bucket(namespace)
        return {vid: bucket[vid] for vid in ids if vid in bucket}

    async def _do_update(self, index, id, *, metadata, values, namespace, conn):
        await self._tick()
        bucket = self._get_index(index).bucket(namespace)
        current = bucket.get(id)
        if current is None:
            raise NotFoundError(f"vector '{id}' not found in index '{index}'", details={"id": id})
        merged = dict(current.metadata)
        if metadata:
            merged.update(metadata)
        bucket[id] = Vector(id=id, values=list(values) if values is not None else current.values, metadata=merged)
        return {"updated": True}

    async def _do_delete(self, index, *, ids, namespace, filter, delete_all, conn):
        await self._tick()
        idx = self._indexes.get(index)
        if idx is None:
            return {"deleted": True}
        bucket = idx.bucket(namespace)
        if delete_all:
            bucket.clear()
        else:
            for vid in ids:
                bucket.pop(vid, None)
            if filter:
                for vid in [vid for vid, v in bucket.items() if filter_matches(v.metadata, filter)]:
                    del bucket[vid]
        return {"deleted": True}

    # --- control plane ---

    async def _do_create_index(self, index, *, dimension, metric, conn):
        await self._tick()
        if index in self._indexes:
            raise ValidationError(f"index '{index}' already exists", details={"index": index})
        self._indexes[index] = _Index(dimension=dimension, metric=metric)
        return {"created": True, "name": index, "dimension": dimension, "metric": metric}

    async def _do_delete_index(self, index, *, conn):
        await self._tick()
        self._get_index(index)
        del self._indexes[index]
        return {"deleted": True, "name": index}

    async def _do_list_indexes(self, *, conn):
        await self._tick()
        return [
            {"name": name, "dimension": idx.dimension, "metric": idx.metric}
            for name, idx in sorted(self._indexes.items())
        ]

    async def _do_describe_index(self, index, *, conn):
        await self._tick()
        idx = self._get_index(index)
        return {
            "name": index,
            "dimension": idx.dimension,
            "metric": idx.metric,
            "vector_count": idx.count(),
            "status": "ready",
        }

    async def _do_stats(self, index, *, namespace, conn):
        await self._tick()
        idx = self._get_index(index)
        namespaces = {
            (ns or DEFAULT_NAMESPACE): {"vector_count": len(bucket)}
            for ns, bucket in idx.namespaces.items()
        }
        if namespace is not None:
            namespaces = {namespace: namespaces.get(namespace, {"vector_count": 0})}
        return {
            "total_vector_count": idx.count(),
            "dimension": idx.dimension,
            "namespaces": namespaces,
        }


__all__ = ["InMemoryBackendAdapter", "filter_matches"]
