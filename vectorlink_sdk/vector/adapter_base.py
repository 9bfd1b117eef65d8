# vectorlink_sdk/vector/adapter_base.py
# SPDX-License-Identifier: Apache-2.0

"""
Backend adapter contract.

An adapter translates the uniform operation set into one storage backend's
API. The pipeline only ever sees :class:`BackendAdapter`; results and errors
come back in the shapes defined here and in ``core.errors`` regardless of
which backend served them.

:class:`BaseBackendAdapter` provides the shared behavior: argument
validation, pooled-connection handling and health probes. Implementers
override the ``_do_*`` hooks:

    class PgVectorAdapter(BaseBackendAdapter):
        name = "pgvector"

        async def _do_query(self, index, vector, *, top_k, namespace, filter,
                            include_values, include_metadata, conn):
            rows = await conn.fetch(...)
            return QueryResult([...])

    adapter = PgVectorAdapter(pool=ConnectionPool(open_connection, size=10))

When a pool is injected every ``_do_*`` call runs inside
``async with pool.connection() as conn``; otherwise ``conn`` is None.
"""

from __future__ import annotations

import contextlib
import logging
import time
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from vectorlink_sdk.core.errors import UnsupportedOperationError, ValidationError
from vectorlink_sdk.resilience.pool import ConnectionPool
from vectorlink_sdk.vector.types import QueryResult, Vector

LOG = logging.getLogger(__name__)

SUPPORTED_METRICS = ("cosine", "euclidean", "dotproduct")


@runtime_checkable
class BackendAdapter(Protocol):
    """Capability interface every storage backend must satisfy."""

    name: str

    async def upsert(self, index: str, vectors: Sequence[Any], namespace: Optional[str] = None) -> Dict[str, Any]: ...

    async def query(
        self,
        index: str,
        vector: Sequence[float],
        top_k: int = 10,
        namespace: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        include_values: bool = False,
        include_metadata: bool = True,
    ) -> QueryResult: ...

    async def fetch(self, index: str, ids: Sequence[str], namespace: Optional[str] = None) -> Dict[str, Vector]: ...

    async def update(
        self,
        index: str,
        id: str,
        metadata: Optional[Mapping[str, Any]] = None,
        values: Optional[Sequence[float]] = None,
        namespace: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    async def delete(
        self,
        index: str,
        ids: Optional[Sequence[str]] = None,
        namespace: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        delete_all: bool = False,
    ) -> Dict[str, Any]: ...

    async def create_index(self, index: str, dimension: int, metric: str = "cosine") -> Dict[str, Any]: ...

    async def delete_index(self, index: str) -> Dict[str, Any]: ...

    async def list_indexes(self) -> List[Dict[str, Any]]: ...

    async def describe_index(self, index: str) -> Dict[str, Any]: ...

    async def stats(self, index: str, namespace: Optional[str] = None) -> Dict[str, Any]: ...

    async def healthy(self) -> bool: ...

    async def ping(self) -> Dict[str, Any]: ...


class BaseBackendAdapter:
    """
    Base class for backend adapters.

    Public methods validate arguments, acquire a pooled connection when a
    pool is configured, and delegate to ``_do_<operation>``. Unimplemented
    hooks raise :class:`UnsupportedOperationError`.
    """

    name = "base"

    def __init__(self, *, pool: Optional[ConnectionPool] = None) -> None:
        self._pool = pool

    @property
    def pool(self) -> Optional[ConnectionPool]:
        return self._pool

    def pool_stats(self) -> Optional[Dict[str, Any]]:
        return self._pool.stats() if self._pool is not None else None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.shutdown()

    @contextlib.asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        if self._pool is None:
            yield None
            return
        async with self._pool.connection() as conn:
            yield conn

    # --- validation helpers ---

    @staticmethod
    def _require_index(index: Any) -> str:
        if not isinstance(index, str) or not index.strip():
            raise ValidationError("index must be a non-empty string")
        return index

    @staticmethod
    def _require_ids(ids: Any, *, field: str = "ids") -> List[str]:
        if isinstance(ids, (str, bytes)) or not isinstance(ids, Sequence) or not ids:
            raise ValidationError(f"{field} must be a non-empty list of strings")
        for vid in ids:
            if not isinstance(vid, str) or not vid:
                raise ValidationError(f"{field} must contain non-empty strings")
        return list(ids)

    @staticmethod
    def _validate_query_vector(vector: Any) -> List[float]:
        if not isinstance(vector, Sequence) or isinstance(vector, (str, bytes)) or not vector:
            raise ValidationError("query vector must be a non-empty list of numbers")
        try:
            return [float(v) for v in vector]
        except (TypeError, ValueError):
            raise ValidationError("query vector must contain only numbers") from None

    # --- public operations ---

    async def upsert(self, index: str, vectors: Sequence[Any], namespace: Optional[str] = None) -> Dict[str, Any]:
        self._require_index(index)
        if not vectors:
            raise ValidationError("vectors must not be empty")
        coerced = [Vector.coerce(v) for v in vectors]
        dims = {v.dimension for v in coerced}
        if len(dims) > 1:
            raise ValidationError(
                "all vectors in one upsert must share a dimension",
                details={"dimensions": sorted(dims)},
            )
        async with self._connection() as conn:
            return await self._do_upsert(index, coerced, namespace=namespace, conn=conn)

    async def query(
        self,
        index: str,
        vector: Sequence[float],
        top_k: int = 10,
        namespace: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        include_values: bool = False,
        include_metadata: bool = True,
    ) -> QueryResult:
        self._require_index(index)
        values = self._validate_query_vector(vector)
        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
            raise ValidationError("top_k must be a positive integer")
        if filter is not None and not isinstance(filter, Mapping):
            raise ValidationError("filter must be a mapping")
        async with self._connection() as conn:
            return await self._do_query(
                index,
                values,
                top_k=top_k,
                namespace=namespace,
                filter=filter,
                include_values=include_values,
                include_metadata=include_metadata,
                conn=conn,
            )

    async def fetch(self, index: str, ids: Sequence[str], namespace: Optional[str] = None) -> Dict[str, Vector]:
        self._require_index(index)
        ids = self._require_ids(ids)
        async with self._connection() as conn:
            return await self._do_fetch(index, ids, namespace=namespace, conn=conn)

    async def update(
        self,
        index: str,
        id: str,
        metadata: Optional[Mapping[str, Any]] = None,
        values: Optional[Sequence[float]] = None,
        namespace: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_index(index)
        if not isinstance(id, str) or not id:
            raise ValidationError("id must be a non-empty string")
        if metadata is None and values is None:
            raise ValidationError("update requires metadata or values")
        if values is not None:
            values = self._validate_query_vector(values)
        async with self._connection() as conn:
            return await self._do_update(
                index, id, metadata=dict(metadata) if metadata is not None else None,
                values=values, namespace=namespace, conn=conn,
            )

    async def delete(
        self,
        index: str,
        ids: Optional[Sequence[str]] = None,
        namespace: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        delete_all: bool = False,
    ) -> Dict[str, Any]:
        self._require_index(index)
        if not ids and not filter and not delete_all:
            raise ValidationError("delete requires ids, filter, or delete_all")
        if ids:
            ids = self._require_ids(ids)
        async with self._connection() as conn:
            return await self._do_delete(
                index, ids=list(ids or []), namespace=namespace, filter=filter,
                delete_all=bool(delete_all), conn=conn,
            )

    async def create_index(self, index: str, dimension: int, metric: str = "cosine") -> Dict[str, Any]:
        self._require_index(index)
        if isinstance(dimension, bool) or not isinstance(dimension, int) or dimension < 1:
            raise ValidationError("dimension must be a positive integer")
        if metric not in SUPPORTED_METRICS:
            raise ValidationError(
                f"unsupported metric '{metric}'",
                details={"supported": list(SUPPORTED_METRICS)},
            )
        async with self._connection() as conn:
            return await self._do_create_index(index, dimension=dimension, metric=metric, conn=conn)

    async def delete_index(self, index: str) -> Dict[str, Any]:
        self._require_index(index)
        async with self._connection() as conn:
            return await self._do_delete_index(index, conn=conn)

    async def list_indexes(self) -> List[Dict[str, Any]]:
        async with self._connection() as conn:
            return await self._do_list_indexes(conn=conn)

    async def describe_index(self, index: str) -> Dict[str, Any]:
        self._require_index(index)
        async with self._connection() as conn:
            return await self._do_describe_index(index, conn=conn)

    async def stats(self, index: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        self._require_index(index)
        async with self._connection() as conn:
            return await self._do_stats(index, namespace=namespace, conn=conn)

    # --- health ---

    async def healthy(self) -> bool:
        try:
            await self.list_indexes()
        except Exception:  # noqa: BLE001
            LOG.warning("%s health probe failed", self.name, exc_info=True)
            return False
        return True

    async def ping(self) -> Dict[str, Any]:
        t0 = time.monotonic()
        error: Optional[str] = None
        try:
            await self.list_indexes()
            healthy = True
        except Exception as exc:  # noqa: BLE001
            healthy = False
            error = f"{type(exc).__name__}: {exc}"
        result: Dict[str, Any] = {
            "healthy": healthy,
            "backend": self.name,
            "latency_ms": round((time.monotonic() - t0) * 1000.0, 3),
        }
        if error is not None:
            result["error"] = error
        return result

    # --- backend hooks ---

    async def _do_upsert(self, index: str, vectors: List[Vector], *, namespace: Optional[str], conn: Any) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.name} does not implement upsert")

    async def _do_query(
        self,
        index: str,
        vector: List[float],
        *,
        top_k: int,
        namespace: Optional[str],
        filter: Optional[Mapping[str, Any]],
        include_values: bool,
        include_metadata: bool,
        conn: Any,
    ) -> QueryResult:
        raise UnsupportedOperationError(f"{self.name} does not implement query")

    async def _do_fetch(self, index: str, ids: List[str], *, namespace: Optional[str], conn: Any) -> Dict[str, Vector]:
        raise UnsupportedOperationError(f"{self.name} does not implement fetch")

    async def _do_update(
        self,
        index: str,
        id: str,
        *,
        metadata: Optional[Dict[str, Any]],
        values: Optional[List[float]],
        namespace: Optional[str],
        conn: Any,
    ) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.name} does not implement update")

    async def _do_delete(
        self,
        index: str,
        *,
        ids: List[str],
        namespace: Optional[str],
        filter: Optional[Mapping[str, Any]],
        delete_all: bool,
        conn: Any,
    ) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.name} does not implement delete")

    async def _do_create_index(self, index: str, *, dimension: int, metric: str, conn: Any) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.name} does not implement create_index")

    async def _do_delete_index(self, index: str, *, conn: Any) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.name} does not implement delete_index")

    async def _do_list_indexes(self, *, conn: Any) -> List[Dict[str, Any]]:
        raise UnsupportedOperationError(f"{self.name} does not implement list_indexes")

    async def _do_describe_index(self, index: str, *, conn: Any) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.name} does not implement describe_index")

    async def _do_stats(self, index: str, *, namespace: Optional[str], conn: Any) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.name} does not implement stats")


__all__ = ["BackendAdapter", "BaseBackendAdapter", "SUPPORTED_METRICS"]
