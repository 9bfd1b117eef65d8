# vectorlink_sdk/middleware/cache.py
# SPDX-License-Identifier: Apache-2.0

"""
Read-through cache for query and fetch results.

:class:`InMemoryTTLCache` is a per-process store with a TTL and a size cap;
every access goes through one ``threading.Lock``. :class:`CacheMiddleware`
puts it in front of the backend:

- ``query`` results are cached whole, keyed by a hash of the index, vector,
  top_k, namespace, filter and include flags.
- ``fetch`` results are cached per id; only ids missing from the cache reach
  the backend.
- Any mutating operation on an index drops every entry for that index once
  the call returns, successful or not.

    cache = InMemoryTTLCache(ttl=300, max_size=1000)
    client = VectorClient(adapter, middleware=[CacheMiddleware(cache)])

Responses served from the cache carry ``metadata["cache"] == "hit"``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

from vectorlink_sdk.core.errors import ConfigurationError
from vectorlink_sdk.core.operations import OperationKind, OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware, NextCall

LOG = logging.getLogger(__name__)

DEFAULT_TTL = 300.0
DEFAULT_MAX_SIZE = 1000


class InMemoryTTLCache:
    """
    TTL cache with a size cap; per-process only.

    Expired entries are dropped on read. When full, the oldest entries are
    evicted first (about 10% of ``max_size`` at a time).
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ConfigurationError("cache ttl must be positive")
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 1:
            raise ConfigurationError("cache max_size must be a positive integer")
        self.ttl = float(ttl)
        self.max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (stored_at, value), oldest first
        self._store: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                self.misses += 1
                return None
            stored_at, value = item
            if self._expired(stored_at):
                del self._store[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: Any) -> Any:
        with self._lock:
            self._store.pop(key, None)
            if len(self._store) >= self.max_size:
                self._evict_locked()
            self._store[key] = (self._clock(), value)
            return value

    def _evict_locked(self) -> None:
        count = len(self._store) - self.max_size + 1 + int(self.max_size * 0.1)
        for _ in range(min(count, len(self._store))):
            self._store.popitem(last=False)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            item = self._store.get(key)
            return item is not None and not self._expired(item[0])

    def delete(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._store.pop(key, None)
            return item[1] if item is not None else None

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._store if k.startswith(prefix)]
            for key in doomed:
                del self._store[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._store),
                "max_size": self.max_size,
                "ttl": self.ttl,
                "hits": self.hits,
                "misses": self.misses,
            }


def _digest(obj: Any, length: int) -> str:
    raw = json.dumps(obj, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:length]


def _index_prefix(index: Optional[str]) -> str:
    return f"{index}:"


def query_cache_key(request: OperationRequest) -> str:
    payload = request.payload
    parts = {
        "vector": _digest(list(payload.get("vector") or []), 16),
        "top_k": str(payload.get("top_k", 10)),
        "ns": str(payload.get("namespace") or "default"),
        "filter": _digest(payload["filter"], 8) if payload.get("filter") else "nofilter",
        "values": "1" if payload.get("include_values") else "0",
        "meta": "0" if payload.get("include_metadata") is False else "1",
    }
    raw = "|".join(f"{k}={v}" for k, v in sorted(parts.items()))
    return f"{_index_prefix(request.index)}q:{raw}"


def fetch_cache_key(index: Optional[str], id: str, namespace: Optional[str]) -> str:
    return f"{_index_prefix(index)}f:{id}:{namespace or 'default'}"


class CacheMiddleware(Middleware):
    """
    Args:
        cache: Store to use; a default InMemoryTTLCache when omitted
        cache_queries: Serve repeated queries from the cache
        cache_fetches: Serve previously fetched ids from the cache
    """

    def __init__(
        self,
        cache: Optional[InMemoryTTLCache] = None,
        *,
        cache_queries: bool = True,
        cache_fetches: bool = True,
    ) -> None:
        self.cache = cache if cache is not None else InMemoryTTLCache()
        self.cache_queries = cache_queries
        self.cache_fetches = cache_fetches

    async def call(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        kind = request.kind
        if kind is OperationKind.QUERY and self.cache_queries:
            return await self._query(request, call_next)
        if kind is OperationKind.FETCH and self.cache_fetches:
            return await self._fetch(request, call_next)
        if request.is_mutating:
            try:
                return await call_next(request)
            finally:
                self.invalidate_index(request.index)
        return await call_next(request)

    async def _query(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        key = query_cache_key(request)
        cached = self.cache.get(key)
        if cached is not None:
            return OperationResponse(result=cached, metadata={"cache": "hit"})
        response = await call_next(request)
        self.cache.set(key, response.result)
        response.metadata["cache"] = "miss"
        return response

    async def _fetch(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        namespace = request.namespace
        ids: List[str] = list(request.payload.get("ids") or [])
        if not ids:
            return await call_next(request)
        found: Dict[str, Any] = {}
        missing: List[str] = []
        for vid in ids:
            cached = self.cache.get(fetch_cache_key(request.index, vid, namespace))
            if cached is None:
                missing.append(vid)
            else:
                found[vid] = cached

        if not missing:
            return OperationResponse(result=found, metadata={"cache": "hit"})

        inner = dataclasses.replace(request, payload={**request.payload, "ids": missing})
        response = await call_next(inner)
        for vid, vector in (response.result or {}).items():
            self.cache.set(fetch_cache_key(request.index, vid, namespace), vector)
            found[vid] = vector
        response.result = {vid: found[vid] for vid in ids if vid in found}
        response.metadata["cache"] = "partial" if len(missing) < len(ids) else "miss"
        return response

    def invalidate_index(self, index: Optional[str]) -> int:
        if index is None:
            return 0
        dropped = self.cache.invalidate_prefix(_index_prefix(index))
        if dropped:
            LOG.debug("cache dropped %d entries for index '%s'", dropped, index)
        return dropped

    def clear(self) -> None:
        self.cache.clear()


__all__ = [
    "InMemoryTTLCache",
    "CacheMiddleware",
    "query_cache_key",
    "fetch_cache_key",
    "DEFAULT_TTL",
    "DEFAULT_MAX_SIZE",
]
