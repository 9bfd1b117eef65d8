# vectorlink_sdk/streaming.py
# SPDX-License-Identifier: Apache-2.0

"""
Paged, lazy iteration over large result sets.

Backends expose no query cursor, so :func:`query_stream` pages by widening
``top_k`` one page at a time and yielding only matches it has not yielded
before. Iteration stops after ``total`` matches, when a page comes back short
(the index is exhausted), or when a page adds nothing new.

    async for match in client.query_stream("docs", vec, total=1000):
        handle(match)

:func:`fetch_stream` fetches a long id list ``page_size`` ids at a time and
yields vectors in id order, skipping ids the backend does not have.

Every page is an ordinary client call, so it goes through the full
middleware pipeline (retry, breaker, rate limiting, caching).
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, Optional, Sequence, Set

from vectorlink_sdk.core.errors import ConfigurationError
from vectorlink_sdk.vector.types import Match, Vector

LOG = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def _require_positive(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return value


async def query_stream(
    client: Any,
    index: str,
    vector: Sequence[float],
    *,
    total: int,
    page_size: int = DEFAULT_PAGE_SIZE,
    namespace: Optional[str] = None,
    filter: Optional[Mapping[str, Any]] = None,
    include_values: bool = False,
) -> AsyncIterator[Match]:
    """Yield up to ``total`` distinct matches, best first, one page at a time."""
    total = _require_positive("total", total)
    page_size = _require_positive("page_size", page_size)
    vector = list(vector)

    seen: Set[str] = set()
    top_k = 0
    while len(seen) < total:
        top_k = min(total, top_k + page_size)
        result = await client.query(
            index,
            vector,
            top_k=top_k,
            namespace=namespace,
            filter=filter,
            include_values=include_values,
            include_metadata=True,
        )
        fresh = 0
        for match in result:
            if match.id in seen:
                continue
            seen.add(match.id)
            fresh += 1
            yield match
            if len(seen) >= total:
                return
        if len(result) < top_k or fresh == 0:
            LOG.debug("query_stream on '%s' exhausted after %d matches", index, len(seen))
            return


async def fetch_stream(
    client: Any,
    index: str,
    ids: Sequence[str],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    namespace: Optional[str] = None,
) -> AsyncIterator[Vector]:
    """Yield the stored vectors for ``ids``, fetching ``page_size`` ids per call."""
    page_size = _require_positive("page_size", page_size)
    ids = list(ids)
    for start in range(0, len(ids), page_size):
        page = ids[start:start + page_size]
        found = await client.fetch(index, page, namespace=namespace)
        for vid in page:
            vector = found.get(vid)
            if vector is not None:
                yield vector


__all__ = ["query_stream", "fetch_stream", "DEFAULT_PAGE_SIZE"]
