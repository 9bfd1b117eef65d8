# vectorlink_sdk/batch.py
# SPDX-License-Identifier: Apache-2.0

"""
Bounded-concurrency batch execution.

Purpose
-------
Large upserts, deletes, fetches and fan-out queries are split into chunks of
at most ``chunk_size`` items. Chunks go into an ``asyncio.Queue`` and exactly
``concurrency`` worker tasks pull from it; each worker drives its chunk
through the client's full pipeline (middleware, retry, breaker, limiter).

Failure model
-------------
- A failing chunk is isolated: its items are added to ``failed``, one
  :class:`ItemError` per item is recorded (and passed to ``on_error``), and
  sibling chunks keep running.
- After every resolved chunk, cumulative counters are passed to
  ``on_progress`` as a :class:`BatchProgress`. Chunks complete in any order;
  the final aggregate does not depend on it.
- Malformed ``chunk_size``/``concurrency`` raise :class:`ConfigurationError`
  before any chunk runs.

Cancellation
------------
Set the ``cancel_event`` to stop. Workers check it before taking each chunk:
in-flight chunks finish and are counted; chunks never dispatched are
recorded as failed with :class:`BatchCancelledError`, and the result has
``cancelled=True``. ``succeeded + failed == total`` holds in every case.

Example
-------
    executor = BatchExecutor(client, concurrency=4, chunk_size=100)
    result = await executor.upsert_async(
        "docs", vectors,
        on_progress=lambda p: print(f"{p.percentage:.0f}%"),
    )
    if result.errors:
        LOG.warning("%d vectors failed", result.failed)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from vectorlink_sdk.core.error_context import attach_context
from vectorlink_sdk.core.errors import (
    BatchCancelledError,
    ConfigurationError,
    ErrorKind,
    Outcome,
    classify,
)
from vectorlink_sdk.vector.types import QueryResult, Vector

LOG = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4
DEFAULT_CHUNK_SIZE = 100


# =============================================================================
# Result types
# =============================================================================

@dataclass(frozen=True)
class ItemError:
    """
    One failed batch item.

    Attributes:
        item_id: Vector/record id, when the item has one
        position: Index of the item in the caller's input
        chunk_index: Chunk the item belonged to
        kind: Error kind tag of the failure
        message: Human readable description
        error: The underlying exception
    """
    item_id: Optional[str]
    position: int
    chunk_index: int
    kind: ErrorKind
    message: str
    error: BaseException = field(repr=False, compare=False)


@dataclass(frozen=True)
class BatchProgress:
    """Cumulative counters reported after each resolved chunk."""
    succeeded: int
    failed: int
    total: int
    completed_chunks: int
    total_chunks: int
    current_chunk: int

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 100.0
        return round(self.processed * 100.0 / self.total, 2)


@dataclass
class BatchResult:
    """
    Aggregate of one batch call.

    ``data`` holds operation output: merged ``{id: Vector}`` for fetch, the
    per-input list of :class:`QueryResult` for query, None otherwise.
    """
    total: int
    succeeded: int = 0
    failed: int = 0
    chunks: int = 0
    successful_chunks: int = 0
    errors: List[ItemError] = field(default_factory=list)
    data: Any = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def failed_chunks(self) -> int:
        return self.chunks - self.successful_chunks

    @property
    def upserted_count(self) -> int:
        return self.succeeded


ProgressCallback = Callable[[BatchProgress], Any]
ErrorCallback = Callable[[ItemError], Any]
ChunkWork = Callable[[int, List[Any]], Awaitable[Any]]
# (chunk_index, chunk_start, chunk, value) -> failed (offset, error) pairs
ChunkSettle = Callable[[int, int, List[Any], Any], List[Tuple[int, BaseException]]]


def _require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}", details={name: repr(value)})
    return value


def _item_id(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        vid = item.get("id")
        return vid if isinstance(vid, str) else None
    vid = getattr(item, "id", None)
    return vid if isinstance(vid, str) else None


async def _emit(callback: Optional[Callable[[Any], Any]], payload: Any, what: str) -> None:
    if callback is None:
        return
    try:
        result = callback(payload)
        if inspect.isawaitable(result):
            await result
    except Exception:  # noqa: BLE001
        # user callbacks never abort the batch
        LOG.warning("batch %s callback raised", what, exc_info=True)


def _settle_all_ok(chunk_index: int, start: int, chunk: List[Any], value: Any) -> List[Tuple[int, BaseException]]:
    return []


# =============================================================================
# Executor
# =============================================================================

class BatchExecutor:
    """
    Args:
        client: A VectorClient (anything with async upsert/delete/fetch/query)
        concurrency: Default number of worker tasks
        chunk_size: Default maximum items per chunk
    """

    def __init__(self, client: Any, *, concurrency: int = DEFAULT_CONCURRENCY, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._client = client
        self.concurrency = _require_positive_int("concurrency", concurrency)
        self.chunk_size = _require_positive_int("chunk_size", chunk_size)

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def upsert_async(
        self,
        index: str,
        vectors: Sequence[Any],
        *,
        namespace: Optional[str] = None,
        chunk_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Upsert ``vectors`` in chunks; ``succeeded`` counts upserted vectors."""

        async def work(chunk_index: int, chunk: List[Any]) -> Any:
            return await self._client.upsert(index, chunk, namespace=namespace)

        return await self._run(
            "upsert", vectors, work,
            chunk_size=chunk_size, concurrency=concurrency,
            on_progress=on_progress, on_error=on_error, cancel_event=cancel_event,
        )

    async def delete_async(
        self,
        index: str,
        ids: Sequence[str],
        *,
        namespace: Optional[str] = None,
        chunk_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        async def work(chunk_index: int, chunk: List[Any]) -> Any:
            return await self._client.delete(index, ids=chunk, namespace=namespace)

        return await self._run(
            "delete", ids, work,
            chunk_size=chunk_size, concurrency=concurrency,
            on_progress=on_progress, on_error=on_error, cancel_event=cancel_event,
        )

    async def fetch_async(
        self,
        index: str,
        ids: Sequence[str],
        *,
        namespace: Optional[str] = None,
        chunk_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Fetch ``ids`` in chunks; ``result.data`` is the merged ``{id: Vector}``."""
        merged: Dict[str, Vector] = {}

        async def work(chunk_index: int, chunk: List[Any]) -> Any:
            return await self._client.fetch(index, chunk, namespace=namespace)

        def settle(chunk_index: int, start: int, chunk: List[Any], value: Any) -> List[Tuple[int, BaseException]]:
            merged.update(value or {})
            return []

        result = await self._run(
            "fetch", ids, work, settle=settle,
            chunk_size=chunk_size, concurrency=concurrency,
            on_progress=on_progress, on_error=on_error, cancel_event=cancel_event,
        )
        result.data = merged
        return result

    async def query_async(
        self,
        index: str,
        vectors: Sequence[Sequence[float]],
        *,
        top_k: int = 10,
        namespace: Optional[str] = None,
        filter: Optional[Dict[str, Any]] = None,
        include_values: bool = False,
        include_metadata: bool = True,
        chunk_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """
        Run one query per input vector.

        ``result.data`` lists a QueryResult per input, in input order; failed
        or undispatched queries get an empty QueryResult.
        """
        results: List[QueryResult] = [QueryResult.empty(namespace) for _ in vectors]

        async def work(chunk_index: int, chunk: List[Any]) -> List[Outcome]:
            outcomes = []
            for vector in chunk:
                outcomes.append(
                    await Outcome.capture(
                        lambda vector=vector: self._client.query(
                            index,
                            vector,
                            top_k=top_k,
                            namespace=namespace,
                            filter=filter,
                            include_values=include_values,
                            include_metadata=include_metadata,
                        )
                    )
                )
            return outcomes

        def settle(chunk_index: int, start: int, chunk: List[Any], outcomes: List[Outcome]) -> List[Tuple[int, BaseException]]:
            failed = []
            for offset, outcome in enumerate(outcomes):
                if outcome.ok:
                    results[start + offset] = outcome.value
                else:
                    failed.append((offset, outcome.error))
            return failed

        result = await self._run(
            "query", vectors, work, settle=settle,
            chunk_size=chunk_size, concurrency=concurrency,
            on_progress=on_progress, on_error=on_error, cancel_event=cancel_event,
        )
        result.data = results
        return result

    # ------------------------------------------------------------------ #
    # Engine
    # ------------------------------------------------------------------ #

    async def _run(
        self,
        operation: str,
        items: Sequence[Any],
        work: ChunkWork,
        *,
        settle: ChunkSettle = _settle_all_ok,
        chunk_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        size = _require_positive_int("chunk_size", self.chunk_size if chunk_size is None else chunk_size)
        workers = _require_positive_int("concurrency", self.concurrency if concurrency is None else concurrency)
        items = list(items)

        chunks = [items[i:i + size] for i in range(0, len(items), size)]
        result = BatchResult(total=len(items), chunks=len(chunks))
        if not chunks:
            return result

        queue: asyncio.Queue = asyncio.Queue()
        for chunk_index, chunk in enumerate(chunks):
            queue.put_nowait((chunk_index, chunk_index * size, chunk))

        completed = 0

        async def record_failures(chunk_index: int, start: int, chunk: List[Any], failures: List[Tuple[int, BaseException]]) -> None:
            for offset, error in failures:
                item = ItemError(
                    item_id=_item_id(chunk[offset]),
                    position=start + offset,
                    chunk_index=chunk_index,
                    kind=classify(error),
                    message=str(error) or type(error).__name__,
                    error=error,
                )
                result.errors.append(item)
                await _emit(on_error, item, "on_error")

        async def worker(worker_id: int) -> None:
            nonlocal completed
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    return
                try:
                    chunk_index, start, chunk = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                outcome = await Outcome.capture(lambda: work(chunk_index, chunk))
                if outcome.ok:
                    failures = settle(chunk_index, start, chunk, outcome.value)
                    if not failures:
                        result.successful_chunks += 1
                else:
                    attach_context(outcome.error, "batch", operation=operation, chunk=chunk_index, chunk_size=len(chunk))
                    LOG.warning(
                        "batch %s chunk %d/%d failed (%d items): %s",
                        operation, chunk_index + 1, len(chunks), len(chunk), type(outcome.error).__name__,
                    )
                    failures = [(offset, outcome.error) for offset in range(len(chunk))]

                result.failed += len(failures)
                result.succeeded += len(chunk) - len(failures)
                completed += 1
                await record_failures(chunk_index, start, chunk, failures)
                await _emit(
                    on_progress,
                    BatchProgress(
                        succeeded=result.succeeded,
                        failed=result.failed,
                        total=result.total,
                        completed_chunks=completed,
                        total_chunks=len(chunks),
                        current_chunk=chunk_index,
                    ),
                    "on_progress",
                )

        await asyncio.gather(*(worker(i) for i in range(min(workers, len(chunks)))))

        # Anything still queued was never dispatched.
        while not queue.empty():
            chunk_index, start, chunk = queue.get_nowait()
            result.cancelled = True
            error = BatchCancelledError(
                f"batch {operation} cancelled before chunk {chunk_index} was dispatched",
                details={"chunk": chunk_index},
            )
            result.failed += len(chunk)
            await record_failures(chunk_index, start, chunk, [(offset, error) for offset in range(len(chunk))])

        if result.cancelled:
            LOG.info(
                "batch %s cancelled: %d succeeded, %d failed of %d",
                operation, result.succeeded, result.failed, result.total,
            )
        return result


__all__ = [
    "BatchExecutor",
    "BatchResult",
    "BatchProgress",
    "ItemError",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_CHUNK_SIZE",
]
