"""
Bounded-concurrency execution of chunk operations.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Hashable, Iterable, Optional, Sequence, TypeVar

from loguru import logger

from ..metrics import metrics_registry
from .chunking import chunk_by
from .types import ChunkOperation, CompletionCallback, is_cancelled

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


async def run_throttled(
    operations: Sequence[ChunkOperation[T]],
    parallelism: int,
    on_complete: Optional[CompletionCallback] = None,
    cancel: Optional[asyncio.Event] = None,
) -> list[Optional[T]]:
    """Run ``operations`` with at most ``parallelism`` in flight at once.

    Results are stored by operation index, so ``results[i]`` belongs to
    ``operations[i]`` whatever the completion order. Operations that never
    started (cancelled, or after a failure) leave ``None`` in their slot.

    ``on_complete`` is called once per finished operation with its index.
    Once ``cancel`` is set no new operation is started; running ones finish.
    If an operation raises, no new operations are started and the first
    exception is re-raised after the running ones have completed.
    """
    if parallelism < 1:
        raise ValueError("parallelism must be >= 1")

    total = len(operations)
    results: list[Optional[T]] = [None] * total
    if total == 0:
        return results

    next_index = 0
    completed = 0
    failure: Optional[BaseException] = None

    async def worker() -> None:
        nonlocal next_index, completed, failure
        while next_index < total:
            if failure is not None or is_cancelled(cancel):
                return
            index = next_index
            next_index += 1
            try:
                results[index] = await operations[index]()
            except Exception as exc:
                if failure is None:
                    failure = exc
            completed += 1
            logger.debug(f"Completed {completed}/{total} tasks")
            if on_complete is not None:
                on_complete(index)

    workers = [asyncio.create_task(worker()) for _ in range(min(parallelism, total))]
    await asyncio.gather(*workers)

    if failure is not None:
        raise failure
    return results


class LockedSet(Generic[T]):
    """Set accumulator shared by concurrent chunk tasks.

    Every mutation happens under one ``asyncio.Lock``.
    """

    def __init__(self, initial: Optional[Iterable[T]] = None):
        self._items: set[T] = set(initial or ())
        self._lock = asyncio.Lock()

    async def update(self, values: Iterable[T]) -> None:
        async with self._lock:
            self._items.update(values)

    async def add(self, value: T) -> None:
        async with self._lock:
            self._items.add(value)

    def snapshot(self) -> set[T]:
        return set(self._items)

    def __contains__(self, value: object) -> bool:
        return value in self._items

    def __len__(self) -> int:
        return len(self._items)


async def retrieve_chunked(
    retrieve: Callable[[list[K]], Awaitable[list[T]]],
    ids: Iterable[K],
    chunk_size: int,
    parallelism: int,
    *,
    resource: str,
    cancel: Optional[asyncio.Event] = None,
) -> list[T]:
    """Look up ``ids`` in chunks, at most ``parallelism`` requests at a time."""
    unique = list(dict.fromkeys(ids))
    if not unique:
        return []

    def fetch(chunk: list[K]) -> ChunkOperation[list[T]]:
        async def op() -> list[T]:
            with metrics_registry.timer(resource, "retrieve"):
                return await retrieve(chunk)

        return op

    chunks = chunk_by(unique, chunk_size)
    results = await run_throttled([fetch(c) for c in chunks], parallelism, cancel=cancel)
    return [record for found in results if found for record in found]
