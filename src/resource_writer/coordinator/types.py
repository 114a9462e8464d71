from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

ChunkOperation = Callable[[], Awaitable[T]]
CompletionCallback = Callable[[int], None]


def is_cancelled(cancel: Optional[asyncio.Event]) -> bool:
    return cancel is not None and cancel.is_set()


async def sleep_or_cancel(delay: float, cancel: Optional[asyncio.Event]) -> bool:
    """Sleep ``delay`` seconds. Returns True if ``cancel`` fired first."""
    if cancel is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False
