"""
Plumbing shared by the per-resource write flows.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from loguru import logger

from ..coordinator import RetryCoordinator, retry_duplicates, run_throttled
from ..errors import ClassifiedError
from ..identity import ExternalId, Identity, identity_of
from ..metrics import metrics_registry
from ..policy import RetryPolicy
from ..result import WriteResult
from ..settings import WriterSettings

T = TypeVar("T")
R = TypeVar("R")


def contains(affected: set[Identity], value: Any) -> bool:
    """True if the raw id ``value`` names one of the ``affected`` identities."""
    if value is None:
        return False
    return identity_of(value) in affected


async def write_in_chunks(
    coordinator: RetryCoordinator[T, R],
    chunks: Sequence[list[T]],
    throttle: int,
    cancel: Optional[asyncio.Event] = None,
) -> WriteResult[R, T]:
    """Run ``coordinator`` over every chunk, ``throttle`` chunks at a time.

    Chunks that were never started because ``cancel`` fired are reported as
    one cancelled ``FatalFailure`` each.
    """
    results: list[Optional[WriteResult[R, T]]] = await run_throttled(
        [partial(coordinator.run, chunk) for chunk in chunks], throttle, cancel=cancel
    )
    for index, chunk in enumerate(chunks):
        if results[index] is None:
            results[index] = WriteResult(
                errors=[ClassifiedError(message="Operation cancelled", skipped=list(chunk))]
            )
    return WriteResult.merge(results)


def with_sanitation_errors(
    result: WriteResult[R, T], errors: list[ClassifiedError[T]], resource: str
) -> WriteResult[R, T]:
    """Put the errors found before dispatch in front of ``result.errors``."""
    if errors:
        skipped = sum(len(err.skipped) for err in errors)
        logger.debug(f"Removed {skipped} {resource} before sending them to the store")
        metrics_registry.skipped(resource, skipped)
        result.errors = list(errors) + result.errors
    return result


async def get_or_create(
    fetch: Callable[[list[Identity]], Awaitable[list[R]]],
    create: Callable[[list[T]], Awaitable[WriteResult[R, T]]],
    external_ids: Sequence[str],
    build: Callable[[list[str]], list[T]],
    *,
    resource: str,
    key_of: Callable[[T], Optional[str]],
    key_of_record: Callable[[R], Optional[str]],
    retry_policy: RetryPolicy,
    settings: WriterSettings,
    cancel: Optional[asyncio.Event] = None,
) -> WriteResult[R, T]:
    """Fetch records by external id and create the missing ones with ``build``.

    With a keep-duplicates retry policy, records created concurrently by
    someone else are fetched after a backoff instead of being reported.
    """

    async def attempt(ids: list[str], build: Callable[[list[str]], list[T]]) -> WriteResult[R, T]:
        existing = await fetch([ExternalId(x) for x in ids])
        found = {key_of_record(record) for record in existing}
        missing = [x for x in dict.fromkeys(ids) if x not in found]
        if not missing:
            return WriteResult(successes=existing)

        logger.debug(f"Could not fetch {len(missing)} out of {len(ids)} {resource}, creating them")
        created = await create(build(missing))
        created.successes = existing + created.successes
        return created

    result = await attempt(list(external_ids), build)
    if not retry_policy.keeps_duplicates:
        return result

    async def refetch(items: list[T]) -> WriteResult[R, T]:
        by_key = {key_of(item): item for item in items}
        return await attempt(list(by_key), lambda ids: [by_key[i] for i in ids])

    return await retry_duplicates(
        result,
        refetch,
        resource=resource,
        limit=settings.duplicate_retry_limit,
        base_delay=settings.duplicate_base_delay,
        cancel=cancel,
    )
