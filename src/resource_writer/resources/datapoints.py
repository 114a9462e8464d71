"""
Bulk datapoint inserts and range deletes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

from loguru import logger

from ..client import DatapointsClient, TimeSeriesClient
from ..coordinator import (
    DatapointTypeReconciler,
    LockedSet,
    RetryCoordinator,
    chunk_by,
    chunk_by_units,
    classify,
    run_throttled,
    sleep_or_cancel,
)
from ..errors import ClassifiedError, ErrorKind, RemoteFailure, RequestType, Resolved
from ..identity import Identity, WriteItem, identity_of
from ..metrics import metrics_registry
from ..models import Datapoint, DeleteRange
from ..policy import RetryPolicy, SanitationMode
from ..result import WriteResult
from ..sanitation import clean_datapoints_request
from ..settings import WriterSettings, get_settings
from .base import with_sanitation_errors, write_in_chunks

RESOURCE = "datapoints"

DatapointInput = Union[Mapping[Any, Sequence[Datapoint]], Sequence[WriteItem[Datapoint]]]


@dataclass
class DeleteResult:
    """Outcome of a datapoint delete.

    ids_not_found: time series that do not exist, nothing to delete there
    ids_not_verified: time series still returning datapoints in a deleted range
    ids_not_deleted: time series whose delete never ran because the operation was cancelled
    """

    ids_not_found: set[Identity] = field(default_factory=set)
    ids_not_verified: set[Identity] = field(default_factory=set)
    ids_not_deleted: set[Identity] = field(default_factory=set)


def to_write_items(datapoints: DatapointInput) -> list[WriteItem[Datapoint]]:
    """Accept either ``WriteItem`` values or an ``id -> datapoints`` mapping."""
    if isinstance(datapoints, Mapping):
        return [WriteItem(identity_of(key), list(points)) for key, points in datapoints.items()]
    return list(datapoints)


def is_affected(error: ClassifiedError, item: WriteItem[Datapoint]) -> bool:
    return item.id in error.affected


def plan_chunks(
    items: Sequence[WriteItem[Datapoint]], max_units: int, max_keys: int
) -> list[list[WriteItem[Datapoint]]]:
    """Group datapoints by time series, then chunk by series count and datapoint count."""
    grouped: dict[Identity, list[Datapoint]] = {}
    for item in items:
        grouped.setdefault(item.id, []).extend(item.payload)
    return [
        [WriteItem(identity, points) for identity, points in chunk.items()]
        for chunk in chunk_by_units(grouped, max_units, max_keys)
    ]


async def insert_datapoints(
    client: DatapointsClient,
    datapoints: DatapointInput,
    *,
    timeseries: Optional[TimeSeriesClient] = None,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    non_finite_replacement: Optional[float] = None,
    key_chunk_size: Optional[int] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[WriteItem[Datapoint], WriteItem[Datapoint]]:
    """Insert datapoints for many time series.

    Successes and skipped items are ``WriteItem`` values holding the
    datapoints that were written or dropped; one series may show up in several
    of them when its datapoints were split across requests.

    When ``timeseries`` is given, inserts rejected for a value type mismatch
    are checked against the time series, and only the offending datapoints are
    dropped.
    """
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    replacement = (
        non_finite_replacement if non_finite_replacement is not None else settings.non_finite_replacement
    )
    cleaned, errors = clean_datapoints_request(to_write_items(datapoints), mode, replacement)

    reconciler = None
    if timeseries is not None:
        reconciler = DatapointTypeReconciler(
            timeseries,
            chunk_size=settings.timeseries_chunk_size,
            throttle=settings.timeseries_throttle,
            cancel=cancel,
        )

    async def submit(items: list[WriteItem[Datapoint]]) -> list[WriteItem[Datapoint]]:
        await client.insert(items)
        metrics_registry.datapoints_written_total.inc(sum(item.units for item in items))
        return items

    coordinator: RetryCoordinator[WriteItem[Datapoint], WriteItem[Datapoint]] = RetryCoordinator(
        RESOURCE,
        "create",
        RequestType.CREATE_DATAPOINTS,
        submit,
        is_affected,
        reconciler=reconciler,
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )
    chunks = plan_chunks(
        cleaned,
        chunk_size or settings.datapoints_chunk_size,
        key_chunk_size or settings.datapoints_key_chunk_size,
    )
    logger.debug(
        f"Inserting {sum(item.units for item in cleaned)} datapoints "
        f"for {len(cleaned)} time series in {len(chunks)} chunks"
    )
    result = await write_in_chunks(coordinator, chunks, throttle or settings.datapoints_throttle, cancel)
    return with_sanitation_errors(result, errors, RESOURCE)


async def _delete_chunk(
    client: DatapointsClient, chunk: list[DeleteRange], missing: LockedSet[Identity]
) -> list[DeleteRange]:
    """Delete ``chunk`` and return the ranges the remote store accepted."""
    pending = chunk
    while pending:
        try:
            with metrics_registry.timer(RESOURCE, "delete"):
                await client.delete(pending)
            return pending
        except RemoteFailure as exc:
            classification = classify(exc, RequestType.DELETE_DATAPOINTS)
            error = classification.error
            if not isinstance(classification, Resolved) or error.kind != ErrorKind.ITEM_MISSING:
                raise
            remaining = [r for r in pending if r.id not in error.affected]
            if len(remaining) == len(pending):
                raise
            await missing.update(error.affected)
            logger.debug(
                f"Removed {len(pending) - len(remaining)} ranges of missing time series, "
                f"retrying delete of {len(remaining)}"
            )
            pending = remaining
    return pending


async def _verify_chunk(
    client: DatapointsClient,
    chunk: list[DeleteRange],
    attempts: int,
    delay: float,
    cancel: Optional[asyncio.Event],
) -> set[Identity]:
    pending = chunk
    tries = 0
    while tries < attempts:
        tries += 1
        with metrics_registry.timer(RESOURCE, "list"):
            found = await client.retrieve(pending, limit=1)
        # responses come back in query order
        pending = [r for r, points in zip(pending, found) if points]
        if not pending:
            return set()
        if tries == attempts:
            break
        logger.debug(
            f"Could not verify the deletion of datapoints in {len(pending)}/{len(chunk)} ranges, "
            f"retrying in {delay}s"
        )
        if await sleep_or_cancel(delay, cancel):
            break

    ids = {r.id for r in pending}
    logger.warning(
        f"Failed to verify the deletion of datapoints after {tries} attempts. "
        f"Ids: {', '.join(str(i) for i in ids)}"
    )
    return ids


async def delete_datapoints(
    client: DatapointsClient,
    ranges: Union[Mapping[Any, Sequence], Sequence[DeleteRange]],
    *,
    verify: bool = True,
    chunk_size: Optional[int] = None,
    list_chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> DeleteResult:
    """Delete ranges of datapoints, ignoring time series that do not exist.

    ``ranges`` is a list of ``DeleteRange`` or a mapping from raw id to
    ``TimeRange`` values. Deletes are eventually consistent remotely, so with
    ``verify`` each range is queried until it comes back empty. Failures other
    than missing time series are raised.
    """
    settings = settings or get_settings()
    if isinstance(ranges, Mapping):
        ranges = [DeleteRange(identity_of(key), r) for key, rs in ranges.items() for r in rs]
    ranges = list(ranges)
    throttle = throttle or settings.datapoints_throttle

    missing: LockedSet[Identity] = LockedSet()
    chunks = chunk_by(ranges, chunk_size or settings.datapoints_delete_chunk_size)
    results = await run_throttled(
        [lambda c=c: _delete_chunk(client, c, missing) for c in chunks], throttle, cancel=cancel
    )
    not_found = missing.snapshot()
    # chunks that never started because of cancellation
    not_deleted = {r.id for chunk, done in zip(chunks, results) if done is None for r in chunk}
    if not_deleted:
        logger.warning(f"Deletion cancelled, datapoints of {len(not_deleted)} time series not deleted")
    if not verify:
        return DeleteResult(ids_not_found=not_found, ids_not_deleted=not_deleted)

    logger.debug("Deletion completed. Verifying that datapoints were removed")

    to_verify = [r for done in results if done for r in done]
    list_chunks = chunk_by(to_verify, list_chunk_size or settings.datapoints_list_chunk_size)
    verified = await run_throttled(
        [
            lambda c=c: _verify_chunk(
                client, c, settings.delete_verify_attempts, settings.delete_verify_delay, cancel
            )
            for c in list_chunks
        ],
        throttle,
        cancel=cancel,
    )
    not_verified: set[Identity] = set()
    for chunk, ids in zip(list_chunks, verified):
        not_verified.update(ids if ids is not None else {r.id for r in chunk})
    return DeleteResult(ids_not_found=not_found, ids_not_verified=not_verified, ids_not_deleted=not_deleted)
