"""
Bulk time series writes: create, get-or-create, update and upsert.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger

from ..client import TimeSeriesClient
from ..coordinator import RetryCoordinator, chunk_by, retrieve_chunked
from ..errors import ClassifiedError, RequestType, ResourceType
from ..identity import Identity
from ..models import TimeSeries, TimeSeriesCreate, TimeSeriesUpdate, TimeSeriesUpdateItem
from ..policy import RetryPolicy, SanitationMode
from ..result import WriteResult
from ..sanitation import clean_time_series_request, clean_time_series_update_request
from ..settings import WriterSettings, get_settings
from .base import contains, get_or_create, with_sanitation_errors, write_in_chunks
from .upsert import UpsertComposer, UpsertOptions, field_update, list_update, metadata_update

RESOURCE = "timeseries"


def is_affected(error: ClassifiedError, ts: TimeSeriesCreate) -> bool:
    """True if ``ts`` is implicated by a failed time series create."""
    bad = error.affected
    if error.resource == ResourceType.DATA_SET_ID:
        return contains(bad, ts.data_set_id)
    if error.resource == ResourceType.EXTERNAL_ID:
        return contains(bad, ts.external_id)
    if error.resource == ResourceType.ASSET_ID:
        return contains(bad, ts.asset_id)
    if error.resource == ResourceType.LEGACY_NAME:
        return contains(bad, ts.legacy_name)
    return False


def is_update_affected(error: ClassifiedError, item: TimeSeriesUpdateItem) -> bool:
    bad = error.affected
    update = item.update
    if error.resource == ResourceType.ID:
        return item.identity in bad
    if error.resource == ResourceType.DATA_SET_ID:
        return update.data_set_id is not None and contains(bad, update.data_set_id.set)
    if error.resource == ResourceType.ASSET_ID:
        return update.asset_id is not None and contains(bad, update.asset_id.set)
    if error.resource == ResourceType.EXTERNAL_ID:
        if update.external_id is not None and contains(bad, update.external_id.set):
            return True
        return item.identity in bad
    return False


async def get_time_series_by_ids(
    client: TimeSeriesClient,
    ids: Iterable[Identity],
    *,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> list[TimeSeries]:
    """Retrieve time series by id, ignoring ids that do not exist."""
    settings = settings or get_settings()
    return await retrieve_chunked(
        client.retrieve,
        ids,
        chunk_size or settings.timeseries_chunk_size,
        throttle or settings.timeseries_throttle,
        resource=RESOURCE,
        cancel=cancel,
    )


async def ensure_time_series(
    client: TimeSeriesClient,
    timeseries: Sequence[TimeSeriesCreate],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[TimeSeries, TimeSeriesCreate]:
    """Create time series.

    Items that fail are reported in the result's errors and, depending on the
    retry policy, the rest are retried without them.
    """
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    cleaned, errors = clean_time_series_request(timeseries, mode)

    coordinator: RetryCoordinator[TimeSeriesCreate, TimeSeries] = RetryCoordinator(
        RESOURCE,
        "create",
        RequestType.CREATE_TIME_SERIES,
        client.create,
        is_affected,
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )
    chunks = chunk_by(cleaned, chunk_size or settings.timeseries_chunk_size)
    logger.debug(f"Creating {len(cleaned)} time series in {len(chunks)} chunks")
    result = await write_in_chunks(coordinator, chunks, throttle or settings.timeseries_throttle, cancel)
    return with_sanitation_errors(result, errors, RESOURCE)


async def get_or_create_time_series(
    client: TimeSeriesClient,
    external_ids: Sequence[str],
    build: Callable[[list[str]], list[TimeSeriesCreate]],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[TimeSeries, TimeSeriesCreate]:
    """Fetch time series by external id, creating the missing ones with ``build``."""
    settings = settings or get_settings()
    policy = retry_policy if retry_policy is not None else settings.retry_policy
    return await get_or_create(
        partial(
            get_time_series_by_ids,
            client,
            chunk_size=chunk_size,
            throttle=throttle,
            cancel=cancel,
            settings=settings,
        ),
        partial(
            ensure_time_series,
            client,
            retry_policy=policy,
            sanitation_mode=sanitation_mode,
            chunk_size=chunk_size,
            throttle=throttle,
            cancel=cancel,
            settings=settings,
        ),
        external_ids,
        build,
        resource=RESOURCE,
        key_of=lambda ts: ts.external_id,
        key_of_record=lambda ts: ts.external_id,
        retry_policy=policy,
        settings=settings,
        cancel=cancel,
    )


async def update_time_series(
    client: TimeSeriesClient,
    updates: Sequence[TimeSeriesUpdateItem],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[TimeSeries, TimeSeriesUpdateItem]:
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    cleaned, errors = clean_time_series_update_request(updates, mode)

    coordinator: RetryCoordinator[TimeSeriesUpdateItem, TimeSeries] = RetryCoordinator(
        RESOURCE,
        "update",
        RequestType.UPDATE_TIME_SERIES,
        client.update,
        is_update_affected,
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )
    chunks = chunk_by(cleaned, chunk_size or settings.timeseries_chunk_size)
    result = await write_in_chunks(coordinator, chunks, throttle or settings.timeseries_throttle, cancel)
    return with_sanitation_errors(result, errors, RESOURCE)


def to_update(
    desired: TimeSeriesCreate, existing: TimeSeries, options: UpsertOptions
) -> Optional[TimeSeriesUpdateItem]:
    """Update turning ``existing`` into ``desired``, or None if they already match."""
    set_null = options.set_null
    update = TimeSeriesUpdate(
        name=field_update(desired.name, existing.name, set_null),
        description=field_update(desired.description, existing.description, set_null),
        unit=field_update(desired.unit, existing.unit, set_null),
        asset_id=field_update(desired.asset_id, existing.asset_id, set_null),
        data_set_id=field_update(desired.data_set_id, existing.data_set_id, set_null),
        metadata=metadata_update(desired.metadata, existing.metadata, options.replace_metadata),
        security_categories=list_update(
            desired.security_categories, existing.security_categories, replace=True
        ),
    )
    if not update.model_dump(exclude_none=True):
        return None
    return TimeSeriesUpdateItem(external_id=existing.external_id, update=update)


async def upsert_time_series(
    client: TimeSeriesClient,
    timeseries: Sequence[TimeSeriesCreate],
    options: Optional[UpsertOptions] = None,
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[TimeSeries, TimeSeriesCreate]:
    """Create or update time series so they match ``timeseries``.

    Successes are returned in the order of ``timeseries``. Every item must
    have an external id.
    """
    kwargs = dict(
        retry_policy=retry_policy,
        sanitation_mode=sanitation_mode,
        chunk_size=chunk_size,
        throttle=throttle,
        cancel=cancel,
        settings=settings,
    )
    composer: UpsertComposer[TimeSeriesCreate, TimeSeriesUpdateItem, TimeSeries] = UpsertComposer(
        resource=RESOURCE,
        key_of=lambda ts: ts.external_id,
        key_of_record=lambda ts: ts.external_id,
        key_of_update=lambda item: item.external_id,
        get_or_create=partial(get_or_create_time_series, client, **kwargs),
        to_update=to_update,
        update=partial(update_time_series, client, **kwargs),
    )
    return await composer.upsert(timeseries, options or UpsertOptions())
