"""
Bulk event writes.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Callable, Iterable, Optional, Sequence

from ..client import EventsClient
from ..coordinator import RetryCoordinator, chunk_by, retrieve_chunked
from ..errors import ClassifiedError, RequestType, ResourceType
from ..identity import Identity
from ..models import Event, EventCreate
from ..policy import RetryPolicy, SanitationMode
from ..result import WriteResult
from ..sanitation import clean_event_request
from ..settings import WriterSettings, get_settings
from .base import contains, get_or_create, with_sanitation_errors, write_in_chunks

RESOURCE = "events"


def is_affected(error: ClassifiedError, event: EventCreate) -> bool:
    bad = error.affected
    if error.resource == ResourceType.DATA_SET_ID:
        return contains(bad, event.data_set_id)
    if error.resource == ResourceType.EXTERNAL_ID:
        return contains(bad, event.external_id)
    if error.resource in (ResourceType.ASSET_ID, ResourceType.ID):
        return any(contains(bad, asset_id) for asset_id in event.asset_ids or ())
    return False


async def get_events_by_ids(
    client: EventsClient,
    ids: Iterable[Identity],
    *,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> list[Event]:
    settings = settings or get_settings()
    return await retrieve_chunked(
        client.retrieve,
        ids,
        chunk_size or settings.events_chunk_size,
        throttle or settings.events_throttle,
        resource=RESOURCE,
        cancel=cancel,
    )


async def ensure_events(
    client: EventsClient,
    events: Sequence[EventCreate],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[Event, EventCreate]:
    """Create events. Events referencing missing assets or data sets are reported and skipped."""
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    cleaned, errors = clean_event_request(events, mode)

    coordinator: RetryCoordinator[EventCreate, Event] = RetryCoordinator(
        RESOURCE,
        "create",
        RequestType.CREATE_EVENTS,
        client.create,
        is_affected,
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )
    chunks = chunk_by(cleaned, chunk_size or settings.events_chunk_size)
    result = await write_in_chunks(coordinator, chunks, throttle or settings.events_throttle, cancel)
    return with_sanitation_errors(result, errors, RESOURCE)


async def get_or_create_events(
    client: EventsClient,
    external_ids: Sequence[str],
    build: Callable[[list[str]], list[EventCreate]],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[Event, EventCreate]:
    settings = settings or get_settings()
    policy = retry_policy if retry_policy is not None else settings.retry_policy
    return await get_or_create(
        partial(
            get_events_by_ids,
            client,
            chunk_size=chunk_size,
            throttle=throttle,
            cancel=cancel,
            settings=settings,
        ),
        partial(
            ensure_events,
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
        key_of=lambda e: e.external_id,
        key_of_record=lambda e: e.external_id,
        retry_policy=policy,
        settings=settings,
        cancel=cancel,
    )
