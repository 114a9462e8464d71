"""
Sanitation rules for event create requests.
"""

from __future__ import annotations

from typing import Optional, Sequence

from ..errors import ClassifiedError, ResourceType
from ..models import EventCreate
from ..policy import SanitationMode
from ..utils import check_length, truncate
from .base import (
    EXTERNAL_ID_MAX,
    clean_request,
    positive_or_none,
    sanitize_metadata,
    verify_metadata,
)

TYPE_MAX = 64
DESCRIPTION_MAX = 500
SOURCE_MAX = 128
ASSET_IDS_MAX = 10_000
METADATA_MAX_PER_KEY = 128
METADATA_MAX_PER_VALUE = 128_000
METADATA_MAX_BYTES = 200_000
METADATA_MAX_PAIRS = 256

_METADATA_LIMITS = (METADATA_MAX_PER_KEY, METADATA_MAX_PAIRS, METADATA_MAX_PER_VALUE, METADATA_MAX_BYTES)


def sanitize_event(event: EventCreate) -> None:
    event.external_id = truncate(event.external_id, EXTERNAL_ID_MAX)
    event.type = truncate(event.type, TYPE_MAX)
    event.subtype = truncate(event.subtype, TYPE_MAX)
    event.source = truncate(event.source, SOURCE_MAX)
    event.description = truncate(event.description, DESCRIPTION_MAX)
    if event.asset_ids is not None:
        event.asset_ids = [i for i in event.asset_ids if i > 0][:ASSET_IDS_MAX]
    if event.start_time is not None and event.start_time < 0:
        event.start_time = 0
    if event.end_time is not None and event.end_time < 0:
        event.end_time = 0
    if event.start_time is not None and event.end_time is not None and event.start_time > event.end_time:
        event.end_time = event.start_time
    event.data_set_id = positive_or_none(event.data_set_id)
    event.metadata = sanitize_metadata(event.metadata, *_METADATA_LIMITS)


def verify_event(event: EventCreate) -> Optional[ResourceType]:
    if not check_length(event.external_id, EXTERNAL_ID_MAX):
        return ResourceType.EXTERNAL_ID
    if not check_length(event.type, TYPE_MAX):
        return ResourceType.TYPE
    if not check_length(event.subtype, TYPE_MAX):
        return ResourceType.SUB_TYPE
    if not check_length(event.source, SOURCE_MAX):
        return ResourceType.SOURCE
    if not check_length(event.description, DESCRIPTION_MAX):
        return ResourceType.DESCRIPTION
    if event.asset_ids is not None and (
        len(event.asset_ids) > ASSET_IDS_MAX or any(i < 1 for i in event.asset_ids)
    ):
        return ResourceType.ASSET_ID
    start, end = event.start_time, event.end_time
    if (
        (start is not None and start < 0)
        or (end is not None and end < 0)
        or (start is not None and end is not None and start > end)
    ):
        return ResourceType.TIME_RANGE
    if event.data_set_id is not None and event.data_set_id < 1:
        return ResourceType.DATA_SET_ID
    if not verify_metadata(event.metadata, *_METADATA_LIMITS):
        return ResourceType.METADATA
    return None


def clean_event_request(
    events: Sequence[EventCreate], mode: SanitationMode
) -> tuple[list[EventCreate], list[ClassifiedError[EventCreate]]]:
    return clean_request(
        events,
        mode,
        sanitize_event,
        verify_event,
        unique_keys=((ResourceType.EXTERNAL_ID, lambda e: e.external_id, "Conflicting identifiers"),),
    )
