"""
Sanitation rules for time series create and update requests.
"""

from __future__ import annotations

from typing import Optional, Sequence

from ..errors import ClassifiedError, ResourceType
from ..models import FieldUpdate, TimeSeriesCreate, TimeSeriesUpdateItem
from ..policy import SanitationMode
from ..utils import check_length, truncate
from .base import (
    EXTERNAL_ID_MAX,
    clean_request,
    positive_or_none,
    sanitize_metadata,
    verify_metadata,
)

NAME_MAX = 255
DESCRIPTION_MAX = 1000
UNIT_MAX = 32
METADATA_MAX_PER_KEY = 128
METADATA_MAX_PER_VALUE = 10_000
METADATA_MAX_BYTES = 10_000
METADATA_MAX_PAIRS = 256

_METADATA_LIMITS = (METADATA_MAX_PER_KEY, METADATA_MAX_PAIRS, METADATA_MAX_PER_VALUE, METADATA_MAX_BYTES)


def sanitize_time_series(ts: TimeSeriesCreate) -> None:
    ts.external_id = truncate(ts.external_id, EXTERNAL_ID_MAX)
    ts.name = truncate(ts.name, NAME_MAX)
    ts.asset_id = positive_or_none(ts.asset_id)
    ts.description = truncate(ts.description, DESCRIPTION_MAX)
    ts.data_set_id = positive_or_none(ts.data_set_id)
    ts.metadata = sanitize_metadata(ts.metadata, *_METADATA_LIMITS)
    ts.unit = truncate(ts.unit, UNIT_MAX)
    ts.legacy_name = truncate(ts.legacy_name, EXTERNAL_ID_MAX)


def verify_time_series(ts: TimeSeriesCreate) -> Optional[ResourceType]:
    if not check_length(ts.external_id, EXTERNAL_ID_MAX):
        return ResourceType.EXTERNAL_ID
    if not check_length(ts.name, NAME_MAX):
        return ResourceType.NAME
    if ts.asset_id is not None and ts.asset_id < 1:
        return ResourceType.ASSET_ID
    if not check_length(ts.description, DESCRIPTION_MAX):
        return ResourceType.DESCRIPTION
    if ts.data_set_id is not None and ts.data_set_id < 1:
        return ResourceType.DATA_SET_ID
    if not verify_metadata(ts.metadata, *_METADATA_LIMITS):
        return ResourceType.METADATA
    if not check_length(ts.unit, UNIT_MAX):
        return ResourceType.UNIT
    if not check_length(ts.legacy_name, EXTERNAL_ID_MAX):
        return ResourceType.LEGACY_NAME
    return None


def clean_time_series_request(
    timeseries: Sequence[TimeSeriesCreate], mode: SanitationMode
) -> tuple[list[TimeSeriesCreate], list[ClassifiedError[TimeSeriesCreate]]]:
    """Sanitize time series and drop duplicated external ids and legacy names.

    The first occurrence of a duplicate is kept.
    """
    return clean_request(
        timeseries,
        mode,
        sanitize_time_series,
        verify_time_series,
        unique_keys=(
            (ResourceType.EXTERNAL_ID, lambda ts: ts.external_id, "Conflicting identifiers"),
            (ResourceType.LEGACY_NAME, lambda ts: ts.legacy_name, "Duplicated metric names in request"),
        ),
    )


def _truncate_set(update: Optional[FieldUpdate], max_length: int) -> None:
    if update is not None and isinstance(update.set, str):
        update.set = truncate(update.set, max_length)


def _set_too_long(update: Optional[FieldUpdate], max_length: int) -> bool:
    return update is not None and isinstance(update.set, str) and len(update.set) > max_length


def _bad_reference(update: Optional[FieldUpdate]) -> bool:
    return update is not None and isinstance(update.set, int) and update.set < 1


def sanitize_time_series_update(item: TimeSeriesUpdateItem) -> None:
    item.external_id = truncate(item.external_id, EXTERNAL_ID_MAX)
    update = item.update
    _truncate_set(update.external_id, EXTERNAL_ID_MAX)
    _truncate_set(update.name, NAME_MAX)
    _truncate_set(update.description, DESCRIPTION_MAX)
    _truncate_set(update.unit, UNIT_MAX)
    for ref in (update.asset_id, update.data_set_id):
        if _bad_reference(ref):
            ref.set = None
            ref.set_null = True
    if update.metadata is not None:
        update.metadata.set = sanitize_metadata(update.metadata.set, *_METADATA_LIMITS)
        update.metadata.add = sanitize_metadata(update.metadata.add, *_METADATA_LIMITS)


def verify_time_series_update(item: TimeSeriesUpdateItem) -> Optional[ResourceType]:
    update = item.update
    if not check_length(item.external_id, EXTERNAL_ID_MAX) or _set_too_long(update.external_id, EXTERNAL_ID_MAX):
        return ResourceType.EXTERNAL_ID
    if _set_too_long(update.name, NAME_MAX):
        return ResourceType.NAME
    if _set_too_long(update.description, DESCRIPTION_MAX):
        return ResourceType.DESCRIPTION
    if _set_too_long(update.unit, UNIT_MAX):
        return ResourceType.UNIT
    if _bad_reference(update.asset_id):
        return ResourceType.ASSET_ID
    if _bad_reference(update.data_set_id):
        return ResourceType.DATA_SET_ID
    if update.metadata is not None and not (
        verify_metadata(update.metadata.set, *_METADATA_LIMITS)
        and verify_metadata(update.metadata.add, *_METADATA_LIMITS)
    ):
        return ResourceType.METADATA
    return None


def clean_time_series_update_request(
    items: Sequence[TimeSeriesUpdateItem], mode: SanitationMode
) -> tuple[list[TimeSeriesUpdateItem], list[ClassifiedError[TimeSeriesUpdateItem]]]:
    """Sanitize time series updates, keeping one update per target."""
    return clean_request(
        items,
        mode,
        sanitize_time_series_update,
        verify_time_series_update,
        unique_keys=((ResourceType.ID, lambda item: item.identity, "Duplicate update targets"),),
    )
