"""
Sanitation rules for asset create and update requests.
"""

from __future__ import annotations

from typing import Optional, Sequence

from ..errors import ClassifiedError, ResourceType
from ..models import AssetCreate, AssetUpdateItem, FieldUpdate
from ..policy import SanitationMode
from ..utils import check_length, truncate
from .base import (
    EXTERNAL_ID_MAX,
    clean_request,
    positive_or_none,
    sanitize_metadata,
    verify_metadata,
)

NAME_MAX = 140
DESCRIPTION_MAX = 500
SOURCE_MAX = 128
LABELS_MAX = 10
METADATA_MAX_PER_KEY = 128
METADATA_MAX_PER_VALUE = 10_240
METADATA_MAX_BYTES = 10_240
METADATA_MAX_PAIRS = 256

_METADATA_LIMITS = (METADATA_MAX_PER_KEY, METADATA_MAX_PAIRS, METADATA_MAX_PER_VALUE, METADATA_MAX_BYTES)


def _sanitize_labels(labels: Optional[list[str]]) -> Optional[list[str]]:
    if labels is None:
        return None
    return [truncate(label, EXTERNAL_ID_MAX) for label in labels if label is not None][:LABELS_MAX]


def _verify_labels(labels: Optional[list[str]]) -> bool:
    if labels is None:
        return True
    return len(labels) <= LABELS_MAX and all(
        label is not None and check_length(label, EXTERNAL_ID_MAX) for label in labels
    )


def sanitize_asset(asset: AssetCreate) -> None:
    asset.external_id = truncate(asset.external_id, EXTERNAL_ID_MAX)
    asset.name = truncate(asset.name, NAME_MAX)
    asset.parent_id = positive_or_none(asset.parent_id)
    asset.parent_external_id = truncate(asset.parent_external_id, EXTERNAL_ID_MAX)
    asset.description = truncate(asset.description, DESCRIPTION_MAX)
    asset.data_set_id = positive_or_none(asset.data_set_id)
    asset.metadata = sanitize_metadata(asset.metadata, *_METADATA_LIMITS)
    asset.source = truncate(asset.source, SOURCE_MAX)
    asset.labels = _sanitize_labels(asset.labels)


def verify_asset(asset: AssetCreate) -> Optional[ResourceType]:
    if not check_length(asset.external_id, EXTERNAL_ID_MAX):
        return ResourceType.EXTERNAL_ID
    if asset.name is None or not check_length(asset.name, NAME_MAX):
        return ResourceType.NAME
    if asset.parent_id is not None and asset.parent_id < 1:
        return ResourceType.PARENT_ID
    if not check_length(asset.parent_external_id, EXTERNAL_ID_MAX):
        return ResourceType.PARENT_EXTERNAL_ID
    if not check_length(asset.description, DESCRIPTION_MAX):
        return ResourceType.DESCRIPTION
    if asset.data_set_id is not None and asset.data_set_id < 1:
        return ResourceType.DATA_SET_ID
    if not verify_metadata(asset.metadata, *_METADATA_LIMITS):
        return ResourceType.METADATA
    if not check_length(asset.source, SOURCE_MAX):
        return ResourceType.SOURCE
    if not _verify_labels(asset.labels):
        return ResourceType.LABELS
    return None


def clean_asset_request(
    assets: Sequence[AssetCreate], mode: SanitationMode
) -> tuple[list[AssetCreate], list[ClassifiedError[AssetCreate]]]:
    """Sanitize assets and drop duplicated external ids, keeping the first."""
    return clean_request(
        assets,
        mode,
        sanitize_asset,
        verify_asset,
        unique_keys=((ResourceType.EXTERNAL_ID, lambda a: a.external_id, "Conflicting identifiers"),),
    )


def _truncate_set(update: Optional[FieldUpdate], max_length: int) -> None:
    if update is not None and isinstance(update.set, str):
        update.set = truncate(update.set, max_length)


def _set_too_long(update: Optional[FieldUpdate], max_length: int) -> bool:
    return update is not None and isinstance(update.set, str) and len(update.set) > max_length


def sanitize_asset_update(item: AssetUpdateItem) -> None:
    item.external_id = truncate(item.external_id, EXTERNAL_ID_MAX)
    update = item.update
    _truncate_set(update.external_id, EXTERNAL_ID_MAX)
    _truncate_set(update.name, NAME_MAX)
    _truncate_set(update.description, DESCRIPTION_MAX)
    _truncate_set(update.parent_external_id, EXTERNAL_ID_MAX)
    _truncate_set(update.source, SOURCE_MAX)
    if update.data_set_id is not None and isinstance(update.data_set_id.set, int) and update.data_set_id.set < 1:
        update.data_set_id = FieldUpdate(set_null=True)
    if update.parent_id is not None and isinstance(update.parent_id.set, int) and update.parent_id.set < 1:
        # an asset cannot be detached from its parent, drop the change
        update.parent_id = None
    if update.metadata is not None:
        update.metadata.set = sanitize_metadata(update.metadata.set, *_METADATA_LIMITS)
        update.metadata.add = sanitize_metadata(update.metadata.add, *_METADATA_LIMITS)
    if update.labels is not None:
        update.labels.set = _sanitize_labels(update.labels.set)
        update.labels.add = _sanitize_labels(update.labels.add)


def verify_asset_update(item: AssetUpdateItem) -> Optional[ResourceType]:
    update = item.update
    if not check_length(item.external_id, EXTERNAL_ID_MAX) or _set_too_long(update.external_id, EXTERNAL_ID_MAX):
        return ResourceType.EXTERNAL_ID
    if _set_too_long(update.name, NAME_MAX) or (update.name is not None and update.name.set_null):
        return ResourceType.NAME
    if _set_too_long(update.description, DESCRIPTION_MAX):
        return ResourceType.DESCRIPTION
    if _set_too_long(update.parent_external_id, EXTERNAL_ID_MAX):
        return ResourceType.PARENT_EXTERNAL_ID
    if update.parent_id is not None and isinstance(update.parent_id.set, int) and update.parent_id.set < 1:
        return ResourceType.PARENT_ID
    if update.data_set_id is not None and isinstance(update.data_set_id.set, int) and update.data_set_id.set < 1:
        return ResourceType.DATA_SET_ID
    if _set_too_long(update.source, SOURCE_MAX):
        return ResourceType.SOURCE
    if update.metadata is not None and not (
        verify_metadata(update.metadata.set, *_METADATA_LIMITS)
        and verify_metadata(update.metadata.add, *_METADATA_LIMITS)
    ):
        return ResourceType.METADATA
    if update.labels is not None and not (
        _verify_labels(update.labels.set) and _verify_labels(update.labels.add)
    ):
        return ResourceType.LABELS
    return None


def clean_asset_update_request(
    items: Sequence[AssetUpdateItem], mode: SanitationMode
) -> tuple[list[AssetUpdateItem], list[ClassifiedError[AssetUpdateItem]]]:
    return clean_request(
        items,
        mode,
        sanitize_asset_update,
        verify_asset_update,
        unique_keys=((ResourceType.ID, lambda item: item.identity, "Duplicate update targets"),),
    )
