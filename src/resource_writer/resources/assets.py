"""
Bulk asset writes.

Assets form a hierarchy: a child referencing its parent by external id can
only be created once the parent exists, so creates are ordered parents first.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger

from ..client import AssetsClient
from ..coordinator import (
    AssetUpdateParentReconciler,
    ParentExternalIdReconciler,
    RetryCoordinator,
    chunk_by,
    chunk_by_hierarchy,
    retrieve_chunked,
)
from ..errors import ClassifiedError, RequestType, ResourceType
from ..identity import Identity
from ..models import Asset, AssetCreate, AssetUpdate, AssetUpdateItem, ListUpdate
from ..policy import RetryPolicy, SanitationMode
from ..result import WriteResult
from ..sanitation import clean_asset_request, clean_asset_update_request
from ..settings import WriterSettings, get_settings
from .base import contains, get_or_create, with_sanitation_errors, write_in_chunks
from .upsert import UpsertComposer, UpsertOptions, field_update, list_update, metadata_update

RESOURCE = "assets"


def _any_label(bad: set[Identity], labels: Optional[list[str]]) -> bool:
    return any(contains(bad, label) for label in labels or ())


def _label_update_values(update: Optional[ListUpdate]) -> list[str]:
    if update is None:
        return []
    return list(update.set or []) + list(update.add or [])


def is_affected(error: ClassifiedError, asset: AssetCreate) -> bool:
    bad = error.affected
    if error.resource == ResourceType.DATA_SET_ID:
        return contains(bad, asset.data_set_id)
    if error.resource == ResourceType.EXTERNAL_ID:
        return contains(bad, asset.external_id)
    if error.resource == ResourceType.PARENT_ID:
        return contains(bad, asset.parent_id)
    if error.resource == ResourceType.PARENT_EXTERNAL_ID:
        return contains(bad, asset.parent_external_id)
    if error.resource == ResourceType.LABELS:
        return _any_label(bad, asset.labels)
    return False


def is_update_affected(error: ClassifiedError, item: AssetUpdateItem) -> bool:
    bad = error.affected
    update = item.update
    if error.resource == ResourceType.ID:
        return item.identity in bad
    if error.resource == ResourceType.DATA_SET_ID:
        return update.data_set_id is not None and contains(bad, update.data_set_id.set)
    if error.resource == ResourceType.PARENT_ID:
        return update.parent_id is not None and contains(bad, update.parent_id.set)
    if error.resource == ResourceType.PARENT_EXTERNAL_ID:
        return update.parent_external_id is not None and contains(bad, update.parent_external_id.set)
    if error.resource == ResourceType.EXTERNAL_ID:
        if update.external_id is not None and contains(bad, update.external_id.set):
            return True
        return item.identity in bad
    if error.resource == ResourceType.LABELS:
        return _any_label(bad, _label_update_values(update.labels))
    return False


async def get_assets_by_ids(
    client: AssetsClient,
    ids: Iterable[Identity],
    *,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> list[Asset]:
    settings = settings or get_settings()
    return await retrieve_chunked(
        client.retrieve,
        ids,
        chunk_size or settings.assets_chunk_size,
        throttle or settings.assets_throttle,
        resource=RESOURCE,
        cancel=cancel,
    )


def _hierarchy_key(asset: AssetCreate):
    # assets without external id cannot be referenced as parents
    return asset.external_id if asset.external_id is not None else id(asset)


async def ensure_assets(
    client: AssetsClient,
    assets: Sequence[AssetCreate],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[Asset, AssetCreate]:
    """Create assets, parents before their children.

    Levels of the hierarchy are written one after the other; a large level is
    split into chunks that are written concurrently. Raises ``ValueError`` if
    the parent references form a cycle.
    """
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    chunk_size = chunk_size or settings.assets_chunk_size
    throttle = throttle or settings.assets_throttle
    cleaned, errors = clean_asset_request(assets, mode)

    levels = chunk_by_hierarchy(cleaned, chunk_size, _hierarchy_key, lambda a: a.parent_external_id)

    coordinator: RetryCoordinator[AssetCreate, Asset] = RetryCoordinator(
        RESOURCE,
        "create",
        RequestType.CREATE_ASSETS,
        client.create,
        is_affected,
        reconciler=ParentExternalIdReconciler(
            client, chunk_size=chunk_size, throttle=throttle, cancel=cancel
        ),
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )

    logger.debug(f"Creating {len(cleaned)} assets in {len(levels)} hierarchy levels")
    results: list[WriteResult[Asset, AssetCreate]] = []
    for level in levels:
        results.append(await write_in_chunks(coordinator, chunk_by(level, chunk_size), throttle, cancel))
    return with_sanitation_errors(WriteResult.merge(results), errors, RESOURCE)


async def get_or_create_assets(
    client: AssetsClient,
    external_ids: Sequence[str],
    build: Callable[[list[str]], list[AssetCreate]],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[Asset, AssetCreate]:
    """Fetch assets by external id, creating the missing ones with ``build``."""
    settings = settings or get_settings()
    policy = retry_policy if retry_policy is not None else settings.retry_policy
    return await get_or_create(
        partial(
            get_assets_by_ids,
            client,
            chunk_size=chunk_size,
            throttle=throttle,
            cancel=cancel,
            settings=settings,
        ),
        partial(
            ensure_assets,
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
        key_of=lambda a: a.external_id,
        key_of_record=lambda a: a.external_id,
        retry_policy=policy,
        settings=settings,
        cancel=cancel,
    )


async def update_assets(
    client: AssetsClient,
    updates: Sequence[AssetUpdateItem],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[Asset, AssetUpdateItem]:
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    chunk_size = chunk_size or settings.assets_chunk_size
    throttle = throttle or settings.assets_throttle
    cleaned, errors = clean_asset_update_request(updates, mode)

    coordinator: RetryCoordinator[AssetUpdateItem, Asset] = RetryCoordinator(
        RESOURCE,
        "update",
        RequestType.UPDATE_ASSETS,
        client.update,
        is_update_affected,
        reconciler=AssetUpdateParentReconciler(
            client, chunk_size=chunk_size, throttle=throttle, cancel=cancel
        ),
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )
    chunks = chunk_by(cleaned, chunk_size)
    result = await write_in_chunks(coordinator, chunks, throttle, cancel)
    return with_sanitation_errors(result, errors, RESOURCE)


def to_update(desired: AssetCreate, existing: Asset, options: UpsertOptions) -> Optional[AssetUpdateItem]:
    """Update turning ``existing`` into ``desired``, or None if they already match."""
    set_null = options.set_null
    update = AssetUpdate(
        name=field_update(desired.name, existing.name, set_null),
        description=field_update(desired.description, existing.description, set_null),
        data_set_id=field_update(desired.data_set_id, existing.data_set_id, set_null),
        source=field_update(desired.source, existing.source, set_null),
        metadata=metadata_update(desired.metadata, existing.metadata, options.replace_metadata),
        labels=list_update(desired.labels, existing.labels, options.replace_labels),
    )
    # parents are never cleared by an upsert
    if desired.parent_external_id is not None and desired.parent_external_id != existing.parent_external_id:
        update.parent_external_id = field_update(desired.parent_external_id, existing.parent_external_id, False)
    elif desired.parent_id is not None and desired.parent_id != existing.parent_id:
        update.parent_id = field_update(desired.parent_id, existing.parent_id, False)
    if not update.model_dump(exclude_none=True):
        return None
    return AssetUpdateItem(external_id=existing.external_id, update=update)


async def upsert_assets(
    client: AssetsClient,
    assets: Sequence[AssetCreate],
    options: Optional[UpsertOptions] = None,
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[Asset, AssetCreate]:
    """Create or update assets so they match ``assets``, in input order."""
    kwargs = dict(
        retry_policy=retry_policy,
        sanitation_mode=sanitation_mode,
        chunk_size=chunk_size,
        throttle=throttle,
        cancel=cancel,
        settings=settings,
    )
    composer: UpsertComposer[AssetCreate, AssetUpdateItem, Asset] = UpsertComposer(
        resource=RESOURCE,
        key_of=lambda a: a.external_id,
        key_of_record=lambda a: a.external_id,
        key_of_update=lambda item: item.external_id,
        get_or_create=partial(get_or_create_assets, client, **kwargs),
        to_update=to_update,
        update=partial(update_assets, client, **kwargs),
    )
    return await composer.upsert(assets, options or UpsertOptions())
