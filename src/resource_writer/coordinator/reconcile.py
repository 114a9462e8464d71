"""
Reconcilers complete errors the classifier could not attribute to items.

Each one looks up the current remote state of what the pending items refer
to and returns fully attributed errors plus the items worth another attempt.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from ..client import AssetsClient, TimeSeriesClient
from ..errors import ClassifiedError, ErrorKind, ResourceType
from ..identity import ExternalId, Identity, InternalId, WriteItem
from ..models import Asset, AssetCreate, AssetUpdateItem, Datapoint, TimeSeries
from .throttle import retrieve_chunked


class DatapointTypeReconciler:
    """Find datapoints whose value type does not match their time series.

    Mismatched datapoints are reported as ``MismatchedType``; the matching
    datapoints of the same series stay pending. Series that do not exist
    remotely stay pending as well, so the next attempt reports them as
    missing instead of them being counted twice here.
    """

    def __init__(
        self,
        timeseries: TimeSeriesClient,
        *,
        chunk_size: int,
        throttle: int,
        cancel: Optional[asyncio.Event] = None,
    ):
        self._timeseries = timeseries
        self._chunk_size = chunk_size
        self._throttle = throttle
        self._cancel = cancel

    async def reconcile(
        self, error: ClassifiedError, pending: list[WriteItem[Datapoint]]
    ) -> tuple[list[ClassifiedError], list[WriteItem[Datapoint]]]:
        found: list[TimeSeries] = await retrieve_chunked(
            self._timeseries.retrieve,
            (item.id for item in pending),
            self._chunk_size,
            self._throttle,
            resource="timeseries",
            cancel=self._cancel,
        )
        remote: dict[Identity, TimeSeries] = {}
        for ts in found:
            remote[InternalId(ts.id)] = ts
            if ts.external_id is not None:
                remote[ExternalId(ts.external_id)] = ts

        mismatched: list[WriteItem[Datapoint]] = []
        remaining: list[WriteItem[Datapoint]] = []
        for item in pending:
            ts = remote.get(item.id)
            if ts is None:
                remaining.append(item)
                continue
            good = [dp for dp in item.payload if dp.is_string == ts.is_string]
            bad = [dp for dp in item.payload if dp.is_string != ts.is_string]
            if bad:
                mismatched.append(WriteItem(item.id, bad))
            if good:
                remaining.append(WriteItem(item.id, good))

        if not mismatched:
            return [], pending

        logger.debug(f"Found {len(mismatched)} time series with mismatched datapoint types")
        return [
            ClassifiedError(
                kind=ErrorKind.MISMATCHED_TYPE,
                resource=ResourceType.DATA_POINT_VALUE,
                affected={item.id for item in mismatched},
                skipped=mismatched,
                status=error.status,
                message=error.message or "Mismatched timeseries",
                exception=error.exception,
            )
        ], remaining


class ParentExternalIdReconciler:
    """Find every missing parent when asset creation reports only the first one.

    Parents that are part of the pending batch are not looked up.
    """

    def __init__(
        self,
        assets: AssetsClient,
        *,
        chunk_size: int,
        throttle: int,
        cancel: Optional[asyncio.Event] = None,
    ):
        self._assets = assets
        self._chunk_size = chunk_size
        self._throttle = throttle
        self._cancel = cancel

    async def reconcile(
        self, error: ClassifiedError, pending: list[AssetCreate]
    ) -> tuple[list[ClassifiedError], list[AssetCreate]]:
        if error.resource != ResourceType.PARENT_EXTERNAL_ID:
            return [], pending

        in_batch = {ExternalId(a.external_id) for a in pending if a.external_id is not None}
        parents = {ExternalId(a.parent_external_id) for a in pending if a.parent_external_id is not None}
        candidates = parents - error.affected - in_batch

        found = await retrieve_chunked(
            self._assets.retrieve,
            candidates,
            self._chunk_size,
            self._throttle,
            resource="assets",
            cancel=self._cancel,
        )
        existing = {ExternalId(a.external_id) for a in found if a.external_id is not None}
        missing = (candidates - existing) | (error.affected & parents)

        removed: list[AssetCreate] = []
        remaining: list[AssetCreate] = []
        for asset in pending:
            if asset.parent_external_id is not None and ExternalId(asset.parent_external_id) in missing:
                removed.append(asset)
            else:
                remaining.append(asset)

        error.affected = missing
        error.skipped = removed
        error.is_complete = True
        return [error], remaining


def _new_parent(item: AssetUpdateItem) -> Optional[Identity]:
    update = item.update
    if update.parent_id is not None and update.parent_id.set is not None:
        return InternalId(update.parent_id.set)
    if update.parent_external_id is not None and update.parent_external_id.set is not None:
        return ExternalId(update.parent_external_id.set)
    return None


class AssetUpdateParentReconciler:
    """Find asset updates moving an asset under a missing parent or into another hierarchy.

    Updates whose new parent does not exist are reported as ``ItemMissing``,
    updates whose new parent belongs to another root as ``IllegalItem``. The
    other updates, including those of assets that do not exist, stay pending.
    """

    def __init__(
        self,
        assets: AssetsClient,
        *,
        chunk_size: int,
        throttle: int,
        cancel: Optional[asyncio.Event] = None,
    ):
        self._assets = assets
        self._chunk_size = chunk_size
        self._throttle = throttle
        self._cancel = cancel

    async def reconcile(
        self, error: ClassifiedError, pending: list[AssetUpdateItem]
    ) -> tuple[list[ClassifiedError], list[AssetUpdateItem]]:
        if error.resource != ResourceType.PARENT_ID:
            return [], pending

        to_fetch: set[Identity] = set()
        for item in pending:
            parent = _new_parent(item)
            if parent is not None:
                to_fetch.add(parent)
                to_fetch.add(item.identity)

        found: list[Asset] = await retrieve_chunked(
            self._assets.retrieve,
            to_fetch,
            self._chunk_size,
            self._throttle,
            resource="assets",
            cancel=self._cancel,
        )
        remote: dict[Identity, Asset] = {}
        for asset in found:
            remote[InternalId(asset.id)] = asset
            if asset.external_id is not None:
                remote[ExternalId(asset.external_id)] = asset

        missing = ClassifiedError(
            kind=ErrorKind.ITEM_MISSING,
            resource=ResourceType.PARENT_ID,
            status=error.status,
            message="Missing asset parents",
            exception=error.exception,
        )
        moved = ClassifiedError(
            kind=ErrorKind.ILLEGAL_ITEM,
            resource=ResourceType.PARENT_ID,
            status=error.status,
            message="Changing from/to being root is not allowed",
            exception=error.exception,
        )
        remaining: list[AssetUpdateItem] = []
        for item in pending:
            parent_id = _new_parent(item)
            if parent_id is None:
                remaining.append(item)
                continue
            parent = remote.get(parent_id)
            if parent is None:
                missing.affected.add(parent_id)
                missing.skipped.append(item)
                continue
            current = remote.get(item.identity)
            if current is not None and current.root_id != parent.root_id:
                moved.affected.add(item.identity)
                moved.skipped.append(item)
                continue
            remaining.append(item)

        resolved = [err for err in (missing, moved) if err.skipped]
        if resolved:
            logger.debug(
                f"Found {len(missing.skipped)} asset updates with missing parents "
                f"and {len(moved.skipped)} moving assets to another hierarchy"
            )
        return resolved, remaining
