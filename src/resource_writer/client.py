"""
Contracts of the remote store consumed by the bulk writers.

Implementations own transport, authentication and encoding. Writers raise
``RemoteFailure`` (or any other exception for transport problems) when a
request is rejected; a rejected request has written nothing. Readers return
only the records that exist and never fail on unknown ids.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from .identity import Identity, WriteItem
from .models import (
    Asset,
    AssetCreate,
    AssetUpdateItem,
    Datapoint,
    DeleteRange,
    Event,
    EventCreate,
    Sequence as SequenceRecord,
    SequenceCreate,
    SequenceRowsCreate,
    TimeSeries,
    TimeSeriesCreate,
    TimeSeriesUpdateItem,
)


@runtime_checkable
class TimeSeriesClient(Protocol):
    async def create(self, items: Sequence[TimeSeriesCreate]) -> list[TimeSeries]: ...

    async def update(self, items: Sequence[TimeSeriesUpdateItem]) -> list[TimeSeries]: ...

    async def retrieve(self, ids: Sequence[Identity]) -> list[TimeSeries]: ...


@runtime_checkable
class DatapointsClient(Protocol):
    async def insert(self, items: Sequence[WriteItem[Datapoint]]) -> None: ...

    async def delete(self, ranges: Sequence[DeleteRange]) -> None: ...

    async def retrieve(self, ranges: Sequence[DeleteRange], limit: int = 1) -> list[list[Datapoint]]:
        """Datapoints inside each range, in the order of ``ranges``."""
        ...


@runtime_checkable
class AssetsClient(Protocol):
    async def create(self, items: Sequence[AssetCreate]) -> list[Asset]: ...

    async def update(self, items: Sequence[AssetUpdateItem]) -> list[Asset]: ...

    async def retrieve(self, ids: Sequence[Identity]) -> list[Asset]: ...


@runtime_checkable
class EventsClient(Protocol):
    async def create(self, items: Sequence[EventCreate]) -> list[Event]: ...

    async def retrieve(self, ids: Sequence[Identity]) -> list[Event]: ...


@runtime_checkable
class SequencesClient(Protocol):
    async def create(self, items: Sequence[SequenceCreate]) -> list[SequenceRecord]: ...

    async def retrieve(self, ids: Sequence[Identity]) -> list[SequenceRecord]: ...

    async def insert_rows(self, items: Sequence[SequenceRowsCreate]) -> None: ...
