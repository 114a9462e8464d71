"""
Pydantic data models for write requests and remote records.

Create models are mutable: sanitation in ``clean`` mode edits them in place.
Remote records subclass their create model and add the store-assigned id.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, field_validator, model_validator

from .identity import ExternalId, Identity, InternalId


# --------------------------- update primitives


class FieldUpdate(BaseModel):
    """Set a scalar field, or clear it when ``set_null`` is true."""

    set: Any = None
    set_null: bool = False


class MapUpdate(BaseModel):
    """Replace (``set``) or patch (``add`` / ``remove``) a string map."""

    set: Optional[dict[str, str]] = None
    add: Optional[dict[str, str]] = None
    remove: Optional[list[str]] = None


class ListUpdate(BaseModel):
    """Replace (``set``) or patch (``add`` / ``remove``) a list field."""

    set: Optional[list[Any]] = None
    add: Optional[list[Any]] = None
    remove: Optional[list[Any]] = None


class UpdateItem(BaseModel):
    """Base for update requests addressed by internal or external id."""

    id: Optional[int] = None
    external_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_id(self):
        if self.id is None and self.external_id is None:
            raise ValueError("Update item requires id or external_id")
        return self

    @property
    def identity(self) -> Identity:
        if self.id is not None:
            return InternalId(self.id)
        return ExternalId(self.external_id)


# --------------------------- time series


class TimeSeriesCreate(BaseModel):
    external_id: Optional[str] = None
    name: Optional[str] = None
    legacy_name: Optional[str] = None
    is_string: bool = False
    is_step: bool = False
    metadata: Optional[dict[str, str]] = None
    unit: Optional[str] = None
    asset_id: Optional[int] = None
    description: Optional[str] = None
    data_set_id: Optional[int] = None
    security_categories: Optional[list[int]] = None


class TimeSeries(TimeSeriesCreate):
    id: int


class TimeSeriesUpdate(BaseModel):
    external_id: Optional[FieldUpdate] = None
    name: Optional[FieldUpdate] = None
    description: Optional[FieldUpdate] = None
    unit: Optional[FieldUpdate] = None
    asset_id: Optional[FieldUpdate] = None
    data_set_id: Optional[FieldUpdate] = None
    metadata: Optional[MapUpdate] = None
    security_categories: Optional[ListUpdate] = None


class TimeSeriesUpdateItem(UpdateItem):
    update: TimeSeriesUpdate


# --------------------------- datapoints


class Datapoint(BaseModel):
    """Single datapoint, exactly one of ``numeric_value`` / ``string_value`` is set."""

    timestamp: int  # ms since epoch
    numeric_value: Optional[float] = None
    string_value: Optional[str] = None

    @model_validator(mode="after")
    def _one_value(self):
        if (self.numeric_value is None) == (self.string_value is None):
            raise ValueError("Datapoint needs exactly one of numeric_value, string_value")
        return self

    @classmethod
    def of(cls, timestamp: int, value: Union[float, int, str]) -> "Datapoint":
        if isinstance(value, str):
            return cls(timestamp=timestamp, string_value=value)
        return cls(timestamp=timestamp, numeric_value=float(value))

    @property
    def is_string(self) -> bool:
        return self.string_value is not None

    @property
    def is_finite(self) -> bool:
        return self.numeric_value is None or math.isfinite(self.numeric_value)


class TimeRange(BaseModel):
    """Inclusive range of timestamps (ms) to delete."""

    first: int
    last: int

    @field_validator("last")
    @classmethod
    def _ordered(cls, v, info):
        first = info.data.get("first")
        if first is not None and v < first:
            raise ValueError("TimeRange last must be >= first")
        return v


# --------------------------- assets


class AssetCreate(BaseModel):
    external_id: Optional[str] = None
    name: Optional[str] = None
    parent_id: Optional[int] = None
    parent_external_id: Optional[str] = None
    description: Optional[str] = None
    data_set_id: Optional[int] = None
    metadata: Optional[dict[str, str]] = None
    source: Optional[str] = None
    labels: Optional[list[str]] = None


class Asset(AssetCreate):
    id: int
    root_id: Optional[int] = None  # id of the top asset of its hierarchy


class AssetUpdate(BaseModel):
    external_id: Optional[FieldUpdate] = None
    name: Optional[FieldUpdate] = None
    description: Optional[FieldUpdate] = None
    data_set_id: Optional[FieldUpdate] = None
    parent_id: Optional[FieldUpdate] = None
    parent_external_id: Optional[FieldUpdate] = None
    source: Optional[FieldUpdate] = None
    metadata: Optional[MapUpdate] = None
    labels: Optional[ListUpdate] = None


class AssetUpdateItem(UpdateItem):
    update: AssetUpdate


# --------------------------- events


class EventCreate(BaseModel):
    external_id: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    type: Optional[str] = None
    subtype: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[dict[str, str]] = None
    asset_ids: Optional[list[int]] = None
    source: Optional[str] = None
    data_set_id: Optional[int] = None


class Event(EventCreate):
    id: int


# --------------------------- sequences


class SequenceColumn(BaseModel):
    external_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[dict[str, str]] = None
    value_type: Literal["string", "double", "long"] = "double"


class SequenceCreate(BaseModel):
    external_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    asset_id: Optional[int] = None
    data_set_id: Optional[int] = None
    metadata: Optional[dict[str, str]] = None
    columns: list[SequenceColumn] = []


class Sequence(SequenceCreate):
    id: int


class SequenceRow(BaseModel):
    row_number: int
    values: Optional[list[Union[float, int, str, None]]] = None


class SequenceRowsCreate(BaseModel):
    """Rows to insert into one sequence, addressed by id or external id."""

    id: Optional[int] = None
    external_id: Optional[str] = None
    columns: list[str] = []
    rows: list[SequenceRow] = []

    @property
    def identity(self) -> Optional[Identity]:
        if self.id is not None:
            return InternalId(self.id)
        if self.external_id is not None:
            return ExternalId(self.external_id)
        return None


@dataclass(frozen=True)
class DeleteRange:
    """One inclusive time range to delete from one time series."""

    id: Identity
    range: TimeRange
