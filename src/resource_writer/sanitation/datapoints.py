"""
Sanitation rules for datapoint inserts.

Datapoints are handled per datapoint: a bad value only removes that
datapoint, the rest of its time series is still inserted.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from ..errors import ClassifiedError, ErrorKind, ResourceType
from ..identity import ExternalId, Identity, WriteItem
from ..models import Datapoint
from ..policy import SanitationMode
from ..utils import truncate
from .base import EXTERNAL_ID_MAX

NUMERIC_VALUE_MIN = -1e100
NUMERIC_VALUE_MAX = 1e100
STRING_LENGTH_MAX = 255
# 1900-01-01T00:00:00Z and 2099-12-31T23:59:59.999Z
TIMESTAMP_MIN = -2208988800000
TIMESTAMP_MAX = 4102444799999


def sanitize_datapoint(point: Datapoint, non_finite_replacement: Optional[float] = None) -> Datapoint:
    """Return a copy of ``point`` that fits the value limits, where possible.

    Non-finite numbers are replaced by ``non_finite_replacement`` if given,
    and left as they are otherwise.
    """
    if point.string_value is not None:
        if len(point.string_value) > STRING_LENGTH_MAX:
            return point.model_copy(update={"string_value": truncate(point.string_value, STRING_LENGTH_MAX)})
        return point
    value = point.numeric_value
    if math.isfinite(value):
        clamped = min(NUMERIC_VALUE_MAX, max(NUMERIC_VALUE_MIN, value))
        if clamped != value:
            return point.model_copy(update={"numeric_value": clamped})
        return point
    if non_finite_replacement is not None:
        return point.model_copy(update={"numeric_value": non_finite_replacement})
    return point


def verify_datapoint(point: Datapoint) -> Optional[ResourceType]:
    if point.string_value is not None and len(point.string_value) > STRING_LENGTH_MAX:
        return ResourceType.DATA_POINT_VALUE
    if point.numeric_value is not None:
        value = point.numeric_value
        if not math.isfinite(value) or value > NUMERIC_VALUE_MAX or value < NUMERIC_VALUE_MIN:
            return ResourceType.DATA_POINT_VALUE
    if point.timestamp > TIMESTAMP_MAX or point.timestamp < TIMESTAMP_MIN:
        return ResourceType.DATA_POINT_TIMESTAMP
    return None


def _valid_identity(identity: Identity) -> bool:
    return not isinstance(identity, ExternalId) or len(identity.external_id) <= EXTERNAL_ID_MAX


def clean_datapoints_request(
    items: Sequence[WriteItem[Datapoint]],
    mode: SanitationMode,
    non_finite_replacement: Optional[float] = None,
) -> tuple[list[WriteItem[Datapoint]], list[ClassifiedError[WriteItem[Datapoint]]]]:
    """Sanitize datapoints per time series.

    In ``clean`` mode values are repaired first; in both modes datapoints that
    still violate the limits are removed and reported, grouped by failed field,
    as ``WriteItem`` values holding only the removed datapoints. Items whose
    identity was already seen in the batch are reported as ``ItemDuplicated``.
    Items left without datapoints are dropped.
    """
    if mode == SanitationMode.NONE:
        return list(items), []

    result: list[WriteItem[Datapoint]] = []
    seen: set[Identity] = set()
    duplicated: list[WriteItem[Datapoint]] = []
    bad_ids: list[WriteItem[Datapoint]] = []
    bad: dict[ResourceType, list[WriteItem[Datapoint]]] = {}

    for item in items:
        if item.id in seen:
            duplicated.append(item)
            continue
        seen.add(item.id)
        if not _valid_identity(item.id):
            bad_ids.append(item)
            continue

        good: list[Datapoint] = []
        failed: dict[ResourceType, list[Datapoint]] = {}
        for point in item.payload:
            if mode == SanitationMode.CLEAN:
                point = sanitize_datapoint(point, non_finite_replacement)
            field = verify_datapoint(point)
            if field is None:
                good.append(point)
            else:
                failed.setdefault(field, []).append(point)

        item.payload = good
        if good:
            result.append(item)
        for field, points in failed.items():
            bad.setdefault(field, []).append(WriteItem(item.id, points))

    errors: list[ClassifiedError[WriteItem[Datapoint]]] = []
    if duplicated:
        errors.append(
            ClassifiedError(
                kind=ErrorKind.ITEM_DUPLICATED,
                resource=ResourceType.ID,
                affected={item.id for item in duplicated},
                skipped=duplicated,
                status=409,
                message="Conflicting identifiers",
            )
        )
    if bad_ids:
        bad = {ResourceType.EXTERNAL_ID: bad_ids, **bad}
    for field, skipped in bad.items():
        errors.append(
            ClassifiedError(
                kind=ErrorKind.SANITATION_FAILED,
                resource=field,
                affected={item.id for item in skipped},
                skipped=skipped,
                status=400,
                message="Sanitation failed",
            )
        )
    return result, errors
