"""
Unit tests for datapoint sanitation.
"""

import math

from resource_writer import ErrorKind, ExternalId, ResourceType, SanitationMode, WriteItem
from resource_writer.models import Datapoint
from resource_writer.sanitation import clean_datapoints_request
from resource_writer.sanitation.datapoints import (
    NUMERIC_VALUE_MAX,
    TIMESTAMP_MAX,
    sanitize_datapoint,
)


def test_sanitize_clamps_and_truncates():
    assert sanitize_datapoint(Datapoint.of(0, 1e200)).numeric_value == NUMERIC_VALUE_MAX
    assert len(sanitize_datapoint(Datapoint.of(0, "s" * 300)).string_value) == 255
    assert math.isnan(sanitize_datapoint(Datapoint.of(0, math.nan)).numeric_value)
    assert sanitize_datapoint(Datapoint.of(0, math.inf), -1.0).numeric_value == -1.0


def test_clean_removes_only_bad_datapoints():
    items = [
        WriteItem(ExternalId("a"), [Datapoint.of(1, 1.0), Datapoint.of(2, math.nan), Datapoint.of(TIMESTAMP_MAX + 1, 2.0)]),
        WriteItem(ExternalId("b"), [Datapoint.of(1, math.inf)]),
    ]

    cleaned, errors = clean_datapoints_request(items, SanitationMode.CLEAN)

    assert [(i.id, i.units) for i in cleaned] == [(ExternalId("a"), 1)]
    by_resource = {err.resource: err for err in errors}
    assert by_resource[ResourceType.DATA_POINT_VALUE].kind == ErrorKind.SANITATION_FAILED
    assert [(i.id, i.units) for i in by_resource[ResourceType.DATA_POINT_VALUE].skipped] == [
        (ExternalId("a"), 1),
        (ExternalId("b"), 1),
    ]
    assert [(i.id, i.units) for i in by_resource[ResourceType.DATA_POINT_TIMESTAMP].skipped] == [
        (ExternalId("a"), 1)
    ]
    # every datapoint is either kept or reported
    assert sum(i.units for i in cleaned) + sum(i.units for e in errors for i in e.skipped) == 4


def test_non_finite_replacement_keeps_datapoints():
    items = [WriteItem(ExternalId("a"), [Datapoint.of(1, math.nan)])]

    cleaned, errors = clean_datapoints_request(items, SanitationMode.CLEAN, non_finite_replacement=0.0)

    assert errors == []
    assert cleaned[0].payload[0].numeric_value == 0.0


def test_duplicate_series_and_long_external_ids():
    items = [
        WriteItem(ExternalId("a"), [Datapoint.of(1, 1.0)]),
        WriteItem(ExternalId("a"), [Datapoint.of(2, 2.0)]),
        WriteItem(ExternalId("x" * 256), [Datapoint.of(1, 1.0)]),
    ]

    cleaned, errors = clean_datapoints_request(items, SanitationMode.REMOVE)

    assert cleaned == [items[0]]
    by_resource = {(err.kind, err.resource): err for err in errors}
    assert by_resource[(ErrorKind.ITEM_DUPLICATED, ResourceType.ID)].skipped == [items[1]]
    assert by_resource[(ErrorKind.SANITATION_FAILED, ResourceType.EXTERNAL_ID)].skipped == [items[2]]
