"""
Unit tests for failure classification.
"""

import pytest

from resource_writer import (
    ErrorKind,
    ExternalId,
    InternalId,
    NeedsVerification,
    RemoteFailure,
    RequestType,
    Resolved,
    ResourceType,
)
from resource_writer.coordinator import classify, parse_id_string


def test_missing_data_set_is_resolved():
    exc = RemoteFailure("Not found", status=400, missing=[{"dataSetId": 123}, {"dataSetId": 124}])

    result = classify(exc, RequestType.CREATE_TIME_SERIES)

    assert isinstance(result, Resolved)
    assert result.error.kind == ErrorKind.ITEM_MISSING
    assert result.error.resource == ResourceType.DATA_SET_ID
    assert result.error.affected == {InternalId(123), InternalId(124)}
    assert result.error.is_complete


def test_referenced_fields_take_priority_over_own_ids():
    exc = RemoteFailure("Not found", status=400, missing=[{"assetId": 5, "id": 1}])

    result = classify(exc, RequestType.CREATE_TIME_SERIES)

    assert result.error.resource == ResourceType.ASSET_ID
    assert result.error.affected == {InternalId(5)}


def test_missing_own_ids():
    exc = RemoteFailure("Ids not found", status=400, missing=[{"externalId": "a"}, {"id": 7}])

    result = classify(exc, RequestType.CREATE_DATAPOINTS)

    assert isinstance(result, Resolved)
    assert result.error.resource == ResourceType.ID
    assert result.error.affected == {ExternalId("a"), InternalId(7)}


@pytest.mark.parametrize(
    "request_type,resource",
    [
        (RequestType.CREATE_EVENTS, ResourceType.ASSET_ID),
        (RequestType.UPDATE_ASSETS, ResourceType.ID),
    ],
)
def test_missing_asset_ids_by_request_type(request_type, resource):
    exc = RemoteFailure("Asset ids not found", status=400, missing=[{"id": 3}])

    result = classify(exc, request_type)

    assert result.error.resource == resource
    assert result.error.affected == {InternalId(3)}


def test_label_ids_not_found():
    exc = RemoteFailure("Label ids not found", status=400, missing=[{"externalId": "pump"}])

    result = classify(exc, RequestType.CREATE_ASSETS)

    assert result.error.resource == ResourceType.LABELS
    assert result.error.affected == {ExternalId("pump")}


def test_duplicated_external_ids():
    exc = RemoteFailure("Duplicated", status=409, duplicated=[{"externalId": "a"}, {"externalId": "b"}])

    result = classify(exc, RequestType.CREATE_TIME_SERIES)

    assert isinstance(result, Resolved)
    assert result.error.kind == ErrorKind.ITEM_EXISTS
    assert result.error.resource == ResourceType.EXTERNAL_ID
    assert result.error.affected == {ExternalId("a"), ExternalId("b")}


def test_duplicated_legacy_names():
    exc = RemoteFailure("Duplicated", status=409, duplicated=[{"legacyName": "temp"}])

    result = classify(exc, RequestType.CREATE_TIME_SERIES)

    assert result.error.resource == ResourceType.LEGACY_NAME
    assert result.error.affected == {ExternalId("temp")}


def test_unknown_parent_needs_verification():
    exc = RemoteFailure("Reference to unknown parent with externalId p1", status=400)

    result = classify(exc, RequestType.CREATE_ASSETS)

    assert isinstance(result, NeedsVerification)
    assert result.error.kind == ErrorKind.ITEM_MISSING
    assert result.error.resource == ResourceType.PARENT_EXTERNAL_ID
    assert result.error.affected == {ExternalId("p1")}
    assert not result.error.is_complete


def test_missing_parent_ids_from_message():
    exc = RemoteFailure("The given parent ids do not exist: 4, 5", status=400)

    result = classify(exc, RequestType.CREATE_ASSETS)

    assert isinstance(result, Resolved)
    assert result.error.resource == ResourceType.PARENT_ID
    assert result.error.affected == {InternalId(4), InternalId(5)}


def test_invalid_data_set_ids_from_message():
    exc = RemoteFailure("Invalid dataSetIds: [12]", status=400)

    result = classify(exc, RequestType.CREATE_EVENTS)

    assert result.error.resource == ResourceType.DATA_SET_ID
    assert result.error.affected == {InternalId(12)}


def test_mismatched_value_type_needs_verification():
    exc = RemoteFailure("Expected numeric value for datapoint", status=400)

    result = classify(exc, RequestType.CREATE_DATAPOINTS)

    assert isinstance(result, NeedsVerification)
    assert result.error.kind == ErrorKind.MISMATCHED_TYPE
    assert result.error.resource == ResourceType.DATA_POINT_VALUE


def test_illegal_parent_change_on_update():
    exc = RemoteFailure("Changing from/to being root isn't allowed", status=400)

    result = classify(exc, RequestType.UPDATE_ASSETS)

    assert isinstance(result, NeedsVerification)
    assert result.error.kind == ErrorKind.ILLEGAL_ITEM


@pytest.mark.parametrize(
    "exc",
    [
        RemoteFailure("Internal error", status=500),
        RemoteFailure("Unauthorized", status=401),
        RemoteFailure("Something odd", status=400),
        TimeoutError("timed out"),
    ],
)
def test_unknown_failures_are_incomplete_fatal(exc):
    result = classify(exc, RequestType.CREATE_TIME_SERIES)

    assert isinstance(result, NeedsVerification)
    assert result.error.kind == ErrorKind.FATAL_FAILURE
    assert not result.error.is_complete
    assert result.error.exception is exc


def test_parse_id_string():
    assert parse_id_string("[1, 2,3]") == {InternalId(1), InternalId(2), InternalId(3)}
    assert parse_id_string("1, junk, 2") == {InternalId(1), InternalId(2)}
    assert parse_id_string("") == set()
