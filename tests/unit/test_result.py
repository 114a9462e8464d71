"""
Unit tests for WriteResult aggregation.
"""

import pytest

from resource_writer import (
    ClassifiedError,
    ErrorKind,
    ExternalId,
    RemoteFailure,
    ResourceType,
    WriteErrorException,
    WriteErrorGroup,
    WriteResult,
)


def missing(*skipped, resource=ResourceType.DATA_SET_ID):
    return ClassifiedError(
        kind=ErrorKind.ITEM_MISSING,
        resource=resource,
        affected={ExternalId(s) for s in skipped},
        skipped=list(skipped),
        message="missing",
    )


def test_merge_keeps_order_and_ignores_none():
    merged = WriteResult.merge(
        [WriteResult(successes=[1, 2]), None, WriteResult(successes=[3], errors=[missing("x")])]
    )

    assert merged.successes == [1, 2, 3]
    assert merged.skipped_count == 1


def test_throw():
    WriteResult(successes=[1]).throw()

    with pytest.raises(WriteErrorException) as info:
        WriteResult(errors=[missing("x")]).throw()
    assert "data_set_id" in str(info.value)

    with pytest.raises(WriteErrorGroup) as group:
        WriteResult(errors=[missing("x"), ClassifiedError(message="boom")]).throw()
    assert len(group.value.exceptions) == 2


def test_throw_on_fatal_only():
    result = WriteResult(errors=[missing("x")])
    result.throw_on_fatal()

    result.errors.append(ClassifiedError(message="boom"))
    with pytest.raises(WriteErrorException):
        result.throw_on_fatal()


def test_exception_chains_remote_failure():
    cause = RemoteFailure("bad", status=400, request_id="req-1")
    error = ClassifiedError(message="bad", exception=cause)

    with pytest.raises(WriteErrorException) as info:
        WriteResult(errors=[error]).throw()
    assert info.value.__cause__ is cause
    assert "RequestId: req-1" in str(info.value)


def test_merge_errors_by_kind_and_resource():
    fatal = ClassifiedError(message="boom", skipped=["f"])
    result = WriteResult(
        errors=[missing("a"), fatal, missing("b"), missing("c", resource=ResourceType.ASSET_ID)]
    )

    result.merge_errors()

    assert [(e.kind, e.resource) for e in result.errors] == [
        (ErrorKind.ITEM_MISSING, ResourceType.DATA_SET_ID),
        (ErrorKind.FATAL_FAILURE, ResourceType.NONE),
        (ErrorKind.ITEM_MISSING, ResourceType.ASSET_ID),
    ]
    assert result.errors[0].skipped == ["a", "b"]
    assert result.errors[0].affected == {ExternalId("a"), ExternalId("b")}
    assert result.skipped_count == 4


def test_errors_by_skipped():
    shared = {"name": "unhashable"}
    first = ClassifiedError(message="one", skipped=[shared, "a"])
    second = ClassifiedError(message="two", skipped=[shared])

    grouped = WriteResult(errors=[first, second]).errors_by_skipped()

    assert [item for item, _ in grouped] == [shared, "a"]
    assert grouped[0][1] == [first, second]


def test_replace_skipped():
    result = WriteResult(successes=["ok"], errors=[missing("x")])

    replaced = result.replace_skipped(str.upper)

    assert replaced.errors[0].skipped == ["X"]
    assert result.errors[0].skipped == ["x"]
