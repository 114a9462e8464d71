"""
Unit tests for the strip-and-retry loop and its retry policies.
"""

import asyncio

import pytest

from resource_writer import (
    ClassifiedError,
    ErrorKind,
    ExternalId,
    InternalId,
    RemoteFailure,
    RequestType,
    ResourceType,
    RetryPolicy,
    WriteResult,
)
from resource_writer.coordinator import RetryCoordinator, retry_duplicates, strip_items
from resource_writer.models import TimeSeries, TimeSeriesCreate
from resource_writer.resources.timeseries import is_affected


class ScriptedSubmit:
    """Submit function failing with the scripted exceptions, then succeeding."""

    def __init__(self, *failures):
        self.failures = list(failures)
        self.calls = []

    async def __call__(self, items):
        self.calls.append([ts.external_id for ts in items])
        if self.failures:
            raise self.failures.pop(0)
        return [TimeSeries(id=i, **ts.model_dump()) for i, ts in enumerate(items)]


def make_items(n=6, data_set_of=lambda i: None):
    return [TimeSeriesCreate(external_id=f"ts-{i}", data_set_id=data_set_of(i)) for i in range(n)]


def coordinator(submit, policy, settings, **kwargs):
    return RetryCoordinator(
        "timeseries",
        "create",
        RequestType.CREATE_TIME_SERIES,
        submit,
        is_affected,
        retry_policy=policy,
        settings=settings,
        **kwargs,
    )


MISSING_DATA_SET = RemoteFailure("Not found", status=400, missing=[{"dataSetId": 123}])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [MISSING_DATA_SET, RemoteFailure("Internal error", status=500), TimeoutError("slow")],
)
async def test_none_policy_stops_after_one_failure(settings, failure):
    submit = ScriptedSubmit(failure)
    items = make_items()

    result = await coordinator(submit, RetryPolicy.NONE, settings).run(items)

    assert len(submit.calls) == 1
    assert result.successes == []
    assert len(result.errors) == 1
    assert result.errors[0].skipped == items


@pytest.mark.asyncio
async def test_on_error_strips_exactly_the_affected_items(settings):
    submit = ScriptedSubmit(MISSING_DATA_SET)
    items = make_items(data_set_of=lambda i: 123 if i in (1, 4) else 7)

    result = await coordinator(submit, RetryPolicy.ON_ERROR, settings).run(items)

    assert submit.calls[1] == ["ts-0", "ts-2", "ts-3", "ts-5"]
    assert [ts.external_id for ts in result.successes] == ["ts-0", "ts-2", "ts-3", "ts-5"]
    [error] = result.errors
    assert error.kind == ErrorKind.ITEM_MISSING
    assert error.resource == ResourceType.DATA_SET_ID
    assert [ts.external_id for ts in error.skipped] == ["ts-1", "ts-4"]


@pytest.mark.asyncio
async def test_on_error_without_match_removes_everything(settings):
    submit = ScriptedSubmit(MISSING_DATA_SET)
    items = make_items(3)

    result = await coordinator(submit, RetryPolicy.ON_ERROR, settings).run(items)

    assert len(submit.calls) == 1
    assert result.errors[0].skipped == items


@pytest.mark.asyncio
async def test_on_fatal_retries_fatal_failures(settings):
    submit = ScriptedSubmit(TimeoutError("slow"), RemoteFailure("Bad gateway", status=502))
    items = make_items(3)

    result = await coordinator(submit, RetryPolicy.ON_FATAL, settings).run(items)

    assert len(submit.calls) == 3
    assert len(result.successes) == 3
    assert result.all_good


@pytest.mark.asyncio
async def test_on_fatal_aborts_on_other_errors(settings):
    submit = ScriptedSubmit(MISSING_DATA_SET)
    items = make_items(3, data_set_of=lambda i: 123)

    result = await coordinator(submit, RetryPolicy.ON_FATAL, settings).run(items)

    assert len(submit.calls) == 1
    assert result.errors[0].kind == ErrorKind.ITEM_MISSING
    assert result.errors[0].skipped == items


@pytest.mark.asyncio
async def test_incomplete_error_without_reconciler_covers_attempt(settings):
    submit = ScriptedSubmit(RemoteFailure("Something odd", status=400))
    items = make_items(4)

    result = await coordinator(submit, RetryPolicy.ON_ERROR, settings).run(items)

    [error] = result.errors
    assert error.kind == ErrorKind.FATAL_FAILURE
    assert error.is_complete
    assert error.skipped == items


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(settings):
    settings.max_attempts = 3
    submit = ScriptedSubmit(*[TimeoutError("slow")] * 5)
    items = make_items(2)

    result = await coordinator(submit, RetryPolicy.ON_FATAL, settings).run(items)

    assert len(submit.calls) == 3
    [error] = result.errors
    assert error.message.startswith("Gave up after 3 attempts")
    assert error.skipped == items


@pytest.mark.asyncio
async def test_cancelled_before_start(settings):
    cancel = asyncio.Event()
    cancel.set()
    submit = ScriptedSubmit()
    items = make_items(2)

    result = await coordinator(submit, RetryPolicy.ON_ERROR, settings, cancel=cancel).run(items)

    assert submit.calls == []
    [error] = result.errors
    assert error.message == "Operation cancelled"
    assert error.kind == ErrorKind.FATAL_FAILURE
    assert error.skipped == items


@pytest.mark.asyncio
async def test_failed_reconciliation_is_reported_as_fatal(settings):
    class BrokenReconciler:
        async def reconcile(self, error, pending):
            raise RuntimeError("lookup failed")

    submit = ScriptedSubmit(RemoteFailure("Something odd", status=400))
    items = make_items(3)

    result = await coordinator(
        submit, RetryPolicy.ON_ERROR, settings, reconciler=BrokenReconciler()
    ).run(items)

    [error] = result.errors
    assert error.kind == ErrorKind.FATAL_FAILURE
    assert error.message.startswith("Reconciliation failed")
    assert error.skipped == items


@pytest.mark.asyncio
async def test_bugs_in_submit_propagate(settings):
    submit = ScriptedSubmit(TypeError("unexpected keyword argument"))

    with pytest.raises(TypeError):
        await coordinator(submit, RetryPolicy.ON_FATAL, settings).run(make_items(2))
    assert len(submit.calls) == 1


@pytest.mark.asyncio
async def test_bugs_in_reconciler_propagate(settings):
    class BuggyReconciler:
        async def reconcile(self, error, pending):
            return pending.missing_attribute

    submit = ScriptedSubmit(RemoteFailure("Something odd", status=400))

    with pytest.raises(AttributeError):
        await coordinator(submit, RetryPolicy.ON_ERROR, settings, reconciler=BuggyReconciler()).run(
            make_items(2)
        )


@pytest.mark.asyncio
async def test_transport_errors_are_classified(settings):
    submit = ScriptedSubmit(TimeoutError("read timed out"))

    result = await coordinator(submit, RetryPolicy.ON_FATAL, settings).run(make_items(2))

    assert result.all_good
    assert len(submit.calls) == 2


@pytest.mark.asyncio
async def test_keep_duplicates_strips_existing_under_on_fatal(settings):
    existing = RemoteFailure("Duplicated", status=409, duplicated=[{"externalId": "ts-1"}])
    submit = ScriptedSubmit(existing)
    items = make_items(3)

    result = await coordinator(submit, RetryPolicy.ON_FATAL_KEEP_DUPLICATES, settings).run(items)

    assert [ts.external_id for ts in result.successes] == ["ts-0", "ts-2"]
    [error] = result.errors
    assert error.kind == ErrorKind.ITEM_EXISTS
    assert [ts.external_id for ts in error.skipped] == ["ts-1"]


@pytest.mark.asyncio
async def test_retry_duplicates_refetches_with_backoff():
    item = TimeSeriesCreate(external_id="ts-1")
    result = WriteResult(
        errors=[
            ClassifiedError(
                kind=ErrorKind.ITEM_EXISTS,
                resource=ResourceType.EXTERNAL_ID,
                affected={ExternalId("ts-1")},
                skipped=[item],
            )
        ]
    )
    refetched = []

    async def refetch(items):
        refetched.append(items)
        return WriteResult(successes=[TimeSeries(id=1, **i.model_dump()) for i in items])

    final = await retry_duplicates(result, refetch, resource="timeseries", limit=3, base_delay=0.001)

    assert refetched == [[item]]
    assert final.all_good
    assert [ts.external_id for ts in final.successes] == ["ts-1"]


def test_strip_items_without_affected_removes_all():
    items = make_items(3)
    error = ClassifiedError(kind=ErrorKind.ITEM_MISSING, resource=ResourceType.DATA_SET_ID)

    removed, remaining = strip_items(error, items, is_affected)

    assert removed == items
    assert remaining == []


def test_strip_items_matches_structurally():
    items = make_items(3, data_set_of=lambda i: i + 1)
    error = ClassifiedError(
        kind=ErrorKind.ITEM_MISSING, resource=ResourceType.DATA_SET_ID, affected={InternalId(2)}
    )

    removed, remaining = strip_items(error, items, is_affected)

    assert [ts.external_id for ts in removed] == ["ts-1"]
    assert [ts.external_id for ts in remaining] == ["ts-0", "ts-2"]
