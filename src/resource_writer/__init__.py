"""
Resource Writer

Reliable bulk writes against a remote resource store: requests are
sanitized, chunked, dispatched with bounded concurrency and retried around
the items a failure names. Every input item ends up either in the result's
successes or in exactly one of its errors.

Usage:
    from resource_writer import RetryPolicy, ensure_time_series, insert_datapoints

    result = await ensure_time_series(client, [TimeSeriesCreate(external_id="ts-1")])
    if not result.all_good:
        for error in result.errors:
            print(error.describe(), len(error.skipped))

    await insert_datapoints(datapoints_client, {"ts-1": [Datapoint.of(0, 1.5)]})
"""

from .errors import (
    ClassifiedError,
    ErrorKind,
    NeedsVerification,
    RemoteFailure,
    RequestType,
    Resolved,
    ResourceType,
    WriteErrorException,
    WriteErrorGroup,
)
from .identity import ExternalId, Identity, InstanceId, InternalId, WriteItem, identity_of
from .policy import RetryPolicy, SanitationMode
from .result import WriteResult
from .resources import (
    DeleteResult,
    UpsertOptions,
    delete_datapoints,
    ensure_assets,
    ensure_events,
    ensure_sequences,
    ensure_time_series,
    get_assets_by_ids,
    get_events_by_ids,
    get_or_create_assets,
    get_or_create_events,
    get_or_create_time_series,
    get_time_series_by_ids,
    insert_datapoints,
    insert_sequence_rows,
    update_assets,
    update_time_series,
    upsert_assets,
    upsert_time_series,
)
from .settings import WriterSettings, get_settings

__version__ = "1.0.0"
__all__ = [
    "ClassifiedError",
    "DeleteResult",
    "ErrorKind",
    "ExternalId",
    "Identity",
    "InstanceId",
    "InternalId",
    "NeedsVerification",
    "RemoteFailure",
    "RequestType",
    "Resolved",
    "ResourceType",
    "RetryPolicy",
    "SanitationMode",
    "UpsertOptions",
    "WriteErrorException",
    "WriteErrorGroup",
    "WriteItem",
    "WriteResult",
    "WriterSettings",
    "delete_datapoints",
    "ensure_assets",
    "ensure_events",
    "ensure_sequences",
    "ensure_time_series",
    "get_assets_by_ids",
    "get_events_by_ids",
    "get_or_create_assets",
    "get_or_create_events",
    "get_or_create_time_series",
    "get_settings",
    "get_time_series_by_ids",
    "identity_of",
    "insert_datapoints",
    "insert_sequence_rows",
    "update_assets",
    "update_time_series",
    "upsert_assets",
    "upsert_time_series",
]
