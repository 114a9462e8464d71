"""
Translate raw failures from the remote store into classified errors.

This is the only module that knows the remote store's failure shapes: the
field names carried by missing / duplicated descriptors and the message
prefixes of 400 responses. Upstream API changes should only touch this file.
"""

from __future__ import annotations

from typing import Any, Iterable

from ..errors import (
    Classification,
    ClassifiedError,
    ErrorKind,
    NeedsVerification,
    RemoteFailure,
    RequestType,
    Resolved,
    ResourceType,
)
from ..identity import ExternalId, Identity, InternalId, identity_of

_CLIENT_ERRORS = (400, 409, 422)

# Descriptor keys naming a referenced resource, checked in this order.
# The item's own id keys come last: they also appear on label and asset references.
_MISSING_FIELDS: tuple[tuple[str, ResourceType], ...] = (
    ("dataSetId", ResourceType.DATA_SET_ID),
    ("assetId", ResourceType.ASSET_ID),
    ("parentId", ResourceType.PARENT_ID),
    ("parentExternalId", ResourceType.PARENT_EXTERNAL_ID),
)

# Message prefixes of missing-reference failures whose descriptors only carry id keys.
_MISSING_PREFIXES: tuple[tuple[str, ResourceType], ...] = (
    ("label ids not found", ResourceType.LABELS),
    ("datasets ids not found", ResourceType.DATA_SET_ID),
    ("data set ids not found", ResourceType.DATA_SET_ID),
    ("dataset", ResourceType.DATA_SET_ID),
    ("data set", ResourceType.DATA_SET_ID),
)

_ID_KEYS = ("id", "externalId", "instanceId")

_PARENT_EXTERNAL_ID_MSG = "Reference to unknown parent with externalId"
_PARENT_IDS_MSG = "The given parent ids do not exist"
_DATA_SET_IDS_MSG = "Invalid dataSetIds"
_ASSET_IDS_MSG = "Asset ids not found"
_MISMATCHED_MSGS = ("Expected string value for datapoint", "Expected numeric value for datapoint")
_ILLEGAL_PARENT_MSGS = (
    "Changing from/to being root",
    "Asset must stay within same asset hierarchy",
)
_BAD_PARENT_MSG = "Bad parent"

_UPDATES = (RequestType.UPDATE_ASSETS, RequestType.UPDATE_TIME_SERIES)


def classify(exc: BaseException, request_type: RequestType) -> Classification:
    """Classify the failure of one request of ``request_type``.

    Returns ``Resolved`` when the affected identities are known from the
    failure itself, ``NeedsVerification`` when a reconciliation round trip
    is needed. Failures that match no known shape become an incomplete
    ``FatalFailure``.
    """
    if not isinstance(exc, RemoteFailure):
        return NeedsVerification(
            ClassifiedError(message=str(exc) or type(exc).__name__, exception=exc, is_complete=False)
        )

    error: ClassifiedError = ClassifiedError(
        status=exc.status, message=exc.message, exception=exc, is_complete=False
    )

    if exc.status and (exc.status >= 500 or exc.status not in _CLIENT_ERRORS):
        return NeedsVerification(error)

    if exc.missing:
        return _classify_missing(error, exc, request_type)
    if exc.duplicated:
        return _classify_duplicated(error, exc.duplicated)
    return _classify_message(error, exc.message or "", request_type)


def parse_id_string(text: str) -> set[Identity]:
    """Parse ``"1, 2,3"`` or ``"[1, 2]"`` into internal ids, ignoring junk."""
    ids: set[Identity] = set()
    for part in text.strip().strip("[]").split(","):
        part = part.strip()
        try:
            ids.add(InternalId(int(part)))
        except ValueError:
            continue
    return ids


def _values(descriptors: Iterable[dict[str, Any]], key: str) -> set[Identity]:
    found: set[Identity] = set()
    for desc in descriptors:
        value = desc.get(key)
        if value is None or isinstance(value, bool):
            continue
        found.add(identity_of(value))
    return found


def _own_ids(descriptors: Iterable[dict[str, Any]]) -> set[Identity]:
    found: set[Identity] = set()
    for desc in descriptors:
        for key in _ID_KEYS:
            if desc.get(key) is not None:
                found.add(identity_of(desc[key]))
                break
    return found


def _resolved(error: ClassifiedError, kind: ErrorKind, resource: ResourceType, affected) -> Resolved:
    error.kind = kind
    error.resource = resource
    error.affected = set(affected)
    error.is_complete = True
    return Resolved(error)


def _classify_missing(
    error: ClassifiedError, exc: RemoteFailure, request_type: RequestType
) -> Classification:
    descriptors = exc.missing or []
    keys = {key for desc in descriptors for key in desc}

    for key, resource in _MISSING_FIELDS:
        if key in keys:
            return _resolved(error, ErrorKind.ITEM_MISSING, resource, _values(descriptors, key))

    message = (exc.message or "").lower()
    if message.startswith(_ASSET_IDS_MSG.lower()) or (
        message.startswith("asset") and request_type == RequestType.CREATE_SEQUENCES
    ):
        # updates address assets directly, creates reference them
        resource = ResourceType.ID if request_type == RequestType.UPDATE_ASSETS else ResourceType.ASSET_ID
        return _resolved(error, ErrorKind.ITEM_MISSING, resource, _own_ids(descriptors))
    for prefix, resource in _MISSING_PREFIXES:
        if message.startswith(prefix):
            return _resolved(error, ErrorKind.ITEM_MISSING, resource, _own_ids(descriptors))

    if keys & set(_ID_KEYS):
        return _resolved(error, ErrorKind.ITEM_MISSING, ResourceType.ID, _own_ids(descriptors))

    return NeedsVerification(error)


def _classify_duplicated(error: ClassifiedError, descriptors: list[dict[str, Any]]) -> Classification:
    first = descriptors[0]
    if "legacyName" in first:
        return _resolved(
            error, ErrorKind.ITEM_EXISTS, ResourceType.LEGACY_NAME,
            {ExternalId(str(d["legacyName"])) for d in descriptors if d.get("legacyName") is not None},
        )
    if "externalId" in first:
        return _resolved(
            error, ErrorKind.ITEM_EXISTS, ResourceType.EXTERNAL_ID,
            {ExternalId(str(d["externalId"])) for d in descriptors if d.get("externalId") is not None},
        )
    if "id" in first:
        return _resolved(error, ErrorKind.ITEM_EXISTS, ResourceType.ID, _values(descriptors, "id"))
    return NeedsVerification(error)


def _after(message: str, prefix: str) -> str:
    rest = message[len(prefix):]
    return rest.lstrip(":").strip()


def _classify_message(
    error: ClassifiedError, message: str, request_type: RequestType
) -> Classification:
    if message.startswith(_PARENT_EXTERNAL_ID_MSG):
        # only one missing parent is reported, the rest must be looked up
        missing = _after(message, _PARENT_EXTERNAL_ID_MSG)
        error.kind = ErrorKind.ITEM_MISSING
        error.resource = ResourceType.PARENT_EXTERNAL_ID
        error.affected = {ExternalId(missing)} if missing else set()
        return NeedsVerification(error)

    if message.startswith(_PARENT_IDS_MSG):
        return _resolved(
            error, ErrorKind.ITEM_MISSING, ResourceType.PARENT_ID,
            parse_id_string(_after(message, _PARENT_IDS_MSG)),
        )

    if message.startswith(_DATA_SET_IDS_MSG):
        return _resolved(
            error, ErrorKind.ITEM_MISSING, ResourceType.DATA_SET_ID,
            parse_id_string(_after(message, _DATA_SET_IDS_MSG)),
        )

    if message.startswith(_ASSET_IDS_MSG) and request_type in _UPDATES:
        return _resolved(
            error, ErrorKind.ITEM_MISSING, ResourceType.ID,
            parse_id_string(_after(message, _ASSET_IDS_MSG)),
        )

    if message in _MISMATCHED_MSGS:
        error.kind = ErrorKind.MISMATCHED_TYPE
        error.resource = ResourceType.DATA_POINT_VALUE
        return NeedsVerification(error)

    if request_type == RequestType.UPDATE_ASSETS:
        if message.startswith(_ILLEGAL_PARENT_MSGS):
            error.kind = ErrorKind.ILLEGAL_ITEM
            error.resource = ResourceType.PARENT_ID
            return NeedsVerification(error)
        if message.startswith(_BAD_PARENT_MSG):
            error.kind = ErrorKind.ITEM_MISSING
            error.resource = ResourceType.PARENT_ID
            return NeedsVerification(error)

    return NeedsVerification(error)

