"""
Error taxonomy for bulk writes.

Failures surfaced by the remote store are turned into ``ClassifiedError``
values and reported in a ``WriteResult`` instead of being raised. The
exceptions in this module are raised only by the opt-in
``WriteResult.throw`` / ``throw_on_fatal`` helpers, or by collaborators
(``RemoteFailure``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from .identity import Identity

E = TypeVar("E")
R = TypeVar("R")


class ErrorKind(str, Enum):
    """General kind of failure."""

    ITEM_EXISTS = "item_exists"  # already present remotely
    ITEM_MISSING = "item_missing"  # referenced resource absent remotely
    ITEM_DUPLICATED = "item_duplicated"  # duplicated within the request
    MISMATCHED_TYPE = "mismatched_type"
    SANITATION_FAILED = "sanitation_failed"
    ILLEGAL_ITEM = "illegal_item"
    FATAL_FAILURE = "fatal_failure"


class ResourceType(str, Enum):
    """Field of a request item an error is attributed to."""

    ID = "id"
    EXTERNAL_ID = "external_id"
    ASSET_ID = "asset_id"
    PARENT_ID = "parent_id"
    PARENT_EXTERNAL_ID = "parent_external_id"
    DATA_SET_ID = "data_set_id"
    LEGACY_NAME = "legacy_name"
    NAME = "name"
    TYPE = "type"
    SUB_TYPE = "sub_type"
    SOURCE = "source"
    METADATA = "metadata"
    LABELS = "labels"
    DESCRIPTION = "description"
    TIME_RANGE = "time_range"
    UNIT = "unit"
    SEQUENCE_COLUMNS = "sequence_columns"
    COLUMN_NAME = "column_name"
    COLUMN_DESCRIPTION = "column_description"
    COLUMN_EXTERNAL_ID = "column_external_id"
    COLUMN_METADATA = "column_metadata"
    SEQUENCE_ROWS = "sequence_rows"
    SEQUENCE_ROW = "sequence_row"
    SEQUENCE_ROW_VALUES = "sequence_row_values"
    SEQUENCE_ROW_NUMBER = "sequence_row_number"
    DATA_POINT_VALUE = "data_point_value"
    DATA_POINT_TIMESTAMP = "data_point_timestamp"
    UPDATE = "update"
    NONE = "none"


class RequestType(str, Enum):
    """Kind of write request, selects the classification rules."""

    CREATE_ASSETS = "create_assets"
    UPDATE_ASSETS = "update_assets"
    CREATE_TIME_SERIES = "create_time_series"
    UPDATE_TIME_SERIES = "update_time_series"
    CREATE_EVENTS = "create_events"
    CREATE_SEQUENCES = "create_sequences"
    CREATE_SEQUENCE_ROWS = "create_sequence_rows"
    CREATE_DATAPOINTS = "create_datapoints"
    DELETE_DATAPOINTS = "delete_datapoints"


class RemoteFailure(Exception):
    """Structured failure raised by a remote writer or reader.

    Attributes:
        status: HTTP-like status code (0 if unknown)
        missing: descriptors of referenced resources that do not exist,
            each a field-name -> value mapping
        duplicated: descriptors of conflicting keys, same shape
        request_id: optional remote request id, for diagnostics
    """

    def __init__(
        self,
        message: str,
        *,
        status: int = 0,
        missing: Optional[list[dict[str, Any]]] = None,
        duplicated: Optional[list[dict[str, Any]]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.missing = missing
        self.duplicated = duplicated
        self.request_id = request_id


@dataclass
class ClassifiedError(Generic[E]):
    """A failed push or a pre-push sanitation failure.

    ``affected`` holds the identities named by the failure, ``skipped`` the
    input items that were removed from the request because of it. While
    ``is_complete`` is false the affected items are not yet known and the
    error must go through reconciliation.
    """

    kind: ErrorKind = ErrorKind.FATAL_FAILURE
    resource: ResourceType = ResourceType.NONE
    affected: set[Identity] = field(default_factory=set)
    skipped: list[E] = field(default_factory=list)
    is_complete: bool = True
    status: int = 0
    message: Optional[str] = None
    exception: Optional[BaseException] = None

    @classmethod
    def merge(cls, errors: list["ClassifiedError[E]"]) -> "ClassifiedError[E]":
        """Merge errors of the same kind and resource into the first one."""
        if not errors:
            raise ValueError("List of errors is empty")
        initial = errors[0]
        for err in errors[1:]:
            if err.exception is not None and initial.exception is None:
                initial.exception = err.exception
                initial.message = err.message
            initial.skipped.extend(err.skipped)
            initial.affected |= err.affected
        return initial

    def replace_skipped(self, replace: Callable[[E], R]) -> "ClassifiedError[R]":
        """Copy of this error with every skipped item mapped through ``replace``."""
        return ClassifiedError(
            kind=self.kind,
            resource=self.resource,
            affected=set(self.affected),
            skipped=[replace(s) for s in self.skipped],
            is_complete=self.is_complete,
            status=self.status,
            message=self.message,
            exception=self.exception,
        )

    def describe(self) -> str:
        text = f"WriteError. Resource: {self.resource.value}, Type: {self.kind.value}: {self.message}"
        if isinstance(self.exception, RemoteFailure) and self.exception.request_id:
            text += f". RequestId: {self.exception.request_id}"
        return text


@dataclass(frozen=True)
class Resolved(Generic[E]):
    """Classification whose affected identities are fully known."""

    error: ClassifiedError[E]


@dataclass(frozen=True)
class NeedsVerification(Generic[E]):
    """Classification that must be completed by a reconciliation round trip."""

    error: ClassifiedError[E]


Classification = Union[Resolved[E], NeedsVerification[E]]


class WriteErrorException(Exception):
    """Raised by ``WriteResult.throw`` for a single error."""

    def __init__(self, error: ClassifiedError):
        super().__init__(error.describe())
        self.error = error
        if error.exception is not None:
            self.__cause__ = error.exception


class WriteErrorGroup(ExceptionGroup):
    """Raised by ``WriteResult.throw`` when more than one error is present."""
