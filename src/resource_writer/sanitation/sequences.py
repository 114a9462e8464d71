"""
Sanitation rules for sequences and sequence rows.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence as SequenceOf

from ..errors import ClassifiedError, ErrorKind, ResourceType
from ..identity import ExternalId, Identity
from ..models import SequenceCreate, SequenceRow, SequenceRowsCreate
from ..policy import SanitationMode
from ..utils import check_length, truncate
from .base import (
    EXTERNAL_ID_MAX,
    clean_request,
    metadata_size,
    positive_or_none,
    sanitize_metadata,
    verify_metadata,
)
from .datapoints import NUMERIC_VALUE_MAX, NUMERIC_VALUE_MIN, STRING_LENGTH_MAX

NAME_MAX = 255
DESCRIPTION_MAX = 1000
METADATA_MAX_PER_KEY = 32
METADATA_MAX_BYTES = 10_000
METADATA_MAX_BYTES_TOTAL = 100_000
COLUMN_NAME_MAX = 64
COLUMN_DESCRIPTION_MAX = 1000
COLUMN_METADATA_MAX_PER_KEY = 32
COLUMN_METADATA_MAX_BYTES = 10_000


@dataclass
class SequenceRowError:
    """Rows of one sequence that could not be inserted."""

    id: Optional[Identity]
    rows: list[SequenceRow] = field(default_factory=list)


def _column_budget(used: int) -> int:
    return max(0, min(COLUMN_METADATA_MAX_BYTES, METADATA_MAX_BYTES_TOTAL - used))


def sanitize_sequence(seq: SequenceCreate) -> None:
    seq.external_id = truncate(seq.external_id, EXTERNAL_ID_MAX)
    seq.name = truncate(seq.name, NAME_MAX)
    seq.asset_id = positive_or_none(seq.asset_id)
    seq.description = truncate(seq.description, DESCRIPTION_MAX)
    seq.data_set_id = positive_or_none(seq.data_set_id)
    seq.metadata = sanitize_metadata(
        seq.metadata, METADATA_MAX_PER_KEY, METADATA_MAX_BYTES, METADATA_MAX_BYTES, METADATA_MAX_BYTES
    )
    used = metadata_size(seq.metadata)
    for col in seq.columns:
        col.external_id = truncate(col.external_id, EXTERNAL_ID_MAX)
        col.name = truncate(col.name, COLUMN_NAME_MAX)
        col.description = truncate(col.description, COLUMN_DESCRIPTION_MAX)
        col.metadata = sanitize_metadata(
            col.metadata,
            COLUMN_METADATA_MAX_PER_KEY,
            COLUMN_METADATA_MAX_BYTES,
            COLUMN_METADATA_MAX_BYTES,
            _column_budget(used),
        )
        used += metadata_size(col.metadata)


def verify_sequence(seq: SequenceCreate) -> Optional[ResourceType]:
    if not check_length(seq.external_id, EXTERNAL_ID_MAX):
        return ResourceType.EXTERNAL_ID
    if not check_length(seq.name, NAME_MAX):
        return ResourceType.NAME
    if seq.asset_id is not None and seq.asset_id < 1:
        return ResourceType.ASSET_ID
    if not check_length(seq.description, DESCRIPTION_MAX):
        return ResourceType.DESCRIPTION
    if seq.data_set_id is not None and seq.data_set_id < 1:
        return ResourceType.DATA_SET_ID
    if not verify_metadata(
        seq.metadata, METADATA_MAX_PER_KEY, METADATA_MAX_BYTES, METADATA_MAX_BYTES, METADATA_MAX_BYTES
    ):
        return ResourceType.METADATA
    if not seq.columns:
        return ResourceType.SEQUENCE_COLUMNS

    used = metadata_size(seq.metadata)
    for col in seq.columns:
        if col.external_id is None or not check_length(col.external_id, EXTERNAL_ID_MAX):
            return ResourceType.COLUMN_EXTERNAL_ID
        if not check_length(col.name, COLUMN_NAME_MAX):
            return ResourceType.COLUMN_NAME
        if not check_length(col.description, COLUMN_DESCRIPTION_MAX):
            return ResourceType.COLUMN_DESCRIPTION
        if not verify_metadata(
            col.metadata,
            COLUMN_METADATA_MAX_PER_KEY,
            COLUMN_METADATA_MAX_BYTES,
            COLUMN_METADATA_MAX_BYTES,
            _column_budget(used),
        ):
            return ResourceType.COLUMN_METADATA
        used += metadata_size(col.metadata)
    return None


def clean_sequence_request(
    sequences: SequenceOf[SequenceCreate], mode: SanitationMode
) -> tuple[list[SequenceCreate], list[ClassifiedError[SequenceCreate]]]:
    """Sanitize sequences, drop duplicated external ids and sequences with duplicated columns.

    Column duplicates are checked in every mode, sequence duplicates only when
    sanitation is enabled.
    """
    result, errors = clean_request(
        sequences,
        mode,
        sanitize_sequence,
        verify_sequence,
        unique_keys=((ResourceType.EXTERNAL_ID, lambda s: s.external_id, "Conflicting identifiers"),),
    )

    kept: list[SequenceCreate] = []
    bad_columns: ClassifiedError[SequenceCreate] = ClassifiedError(
        kind=ErrorKind.ITEM_DUPLICATED,
        resource=ResourceType.COLUMN_EXTERNAL_ID,
        status=409,
        message="Duplicated column external ids",
    )
    for seq in result:
        columns = [col.external_id for col in seq.columns if col.external_id is not None]
        if len(columns) != len(set(columns)):
            bad_columns.skipped.append(seq)
            if seq.external_id is not None:
                bad_columns.affected.add(ExternalId(seq.external_id))
            continue
        kept.append(seq)
    if bad_columns.skipped:
        errors.append(bad_columns)
    return kept, errors


def sanitize_row(row: SequenceRow) -> None:
    if row.values is None:
        return
    values = []
    for value in row.values:
        if isinstance(value, str):
            value = truncate(value, STRING_LENGTH_MAX)
        elif isinstance(value, float) and math.isfinite(value):
            value = min(NUMERIC_VALUE_MAX, max(NUMERIC_VALUE_MIN, value))
        values.append(value)
    row.values = values


def verify_row(row: SequenceRow, columns: int) -> Optional[ResourceType]:
    if row.row_number < 0:
        return ResourceType.SEQUENCE_ROW_NUMBER
    if row.values is None or len(row.values) != columns:
        return ResourceType.SEQUENCE_ROW_VALUES
    for value in row.values:
        if isinstance(value, float) and (
            not math.isfinite(value) or value > NUMERIC_VALUE_MAX or value < NUMERIC_VALUE_MIN
        ):
            return ResourceType.SEQUENCE_ROW_VALUES
        if isinstance(value, str) and len(value) > STRING_LENGTH_MAX:
            return ResourceType.SEQUENCE_ROW_VALUES
    return None


def verify_sequence_rows(seq: SequenceRowsCreate) -> Optional[ResourceType]:
    if (seq.id is None and seq.external_id is None) or not check_length(seq.external_id, EXTERNAL_ID_MAX):
        return ResourceType.EXTERNAL_ID
    if not seq.columns:
        return ResourceType.SEQUENCE_COLUMNS
    if not seq.rows:
        return ResourceType.SEQUENCE_ROWS
    return None


def to_row_error(seq: SequenceRowsCreate) -> SequenceRowError:
    return SequenceRowError(seq.identity, list(seq.rows))


def clean_sequence_rows_request(
    sequences: SequenceOf[SequenceRowsCreate], mode: SanitationMode
) -> tuple[list[SequenceRowsCreate], list[ClassifiedError[SequenceRowError]]]:
    """Sanitize row inserts.

    Whole inserts are dropped for a missing identity, missing columns,
    duplicated columns or no rows. Single rows are dropped for bad values or a
    row number already used in the same insert. Every dropped row is
    reported in exactly one error.
    """
    if mode == SanitationMode.NONE:
        return list(sequences), []

    result: list[SequenceRowsCreate] = []
    bad: dict[ResourceType, list[SequenceRowError]] = {}
    duplicated: dict[ResourceType, list[SequenceRowError]] = {}
    seen: set[Identity] = set()

    for seq in sequences:
        if mode == SanitationMode.CLEAN:
            seq.external_id = truncate(seq.external_id, EXTERNAL_ID_MAX)
            for row in seq.rows:
                sanitize_row(row)

        failed = verify_sequence_rows(seq)
        if failed is not None:
            bad.setdefault(failed, []).append(to_row_error(seq))
            continue
        if seq.identity in seen:
            duplicated.setdefault(ResourceType.ID, []).append(to_row_error(seq))
            continue
        if len(set(seq.columns)) != len(seq.columns):
            duplicated.setdefault(ResourceType.COLUMN_EXTERNAL_ID, []).append(to_row_error(seq))
            continue
        seen.add(seq.identity)

        good: list[SequenceRow] = []
        row_numbers: set[int] = set()
        for row in seq.rows:
            failed = verify_row(row, len(seq.columns))
            if failed is not None:
                _add_row(bad, failed, seq.identity, row)
            elif row.row_number in row_numbers:
                _add_row(duplicated, ResourceType.SEQUENCE_ROW_NUMBER, seq.identity, row)
            else:
                row_numbers.add(row.row_number)
                good.append(row)
        seq.rows = good
        if good:
            result.append(seq)

    errors: list[ClassifiedError[SequenceRowError]] = []
    for resource, skipped in duplicated.items():
        errors.append(
            ClassifiedError(
                kind=ErrorKind.ITEM_DUPLICATED,
                resource=resource,
                affected={s.id for s in skipped if s.id is not None},
                skipped=skipped,
                status=409,
                message="Duplicated sequence rows",
            )
        )
    for resource, skipped in bad.items():
        errors.append(
            ClassifiedError(
                kind=ErrorKind.SANITATION_FAILED,
                resource=resource,
                affected={s.id for s in skipped if s.id is not None},
                skipped=skipped,
                status=400,
                message="Sanitation failed",
            )
        )
    return result, errors


def _add_row(
    groups: dict[ResourceType, list[SequenceRowError]],
    resource: ResourceType,
    identity: Identity,
    row: SequenceRow,
) -> None:
    errors = groups.setdefault(resource, [])
    for err in errors:
        if err.id == identity:
            err.rows.append(row)
            return
    errors.append(SequenceRowError(identity, [row]))
