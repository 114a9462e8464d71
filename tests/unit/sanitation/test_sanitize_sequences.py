"""
Unit tests for sequence and sequence row sanitation.
"""

from resource_writer import ErrorKind, ExternalId, InternalId, ResourceType, SanitationMode
from resource_writer.models import SequenceColumn, SequenceCreate, SequenceRow, SequenceRowsCreate
from resource_writer.sanitation import clean_sequence_request, clean_sequence_rows_request


def sequence(external_id, *columns):
    return SequenceCreate(
        external_id=external_id,
        columns=[SequenceColumn(external_id=c) for c in columns],
    )


def test_duplicate_columns_rejected_in_every_mode():
    ok = sequence("s1", "a", "b")
    bad = sequence("s2", "a", "a")

    for mode in SanitationMode:
        cleaned, errors = clean_sequence_request([ok, bad], mode)

        assert cleaned == [ok]
        [error] = errors
        assert error.kind == ErrorKind.ITEM_DUPLICATED
        assert error.resource == ResourceType.COLUMN_EXTERNAL_ID
        assert error.affected == {ExternalId("s2")}
        assert error.skipped == [bad]


def test_sequence_without_columns_removed():
    empty = sequence("s1")

    cleaned, errors = clean_sequence_request([empty], SanitationMode.REMOVE)

    assert cleaned == []
    assert errors[0].resource == ResourceType.SEQUENCE_COLUMNS


def test_rows_are_filtered_individually():
    first = SequenceRow(row_number=1, values=[1.5, "x"])
    negative = SequenceRow(row_number=-1, values=[1.5, "x"])
    short = SequenceRow(row_number=2, values=[1.5])
    again = SequenceRow(row_number=1, values=[2.5, "y"])
    insert = SequenceRowsCreate(external_id="s1", columns=["a", "b"], rows=[first, negative, short, again])

    cleaned, errors = clean_sequence_rows_request([insert], SanitationMode.CLEAN)

    assert cleaned == [insert]
    assert insert.rows == [first]
    by_kind = {(err.kind, err.resource): err for err in errors}
    assert by_kind[(ErrorKind.ITEM_DUPLICATED, ResourceType.SEQUENCE_ROW_NUMBER)].skipped[0].rows == [again]
    assert by_kind[(ErrorKind.SANITATION_FAILED, ResourceType.SEQUENCE_ROW_NUMBER)].skipped[0].rows == [negative]
    values = by_kind[(ErrorKind.SANITATION_FAILED, ResourceType.SEQUENCE_ROW_VALUES)]
    assert values.skipped[0].rows == [short]
    assert values.skipped[0].id == ExternalId("s1")


def test_whole_inserts_rejected():
    row = SequenceRow(row_number=0, values=[1])
    no_identity = SequenceRowsCreate(columns=["a"], rows=[row])
    no_rows = SequenceRowsCreate(id=1, columns=["a"])
    kept = SequenceRowsCreate(id=2, columns=["a"], rows=[row])
    repeated = SequenceRowsCreate(id=2, columns=["a"], rows=[row])
    dup_columns = SequenceRowsCreate(id=3, columns=["a", "a"], rows=[SequenceRow(row_number=0, values=[1, 2])])

    cleaned, errors = clean_sequence_rows_request(
        [no_identity, no_rows, kept, repeated, dup_columns], SanitationMode.REMOVE
    )

    assert cleaned == [kept]
    by_resource = {err.resource: err for err in errors}
    assert by_resource[ResourceType.EXTERNAL_ID].skipped[0].id is None
    assert by_resource[ResourceType.SEQUENCE_ROWS].affected == {InternalId(1)}
    assert by_resource[ResourceType.ID].affected == {InternalId(2)}
    assert by_resource[ResourceType.COLUMN_EXTERNAL_ID].affected == {InternalId(3)}


def test_rows_untouched_without_sanitation():
    insert = SequenceRowsCreate(id=1, columns=["a"], rows=[SequenceRow(row_number=-1, values=[])])

    cleaned, errors = clean_sequence_rows_request([insert], SanitationMode.NONE)

    assert cleaned == [insert]
    assert errors == []
