"""
Bulk sequence creates and sequence row inserts.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from loguru import logger

from ..client import SequencesClient
from ..coordinator import RetryCoordinator, chunk_by, chunk_by_units
from ..errors import ClassifiedError, RequestType, ResourceType
from ..models import Sequence as SequenceRecord, SequenceCreate, SequenceRowsCreate
from ..policy import RetryPolicy, SanitationMode
from ..result import WriteResult
from ..sanitation import SequenceRowError, clean_sequence_request, clean_sequence_rows_request
from ..sanitation.sequences import to_row_error
from ..settings import WriterSettings, get_settings
from .base import contains, with_sanitation_errors, write_in_chunks

RESOURCE = "sequences"


def is_affected(error: ClassifiedError, seq: SequenceCreate) -> bool:
    bad = error.affected
    if error.resource == ResourceType.DATA_SET_ID:
        return contains(bad, seq.data_set_id)
    if error.resource == ResourceType.EXTERNAL_ID:
        return contains(bad, seq.external_id)
    if error.resource in (ResourceType.ASSET_ID, ResourceType.ID):
        return contains(bad, seq.asset_id)
    return False


def is_rows_affected(error: ClassifiedError, seq: SequenceRowsCreate) -> bool:
    if error.resource in (ResourceType.ID, ResourceType.EXTERNAL_ID):
        return seq.identity in error.affected
    return False


async def ensure_sequences(
    client: SequencesClient,
    sequences: Sequence[SequenceCreate],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[SequenceRecord, SequenceCreate]:
    """Create sequences. Sequences with duplicated column external ids are never sent."""
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    cleaned, errors = clean_sequence_request(sequences, mode)

    coordinator: RetryCoordinator[SequenceCreate, SequenceRecord] = RetryCoordinator(
        RESOURCE,
        "create",
        RequestType.CREATE_SEQUENCES,
        client.create,
        is_affected,
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )
    chunks = chunk_by(cleaned, chunk_size or settings.sequences_chunk_size)
    result = await write_in_chunks(coordinator, chunks, throttle or settings.sequences_throttle, cancel)
    return with_sanitation_errors(result, errors, RESOURCE)


def plan_row_chunks(
    sequences: Sequence[SequenceRowsCreate], max_rows: int, max_sequences: int
) -> list[list[SequenceRowsCreate]]:
    """Chunk row inserts by sequence count and total row count.

    An insert with more rows than ``max_rows`` is split into several inserts
    into the same sequence.
    """
    by_index = {index: seq.rows for index, seq in enumerate(sequences)}
    return [
        [sequences[index].model_copy(update={"rows": rows}) for index, rows in chunk.items()]
        for chunk in chunk_by_units(by_index, max_rows, max_sequences)
    ]


async def insert_sequence_rows(
    client: SequencesClient,
    sequences: Sequence[SequenceRowsCreate],
    *,
    retry_policy: Optional[RetryPolicy] = None,
    sanitation_mode: Optional[SanitationMode] = None,
    chunk_size: Optional[int] = None,
    rows_chunk_size: Optional[int] = None,
    throttle: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[WriterSettings] = None,
) -> WriteResult[SequenceRowsCreate, SequenceRowError]:
    """Insert rows into sequences.

    Errors report the rows that were not inserted as ``SequenceRowError``
    values, grouped per sequence.
    """
    settings = settings or get_settings()
    mode = sanitation_mode if sanitation_mode is not None else settings.sanitation_mode
    cleaned, errors = clean_sequence_rows_request(sequences, mode)

    async def submit(items: list[SequenceRowsCreate]) -> list[SequenceRowsCreate]:
        await client.insert_rows(items)
        return items

    coordinator: RetryCoordinator[SequenceRowsCreate, SequenceRowsCreate] = RetryCoordinator(
        RESOURCE,
        "insert_rows",
        RequestType.CREATE_SEQUENCE_ROWS,
        submit,
        is_rows_affected,
        retry_policy=retry_policy,
        cancel=cancel,
        settings=settings,
    )
    chunks = plan_row_chunks(
        cleaned,
        rows_chunk_size or settings.sequence_rows_chunk_size,
        chunk_size or settings.sequences_chunk_size,
    )
    logger.debug(f"Inserting rows into {len(cleaned)} sequences in {len(chunks)} chunks")
    result = await write_in_chunks(coordinator, chunks, throttle or settings.sequences_throttle, cancel)
    return with_sanitation_errors(result.replace_skipped(to_row_error), errors, RESOURCE)
