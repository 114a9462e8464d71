"""
Per-resource bulk write flows.
"""

from .assets import ensure_assets, get_assets_by_ids, get_or_create_assets, update_assets, upsert_assets
from .datapoints import DeleteResult, delete_datapoints, insert_datapoints
from .events import ensure_events, get_events_by_ids, get_or_create_events
from .sequences import ensure_sequences, insert_sequence_rows
from .timeseries import (
    ensure_time_series,
    get_or_create_time_series,
    get_time_series_by_ids,
    update_time_series,
    upsert_time_series,
)
from .upsert import UpsertComposer, UpsertOptions

__all__ = [
    "DeleteResult",
    "UpsertComposer",
    "UpsertOptions",
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
    "get_time_series_by_ids",
    "insert_datapoints",
    "insert_sequence_rows",
    "update_assets",
    "update_time_series",
    "upsert_assets",
    "upsert_time_series",
]
