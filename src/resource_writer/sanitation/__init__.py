"""
Pre-flight sanitation of write requests.
"""

from .assets import clean_asset_request, clean_asset_update_request
from .base import clean_request, sanitize_metadata, verify_metadata
from .datapoints import clean_datapoints_request
from .events import clean_event_request
from .sequences import SequenceRowError, clean_sequence_request, clean_sequence_rows_request
from .timeseries import clean_time_series_request, clean_time_series_update_request

__all__ = [
    "SequenceRowError",
    "clean_asset_request",
    "clean_asset_update_request",
    "clean_datapoints_request",
    "clean_event_request",
    "clean_request",
    "clean_sequence_request",
    "clean_sequence_rows_request",
    "clean_time_series_request",
    "clean_time_series_update_request",
    "sanitize_metadata",
    "verify_metadata",
]
