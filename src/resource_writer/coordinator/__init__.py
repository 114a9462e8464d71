"""
Bulk write coordination: chunking, throttled dispatch, failure
classification, strip-and-retry and reconciliation.
"""

from .chunking import chunk_by, chunk_by_hierarchy, chunk_by_units
from .classifier import classify, parse_id_string
from .reconcile import (
    AssetUpdateParentReconciler,
    DatapointTypeReconciler,
    ParentExternalIdReconciler,
)
from .retry import Reconciler, RetryCoordinator, retry_duplicates, strip_items
from .throttle import LockedSet, retrieve_chunked, run_throttled
from .types import is_cancelled, sleep_or_cancel

__all__ = [
    "AssetUpdateParentReconciler",
    "DatapointTypeReconciler",
    "LockedSet",
    "ParentExternalIdReconciler",
    "Reconciler",
    "RetryCoordinator",
    "chunk_by",
    "chunk_by_hierarchy",
    "chunk_by_units",
    "classify",
    "is_cancelled",
    "parse_id_string",
    "retrieve_chunked",
    "retry_duplicates",
    "run_throttled",
    "sleep_or_cancel",
    "strip_items",
]
