"""
Retry and sanitation policies shared by every bulk operation.
"""

from enum import Enum


class RetryPolicy(str, Enum):
    """When to retry a failed request.

    NONE: stop after the first failure.
    ON_ERROR: strip the items implicated by any error and retry immediately.
    ON_ERROR_KEEP_DUPLICATES: as ON_ERROR, but items that already exist are
        re-fetched with backoff instead of being dropped.
    ON_FATAL: retry fatal failures after a fixed delay, abort on anything else.
    ON_FATAL_KEEP_DUPLICATES: as ON_FATAL, with the duplicate re-fetch.
    """

    NONE = "none"
    ON_ERROR = "on_error"
    ON_ERROR_KEEP_DUPLICATES = "on_error_keep_duplicates"
    ON_FATAL = "on_fatal"
    ON_FATAL_KEEP_DUPLICATES = "on_fatal_keep_duplicates"

    @property
    def keeps_duplicates(self) -> bool:
        return self in (RetryPolicy.ON_ERROR_KEEP_DUPLICATES, RetryPolicy.ON_FATAL_KEEP_DUPLICATES)

    @property
    def retries_errors(self) -> bool:
        return self in (RetryPolicy.ON_ERROR, RetryPolicy.ON_ERROR_KEEP_DUPLICATES)

    @property
    def retries_fatal(self) -> bool:
        return self in (RetryPolicy.ON_FATAL, RetryPolicy.ON_FATAL_KEEP_DUPLICATES)


class SanitationMode(str, Enum):
    """Pre-flight handling of items violating the store's static limits.

    NONE: send items as given.
    CLEAN: repair items in place (truncate, clamp, drop metadata entries).
    REMOVE: drop violating items and report them as SanitationFailed.
    """

    NONE = "none"
    CLEAN = "clean"
    REMOVE = "remove"
