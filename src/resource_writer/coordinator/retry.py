"""
Strip-and-retry loop around one chunk of a bulk write.

A ``RetryCoordinator`` submits its pending items, classifies any failure,
removes the items implicated by the resulting error and decides, according
to the ``RetryPolicy``, whether to try again with what remains.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, Protocol, TypeVar

from loguru import logger

from ..errors import (
    ClassifiedError,
    ErrorKind,
    NeedsVerification,
    RequestType,
    ResourceType,
)
from ..metrics import metrics_registry
from ..policy import RetryPolicy
from ..result import WriteResult
from ..settings import WriterSettings, get_settings
from ..utils import calculate_retry_delay
from .classifier import classify
from .types import is_cancelled, sleep_or_cancel

T = TypeVar("T")
R = TypeVar("R")

# raised by our own code, never classified as a remote failure
PROGRAMMING_ERRORS = (TypeError, AttributeError, NameError, AssertionError)

Submit = Callable[[list[T]], Awaitable[list[R]]]
AffectedPredicate = Callable[[ClassifiedError, T], bool]


class Reconciler(Protocol[T]):
    """Completes an error whose affected items are not yet known."""

    async def reconcile(
        self, error: ClassifiedError, pending: list[T]
    ) -> tuple[list[ClassifiedError], list[T]]:
        """Return the fully attributed errors and the items to try again."""
        ...


def strip_items(
    error: ClassifiedError, items: list[T], is_affected: AffectedPredicate
) -> tuple[list[T], list[T]]:
    """Split ``items`` into (removed, remaining) according to ``error``.

    If the error names no identities, or none of the items match it, every
    item is removed: the failure cannot be narrowed down any further.
    """
    if not error.affected:
        return list(items), []
    removed: list[T] = []
    remaining: list[T] = []
    for item in items:
        if is_affected(error, item):
            removed.append(item)
        else:
            remaining.append(item)
    if not removed:
        return list(items), []
    return removed, remaining


def is_existing_external_id(error: ClassifiedError) -> bool:
    return error.kind == ErrorKind.ITEM_EXISTS and error.resource == ResourceType.EXTERNAL_ID


class RetryCoordinator(Generic[T, R]):
    """Drive one chunk of items to completion.

    The loop ends when every item either succeeded or was placed in the
    ``skipped`` list of exactly one error, when ``cancel`` is set, or when
    ``max_attempts`` submissions have been made.

    Exceptions from ``submit`` and the reconciler are classified as remote
    failures, except ``PROGRAMMING_ERRORS`` which propagate unchanged.
    """

    def __init__(
        self,
        resource: str,
        endpoint: str,
        request_type: RequestType,
        submit: Submit,
        is_affected: AffectedPredicate,
        *,
        reconciler: Optional[Reconciler[T]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancel: Optional[asyncio.Event] = None,
        settings: Optional[WriterSettings] = None,
    ):
        settings = settings or get_settings()
        self._resource = resource
        self._endpoint = endpoint
        self._request_type = request_type
        self._submit = submit
        self._is_affected = is_affected
        self._reconciler = reconciler
        self._policy = retry_policy if retry_policy is not None else settings.retry_policy
        self._cancel = cancel
        self._fatal_retry_delay = settings.fatal_retry_delay
        self._max_attempts = settings.max_attempts

    async def run(self, items: list[T]) -> WriteResult[R, T]:
        result: WriteResult[R, T] = WriteResult()
        pending = list(items)
        attempts = 0
        last_error: Optional[ClassifiedError] = None

        while pending:
            if is_cancelled(self._cancel):
                self._abort(ClassifiedError(message="Operation cancelled"), pending, result)
                break
            if attempts >= self._max_attempts:
                logger.warning(
                    f"Giving up on {len(pending)} {self._resource} after {attempts} attempts"
                )
                self._abort(self._exhausted(attempts, last_error), pending, result)
                break

            attempts += 1
            try:
                with metrics_registry.timer(self._resource, self._endpoint):
                    written = await self._submit(pending)
            except PROGRAMMING_ERRORS:
                raise
            except Exception as exc:
                logger.debug(f"Failed to {self._endpoint} {len(pending)} {self._resource}: {exc}")
                classification = classify(exc, self._request_type)
            else:
                result.successes.extend(written)
                break

            last_error = classification.error
            if isinstance(classification, NeedsVerification):
                pending = await self._handle_incomplete(classification.error, pending, result)
            else:
                pending = await self._handle_complete(classification.error, pending, result)

        return result

    async def _handle_complete(
        self, error: ClassifiedError, pending: list[T], result: WriteResult
    ) -> list[T]:
        if error.kind == ErrorKind.FATAL_FAILURE:
            if self._policy.retries_fatal:
                return await self._retry_fatal(error, pending)
            return self._abort(error, pending, result)

        if self._policy.retries_errors or (
            self._policy.keeps_duplicates and is_existing_external_id(error)
        ):
            removed, remaining = strip_items(error, pending, self._is_affected)
            self._record(error, removed, result)
            if remaining:
                metrics_registry.retries_total.labels(
                    resource=self._resource, reason=error.kind.value
                ).inc()
                logger.debug(
                    f"Removed {len(removed)} {self._resource} due to {error.kind.value} "
                    f"({error.resource.value}), retrying {len(remaining)}"
                )
            return remaining

        return self._abort(error, pending, result)

    async def _handle_incomplete(
        self, error: ClassifiedError, pending: list[T], result: WriteResult
    ) -> list[T]:
        if error.kind == ErrorKind.FATAL_FAILURE and self._policy.retries_fatal:
            return await self._retry_fatal(error, pending)
        if not self._policy.retries_errors or self._reconciler is None:
            return self._abort(error, pending, result)

        try:
            resolved, remaining = await self._reconciler.reconcile(error, pending)
        except PROGRAMMING_ERRORS:
            raise
        except Exception as exc:
            logger.warning(f"Failed to reconcile {len(pending)} {self._resource}: {exc}")
            fatal = ClassifiedError(
                message=f"Reconciliation failed: {exc}", status=error.status, exception=exc
            )
            return self._abort(fatal, pending, result)

        resolved = [err for err in resolved if err.skipped]
        if not resolved:
            # nothing could be attributed, the failure covers the whole attempt
            return self._abort(error, pending, result)

        for err in resolved:
            self._record(err, err.skipped, result)
        if remaining:
            metrics_registry.retries_total.labels(
                resource=self._resource, reason="reconciled"
            ).inc()
        return remaining

    async def _retry_fatal(self, error: ClassifiedError, pending: list[T]) -> list[T]:
        metrics_registry.retries_total.labels(resource=self._resource, reason="fatal").inc()
        logger.debug(
            f"Retrying {len(pending)} {self._resource} in {self._fatal_retry_delay}s "
            f"after fatal failure: {error.message}"
        )
        await sleep_or_cancel(self._fatal_retry_delay, self._cancel)
        return pending

    def _exhausted(self, attempts: int, last: Optional[ClassifiedError]) -> ClassifiedError:
        if last is None:
            return ClassifiedError(message=f"Gave up after {attempts} attempts")
        return ClassifiedError(
            message=f"Gave up after {attempts} attempts: {last.message}",
            status=last.status,
            exception=last.exception,
        )

    def _abort(self, error: ClassifiedError, pending: list[T], result: WriteResult) -> list[T]:
        self._record(error, pending, result)
        return []

    def _record(self, error: ClassifiedError, skipped: list[T], result: WriteResult) -> None:
        error.skipped = list(skipped)
        error.is_complete = True
        if not error.skipped:
            return
        metrics_registry.skipped(self._resource, len(error.skipped))
        result.errors.append(error)


async def retry_duplicates(
    result: WriteResult[R, T],
    refetch: Callable[[list[T]], Awaitable[WriteResult[R, T]]],
    *,
    resource: str,
    limit: int,
    base_delay: float,
    cancel: Optional[asyncio.Event] = None,
) -> WriteResult[R, T]:
    """Re-run ``refetch`` for items rejected because their external id already exists.

    Used by the keep-duplicates retry policies: a concurrent writer created the
    record between our lookup and our create, so after a backoff the record can
    be fetched instead of dropped. After ``limit`` rounds the remaining
    ``ItemExists`` errors are kept in the result.
    """
    for backoff in range(limit):
        duplicates = [err for err in result.errors if is_existing_external_id(err)]
        if not duplicates:
            break

        delay = calculate_retry_delay(backoff, base_delay)
        logger.debug(
            f"Found {sum(len(err.skipped) for err in duplicates)} duplicated {resource}, "
            f"retrying in {delay:.2f}s"
        )
        if await sleep_or_cancel(delay, cancel):
            break

        items = [item for err in duplicates for item in err.skipped]
        result.errors = [err for err in result.errors if not is_existing_external_id(err)]
        metrics_registry.retries_total.labels(resource=resource, reason="duplicated").inc()

        retried = await refetch(items)
        result.successes.extend(retried.successes)
        result.errors.extend(retried.errors)

    return result
