"""
Aggregated outcome of a bulk write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Optional, TypeVar

from .errors import (
    ClassifiedError,
    ErrorKind,
    WriteErrorException,
    WriteErrorGroup,
)

R = TypeVar("R")
E = TypeVar("E")
X = TypeVar("X")


@dataclass
class WriteResult(Generic[R, E]):
    """Ordered successes plus the errors that occurred along the way.

    Every submitted item ends up either in ``successes`` or in exactly one
    error's ``skipped`` list.
    """

    successes: list[R] = field(default_factory=list)
    errors: list[ClassifiedError[E]] = field(default_factory=list)

    @property
    def all_good(self) -> bool:
        return not self.errors

    @property
    def skipped_count(self) -> int:
        return sum(len(err.skipped) for err in self.errors)

    def throw(self) -> None:
        """Raise if there are any errors. Successes are left intact."""
        _raise_for(self.errors)

    def throw_on_fatal(self) -> None:
        """Raise only if a ``FatalFailure`` is present."""
        _raise_for([err for err in self.errors if err.kind == ErrorKind.FATAL_FAILURE])

    def merge_errors(self) -> None:
        """Combine non-fatal errors that share kind and resource."""
        groups: dict[tuple, list[ClassifiedError[E]]] = {}
        merged: list[ClassifiedError[E]] = []
        for err in self.errors:
            if err.kind == ErrorKind.FATAL_FAILURE:
                merged.append(err)
                continue
            key = (err.kind, err.resource)
            if key not in groups:
                groups[key] = []
                merged.append(err)
            groups[key].append(err)
        for group in groups.values():
            if len(group) > 1:
                ClassifiedError.merge(group)
        self.errors = merged

    def errors_by_skipped(self) -> list[tuple[E, list[ClassifiedError[E]]]]:
        """Group errors by the skipped items they reference, in first-seen order.

        Items are grouped by object identity, skipped items need not be hashable.
        """
        order: list[E] = []
        by_item: dict[int, list[ClassifiedError[E]]] = {}
        for err in self.errors:
            for item in err.skipped:
                key = id(item)
                if key not in by_item:
                    by_item[key] = []
                    order.append(item)
                by_item[key].append(err)
        return [(item, by_item[id(item)]) for item in order]

    def replace_skipped(self, replace: Callable[[E], X]) -> "WriteResult[R, X]":
        return WriteResult(
            successes=list(self.successes),
            errors=[err.replace_skipped(replace) for err in self.errors],
        )

    @classmethod
    def merge(cls, results: Iterable[Optional["WriteResult[R, E]"]]) -> "WriteResult[R, E]":
        """Concatenate results in the given order. ``None`` slots are ignored."""
        out: WriteResult[R, E] = cls()
        for result in results:
            if result is None:
                continue
            out.successes.extend(result.successes)
            out.errors.extend(result.errors)
        return out


def _raise_for(errors: list[ClassifiedError]) -> None:
    if not errors:
        return
    if len(errors) == 1:
        raise WriteErrorException(errors[0])
    raise WriteErrorGroup(
        f"{len(errors)} errors during bulk write", [WriteErrorException(e) for e in errors]
    )
