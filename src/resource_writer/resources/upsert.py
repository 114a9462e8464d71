"""
Create-or-update on top of the get-or-create and update flows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from loguru import logger

from ..errors import ClassifiedError, ErrorKind, ResourceType
from ..identity import ExternalId
from ..models import FieldUpdate, ListUpdate, MapUpdate
from ..result import WriteResult
from ..sanitation.base import EXTERNAL_ID_MAX

C = TypeVar("C")
U = TypeVar("U")
R = TypeVar("R")

Builder = Callable[[list[str]], list[C]]


@dataclass
class UpsertOptions:
    """How the desired state of an existing item is turned into an update.

    replace_metadata: replace the whole metadata map instead of adding keys
    replace_labels: replace the label list instead of adding labels
    set_null: clear fields that are ``None`` in the desired state
    """

    replace_metadata: bool = False
    replace_labels: bool = False
    set_null: bool = True


def field_update(new: Any, old: Any, set_null: bool) -> Optional[FieldUpdate]:
    if new == old:
        return None
    if new is None:
        return FieldUpdate(set_null=True) if set_null else None
    return FieldUpdate(set=new)


def metadata_update(
    new: Optional[dict[str, str]], old: Optional[dict[str, str]], replace: bool
) -> Optional[MapUpdate]:
    if new is None:
        return None
    old = old or {}
    if replace:
        return None if new == old else MapUpdate(set=dict(new))
    changed = {k: v for k, v in new.items() if old.get(k) != v}
    return MapUpdate(add=changed) if changed else None


def list_update(new: Optional[list], old: Optional[list], replace: bool) -> Optional[ListUpdate]:
    if new is None:
        return None
    old = old or []
    if replace:
        return None if list(new) == list(old) else ListUpdate(set=list(new))
    added = [v for v in new if v not in old]
    return ListUpdate(add=added) if added else None


class UpsertComposer(Generic[C, U, R]):
    """Create missing items, update existing ones that differ, keep input order.

    Items are keyed by external id. Existing records are looked up and missing
    ones created by ``get_or_create``; every returned record is diffed against
    the desired item with ``to_update`` and the resulting updates are sent
    through ``update``. Errors of the update step are reported against the
    desired create items, so callers only ever see the type they passed in.
    """

    def __init__(
        self,
        *,
        resource: str,
        key_of: Callable[[C], Optional[str]],
        key_of_record: Callable[[R], Optional[str]],
        key_of_update: Callable[[U], Optional[str]],
        get_or_create: Callable[[list[str], Builder], Awaitable[WriteResult[R, C]]],
        to_update: Callable[[C, R, UpsertOptions], Optional[U]],
        update: Callable[[list[U]], Awaitable[WriteResult[R, U]]],
    ):
        self._resource = resource
        self._key_of = key_of
        self._key_of_record = key_of_record
        self._key_of_update = key_of_update
        self._get_or_create = get_or_create
        self._to_update = to_update
        self._update = update

    async def upsert(self, items: Sequence[C], options: UpsertOptions) -> WriteResult[R, C]:
        desired: dict[str, C] = {}
        duplicated: list[C] = []
        for item in items:
            key = self._key_of(item)
            if key is None:
                raise ValueError(f"All {self._resource} must have external_id to be upserted")
            if len(key) > EXTERNAL_ID_MAX:
                raise ValueError(f"External id of {self._resource} is longer than {EXTERNAL_ID_MAX}: {key}")
            if key in desired:
                duplicated.append(item)
                continue
            desired[key] = item

        def build(missing: list[str]) -> list[C]:
            return [desired[key] for key in missing if key in desired]

        created = await self._get_or_create(list(desired), build)

        final: dict[str, R] = {}
        updates: list[U] = []
        for record in created.successes:
            key = self._key_of_record(record)
            if key not in desired or key in final:
                continue
            update = self._to_update(desired[key], record, options)
            if update is None:
                final[key] = record
            else:
                updates.append(update)

        errors: list[ClassifiedError[C]] = list(created.errors)
        if updates:
            logger.debug(f"Updating {len(updates)} existing {self._resource}")
            updated = await self._update(updates)
            for record in updated.successes:
                final[self._key_of_record(record)] = record
            errors.extend(updated.replace_skipped(lambda u: desired[self._key_of_update(u)]).errors)

        if duplicated:
            errors.insert(
                0,
                ClassifiedError(
                    kind=ErrorKind.ITEM_DUPLICATED,
                    resource=ResourceType.EXTERNAL_ID,
                    affected={ExternalId(self._key_of(item)) for item in duplicated},
                    skipped=duplicated,
                    status=409,
                    message="Conflicting identifiers",
                ),
            )

        # fetch, create and update order differ from the caller's order
        successes = [final[key] for key in desired if key in final]
        return WriteResult(successes=successes, errors=errors)
