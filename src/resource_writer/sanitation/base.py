"""
Shared sanitation helpers.

``clean_request`` runs the per-item rules of one resource kind over a batch
and then removes batch-local duplicates, keeping the first occurrence.
"""

from __future__ import annotations

from typing import Callable, Hashable, Optional, Sequence, TypeVar

from ..errors import ClassifiedError, ErrorKind, ResourceType
from ..identity import identity_of
from ..policy import SanitationMode
from ..utils import limit_utf8, utf8_len

T = TypeVar("T")

EXTERNAL_ID_MAX = 255

Sanitizer = Callable[[T], None]
Verifier = Callable[[T], Optional[ResourceType]]
UniqueKey = tuple[ResourceType, Callable[[T], Optional[Hashable]], str]


def sanitize_metadata(
    metadata: Optional[dict[str, str]],
    max_per_key: int,
    max_keys: int,
    max_per_value: int,
    max_bytes: int,
) -> Optional[dict[str, str]]:
    """Limit metadata by bytes per key, bytes per value, total bytes and pair count.

    Keys and values are cut to their byte limits first, then pairs are taken
    in order while both the pair count and the total byte budget allow.
    """
    if not metadata:
        return metadata
    result: dict[str, str] = {}
    count = 0
    total = 0
    for key, value in metadata.items():
        if key is None:
            continue
        key = limit_utf8(key, max_per_key)
        value = limit_utf8(value, max_per_value) or ""
        count += 1
        size = utf8_len(key) + utf8_len(value)
        if count > max_keys or total + size > max_bytes:
            break
        total += size
        result[key] = value
    return result


def metadata_size(metadata: Optional[dict[str, str]]) -> int:
    if not metadata:
        return 0
    return sum(utf8_len(k) + utf8_len(v) for k, v in metadata.items())


def verify_metadata(
    metadata: Optional[dict[str, str]],
    max_per_key: int,
    max_keys: int,
    max_per_value: int,
    max_bytes: int,
) -> bool:
    if not metadata:
        return True
    if len(metadata) > max_keys:
        return False
    total = 0
    for key, value in metadata.items():
        if value is None:
            return False
        key_bytes = utf8_len(key)
        value_bytes = utf8_len(value)
        if key_bytes > max_per_key or value_bytes > max_per_value:
            return False
        total += key_bytes + value_bytes
        if total > max_bytes:
            return False
    return True


def positive_or_none(value: Optional[int]) -> Optional[int]:
    """Ids below 1 are never valid references."""
    if value is not None and value < 1:
        return None
    return value


def clean_request(
    items: Sequence[T],
    mode: SanitationMode,
    sanitize: Sanitizer,
    verify: Verifier,
    unique_keys: Sequence[UniqueKey] = (),
) -> tuple[list[T], list[ClassifiedError[T]]]:
    """Sanitize a batch and remove duplicates.

    ``clean`` mode repairs items in place, ``remove`` mode drops items that
    fail ``verify`` and reports them in one ``SanitationFailed`` error per
    failed field. Afterwards items sharing a value for any of ``unique_keys``
    are reduced to the first occurrence, the rest are reported as
    ``ItemDuplicated`` against the first key they collide on.
    """
    if mode == SanitationMode.NONE:
        return list(items), []

    kept: list[T] = []
    bad: dict[ResourceType, list[T]] = {}
    for item in items:
        if mode == SanitationMode.REMOVE:
            failed = verify(item)
            if failed is not None:
                bad.setdefault(failed, []).append(item)
                continue
        else:
            sanitize(item)
        kept.append(item)

    result, errors = remove_duplicates(kept, unique_keys)

    for resource, skipped in bad.items():
        errors.append(
            ClassifiedError(
                kind=ErrorKind.SANITATION_FAILED,
                resource=resource,
                skipped=skipped,
                status=400,
                message="Sanitation failed",
            )
        )
    return result, errors


def remove_duplicates(
    items: Sequence[T], unique_keys: Sequence[UniqueKey]
) -> tuple[list[T], list[ClassifiedError[T]]]:
    if not unique_keys:
        return list(items), []

    seen: list[set[Hashable]] = [set() for _ in unique_keys]
    duplicated: list[ClassifiedError[T]] = [
        ClassifiedError(kind=ErrorKind.ITEM_DUPLICATED, resource=resource, status=409, message=message)
        for resource, _, message in unique_keys
    ]
    result: list[T] = []
    for item in items:
        values = [selector(item) for _, selector, _ in unique_keys]
        clash = next(
            (i for i, value in enumerate(values) if value is not None and value in seen[i]), None
        )
        if clash is not None:
            duplicated[clash].skipped.append(item)
            duplicated[clash].affected.add(identity_of(values[clash]))
            continue
        for i, value in enumerate(values):
            if value is not None:
                seen[i].add(value)
        result.append(item)

    return result, [err for err in duplicated if err.skipped]
