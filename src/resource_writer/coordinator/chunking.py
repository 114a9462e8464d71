"""
Partition batches into chunks that satisfy per-request limits.
"""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, Mapping, Optional, Sequence, TypeVar

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


def chunk_by(items: Iterable[T], max_size: int) -> list[list[T]]:
    """Split ``items`` into order-preserving lists of at most ``max_size`` elements."""
    if max_size < 1:
        raise ValueError("max_size must be >= 1")
    chunks: list[list[T]] = []
    current: list[T] = []
    for item in items:
        current.append(item)
        if len(current) == max_size:
            chunks.append(current)
            current = []
    if current:
        chunks.append(current)
    return chunks


def chunk_by_units(
    points: Mapping[K, Sequence[V]],
    max_units: int,
    max_keys: int,
) -> list[dict[K, list[V]]]:
    """Chunk a ``key -> values`` mapping by key count and total value count.

    Keys keep their first-seen order and keys with no values are dropped. A
    chunk is closed as soon as the next key would push it over either limit.
    A key whose own values exceed ``max_units`` is the only one split across
    chunks: it fills full chunks on its own and its remainder opens the next one.
    """
    if max_units < 1 or max_keys < 1:
        raise ValueError("max_units and max_keys must be >= 1")

    chunks: list[dict[K, list[V]]] = []
    current: dict[K, list[V]] = {}
    count = 0

    for key, values in points.items():
        values = list(values)
        if not values:
            continue
        n = len(values)

        if current and (len(current) >= max_keys or count + n > max_units):
            chunks.append(current)
            current = {}
            count = 0

        if n <= max_units:
            current[key] = values
            count += n
            continue

        # the key alone exceeds the unit limit
        for start in range(0, n, max_units):
            part = values[start : start + max_units]
            if len(part) == max_units:
                chunks.append({key: part})
            else:
                current = {key: part}
                count = len(part)

    if current:
        chunks.append(current)
    return chunks


def chunk_by_hierarchy(
    items: Sequence[T],
    max_size: int,
    id_of: Callable[[T], Optional[K]],
    parent_of: Callable[[T], Optional[K]],
) -> list[list[T]]:
    """Order a forest so every parent lands in an earlier or the same chunk.

    Items are grouped in layers (roots first, then their children, ...). Consecutive
    layers are merged while the merged chunk stays within ``max_size``; a single
    layer is never split, so a chunk may exceed ``max_size`` when one layer does.
    Items whose parent is not part of ``items`` count as roots.
    """
    if not items:
        return []

    node_ids = {id_of(item) for item in items}
    layer: list[T] = []
    children: dict[K, list[T]] = {}
    for item in items:
        parent = parent_of(item)
        if parent is None or parent not in node_ids:
            layer.append(item)
            continue
        children.setdefault(parent, []).append(item)

    remaining = set(node_ids)
    levels: list[list[T]] = []
    while layer:
        levels.append(layer)
        next_layer: list[T] = []
        for item in layer:
            node = id_of(item)
            if node not in remaining:
                raise ValueError("Input is not a tree")
            remaining.discard(node)
            next_layer.extend(children.get(node, []))
        layer = next_layer

    placed = sum(len(level) for level in levels)
    if placed != len(items):
        raise ValueError("Input is not a tree")

    return _conservative_merge(levels, max_size)


def _conservative_merge(levels: list[list[T]], max_size: int) -> list[list[T]]:
    if max_size <= 1:
        return levels
    merged: list[list[T]] = []
    current: list[T] = []
    for level in levels:
        if len(current) + len(level) <= max_size:
            current.extend(level)
        elif not current:
            merged.append(level)
        else:
            merged.append(current)
            current = list(level)
    if current:
        merged.append(current)
    return merged
