"""
Window-style helpers: RANK() with shared ranks for ties, the same per
partition, and cumulative sums ordered by a key.
"""
from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable, List, Optional, Tuple, TypeVar

from .aggregates import group_by

T = TypeVar("T")


def _partition_sort_key(value: Hashable) -> Tuple[bool, Any]:
    # None partitions sort first, like NULLs in an ascending ORDER BY
    return (value is not None, value)


def rank_desc(
    items: Iterable[T],
    score: Callable[[T], float],
    tie_break: Optional[Callable[[T], Any]] = None,
) -> List[Tuple[int, T]]:
    """
    Rank items by descending score.

    Equal scores share a rank and the next distinct score skips ahead by
    the size of the tie, so scores 10, 10, 8 rank 1, 1, 3. ``tie_break``
    only orders items inside a tie; it never changes a rank.
    """
    ordered = list(items)
    if tie_break is not None:
        ordered.sort(key=tie_break)
    ordered.sort(key=score, reverse=True)

    ranked: List[Tuple[int, T]] = []
    last_score = None
    rank = 0
    for position, item in enumerate(ordered, start=1):
        s = score(item)
        if position == 1 or s != last_score:
            rank = position
            last_score = s
        ranked.append((rank, item))
    return ranked


def partition_rank(
    items: Iterable[T],
    partition: Callable[[T], Hashable],
    score: Callable[[T], float],
    tie_break: Optional[Callable[[T], Any]] = None,
) -> List[Tuple[int, T]]:
    """``rank_desc`` restarted at 1 inside every partition."""
    buckets = group_by(items, partition)

    ranked: List[Tuple[int, T]] = []
    for key in sorted(buckets, key=_partition_sort_key):
        ranked.extend(rank_desc(buckets[key], score, tie_break))
    return ranked


def running_total(
    items: Iterable[T],
    order_key: Callable[[T], Any],
    value: Callable[[T], float],
) -> List[Tuple[T, float]]:
    """
    Cumulative sum of ``value`` in ascending ``order_key`` order.

    Rows sharing an order key all carry the total through the last of
    them (SUM() OVER (ORDER BY ...) with its default RANGE frame).
    """
    ordered = sorted(items, key=order_key)
    result: List[Tuple[T, float]] = []
    total = 0
    i = 0
    while i < len(ordered):
        key = order_key(ordered[i])
        j = i
        while j < len(ordered) and order_key(ordered[j]) == key:
            total += value(ordered[j])
            j += 1
        result.extend((item, total) for item in ordered[i:j])
        i = j
    return result
