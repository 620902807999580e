"""
Small helpers for in-memory iterables shared by the fetch layer.

Exported symbols
────────────────
• chunked(iterable, size) → Iterator[list[T]]
• unique(iterable)        → list[T]   (first-seen order)
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterable, Iterator


def chunked[T](iterable: Iterable[T], size: int) -> Iterator[list[T]]:
    if size <= 0:
        msg = "size must be a positive integer"
        raise ValueError(msg)
    it = iter(iterable)
    while chunk := list(itertools.islice(it, size)):
        yield chunk


def unique[H: Hashable](items: Iterable[H]) -> list[H]:
    """
    De-duplicate while keeping the order in which items were first seen.

    >>> unique([3, 1, 3, 2, 1])
    [3, 1, 2]
    """
    return list(dict.fromkeys(items))
