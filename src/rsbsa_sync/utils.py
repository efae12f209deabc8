from __future__ import annotations

from itertools import islice
from typing import Iterable, Iterator, List, Sequence, TypeVar

T = TypeVar("T")


def chunked(values: Iterable[T], size: int) -> Iterator[List[T]]:
    iterator = iter(values)
    while True:
        chunk = list(islice(iterator, max(1, size)))
        if not chunk:
            return
        yield chunk


def unique(values: Iterable[T]) -> List[T]:
    """Deduplicate while keeping first-seen order; ``None`` is dropped."""
    return [value for value in dict.fromkeys(values) if value is not None]


def sample(items: Sequence[T], size: int) -> List[T]:
    return list(items[:size])
