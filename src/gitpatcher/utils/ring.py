"""Fixed-capacity memory of the most recent items seen in a stream."""

from __future__ import annotations

from collections import deque
from typing import Deque, Generic, Iterable, Iterator, TypeVar

T = TypeVar("T")


class RememberLast(Generic[T]):
    """Keep the last ``limit`` items pushed, oldest first.

    Older items are silently evicted once the buffer is full, so callers can
    stream an arbitrary number of values through it and only inspect the tail.
    """

    __slots__ = ("_limit", "_items")

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError(f"RememberLast limit must be positive, got {limit}")
        self._limit = limit
        self._items: Deque[T] = deque(maxlen=limit)

    def remember(self, item: T) -> None:
        self._items.append(item)

    def extend(self, items: Iterable[T]) -> None:
        for item in items:
            self.remember(item)

    def back(self, offset: int = 0) -> T:
        """Return the item ``offset`` positions before the newest one."""

        if offset < 0 or offset >= len(self._items):
            raise IndexError(f"offset {offset} out of range for {len(self._items)} remembered items")
        return self._items[len(self._items) - offset - 1]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"RememberLast(limit={self._limit}, items={list(self._items)!r})"


def remember_last(items: Iterable[T], limit: int) -> RememberLast[T]:
    """Drain ``items`` into a new :class:`RememberLast` and return it."""

    memory: RememberLast[T] = RememberLast(limit)
    memory.extend(items)
    return memory


__all__ = ["RememberLast", "remember_last"]
