from __future__ import annotations

from typing import Any, Generic, Iterable, Iterator, TypeVar

from streamwindow.utils.numbers import normalize_int

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity FIFO that overwrites its oldest element when full.

    Capacity is coerced once at construction (non-numeric or negative -> 0)
    and never changes. A zero-capacity buffer silently discards every push.
    """

    def __init__(self, capacity: Any = 0):
        self._capacity = normalize_int(capacity, 0, minimum=0)
        self._storage: list[T | None] = [None] * self._capacity
        self._head = 0
        self._length = 0

    def push(self, item: T) -> None:
        if self._capacity == 0:
            return
        if self._length < self._capacity:
            self._storage[(self._head + self._length) % self._capacity] = item
            self._length += 1
            return
        self._storage[self._head] = item
        self._head = (self._head + 1) % self._capacity

    def append_many(self, items: Iterable[T] | None) -> None:
        for item in items or ():
            self.push(item)

    def to_list(self) -> list[T]:
        """Snapshot of the contents, oldest first."""
        return [
            self._storage[(self._head + i) % self._capacity]  # type: ignore[misc]
            for i in range(self._length)
        ]

    def size(self) -> int:
        return self._length

    def capacity(self) -> int:
        return self._capacity

    def clear(self) -> None:
        self._storage = [None] * self._capacity
        self._head = 0
        self._length = 0

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[T]:
        return iter(self.to_list())

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self._capacity}, size={self._length})"
