from __future__ import annotations

from typing import Generic, List, TypeVar

T = TypeVar("T")


class BatchAccumulator(Generic[T]):
    """Single-owner bounded buffer shared by both pipeline directions.

    ``push`` returns True once the buffer holds ``threshold`` items; the caller
    must ``drain`` before pushing again. ``drain`` hands back the contents and
    resets the buffer in one step.
    """

    def __init__(self, threshold: int) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be > 0")
        self.threshold = threshold
        self._items: List[T] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def full(self) -> bool:
        return len(self._items) >= self.threshold

    def push(self, item: T) -> bool:
        if self.full:
            raise OverflowError(f"accumulator full ({self.threshold}); drain before pushing")
        self._items.append(item)
        return self.full

    def drain(self) -> List[T]:
        items, self._items = self._items, []
        return items
