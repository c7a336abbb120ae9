from __future__ import annotations


class SequenceAllocator:
    """Per-pass monotonic counter for step sequence numbers.

    Never persisted: every execution pass builds a fresh allocator and
    re-derives the same numbers by walking the workflow from the top.
    """

    def __init__(self) -> None:
        self._counter = 0

    @property
    def allocated(self) -> int:
        """How many sequence numbers have been handed out."""
        return self._counter

    def next(self) -> int:
        self._counter += 1
        return self._counter

    def reserve(self, count: int) -> list[int]:
        """Allocate ``count`` consecutive numbers in one call."""
        if count < 0:
            raise ValueError("count must be >= 0")
        return [self.next() for _ in range(count)]
