"""Fixed-capacity chronological message history."""

from ..core.locks import ReadWriteLock
from .models import Message


class RingBuffer:
    """Holds the last ``capacity`` messages, overwriting the oldest on add.

    Unwritten slots hold ``None`` and are never returned by the readers.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._slots: list[Message | None] = [None] * capacity
        self._capacity = capacity
        self._index = 0  # next slot to write
        self._lock = ReadWriteLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def add(self, message: Message) -> None:
        with self._lock.write():
            self._slots[self._index] = message
            self._index = (self._index + 1) % self._capacity

    def get_all(self) -> list[Message]:
        """All live entries, oldest first."""
        with self._lock.read():
            ordered = self._slots[self._index :] + self._slots[: self._index]
        return [m for m in ordered if m is not None]

    def get_last(self, n: int) -> list[Message]:
        """Up to ``min(n, capacity)`` most recent entries, oldest first."""
        if n <= 0:
            return []
        n = min(n, self._capacity)
        with self._lock.read():
            result = []
            for offset in range(n, 0, -1):
                slot = self._slots[(self._index - offset) % self._capacity]
                if slot is not None:
                    result.append(slot)
        return result

    def __len__(self) -> int:
        with self._lock.read():
            return sum(1 for m in self._slots if m is not None)
