"""Audio/text chunks and the bounded queues that move them between threads."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AudioChunk:
    """Immutable slice of PCM16 audio or UTF-8 text."""

    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)

    def __len__(self) -> int:
        return len(self.data)

    @classmethod
    def from_text(cls, text: str) -> "AudioChunk":
        return cls(text.encode("utf-8"))

    def as_text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


class BoundedQueue:
    """Fixed-capacity FIFO whose push and pop never block.

    A failed push means the chunk was dropped; callers do not retry.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("queue capacity must be positive")
        self._capacity = int(capacity)
        self._items: "deque[AudioChunk]" = deque()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def try_push(self, chunk: AudioChunk) -> bool:
        with self._lock:
            if len(self._items) >= self._capacity:
                return False
            self._items.append(chunk)
            return True

    def try_pop(self) -> Optional[AudioChunk]:
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def drain_and_discard(self) -> int:
        """Release every queued chunk and return how many were dropped."""
        with self._lock:
            dropped = len(self._items)
            self._items.clear()
            return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def empty(self) -> bool:
        return len(self) == 0
