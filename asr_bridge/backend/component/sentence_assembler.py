"""Utterance assembly and flush timing."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from asr_bridge.backend.component.chunk_queue import BoundedQueue
from asr_bridge.backend.component.vad_gate import VADState


@dataclass
class DrainResult:
    absorbed: int
    absorbed_bytes: int
    overflow: bool


class SentenceAssembler:
    """Accumulates queued audio into one utterance of at most ``capacity`` bytes.

    A chunk that does not fit is never truncated: the part that fits (if the
    buffer is empty) is kept, the rest is carried over into the next
    utterance, and the buffer becomes flush-eligible immediately.
    """

    def __init__(
        self,
        sentence_threshold_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sentence_threshold_sec = max(0.0, float(sentence_threshold_sec))
        self._clock = clock
        self._capacity = 0
        self._buffer = bytearray()
        self._carry: Optional[bytes] = None
        self.chunks_absorbed = 0
        self.flush_deadline: Optional[float] = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ready(self) -> bool:
        return self._capacity > 0

    def latch_capacity(self, capacity: int) -> bool:
        """Size the buffer once; later calls are ignored."""
        if self._capacity > 0 or capacity <= 0:
            return self._capacity > 0
        self._capacity = int(capacity)
        return True

    def __len__(self) -> int:
        return len(self._buffer)

    def drain(self, source: BoundedQueue, should_stop: Callable[[], bool]) -> DrainResult:
        absorbed = 0
        absorbed_bytes = 0
        overflow = False
        if self._carry:
            carried, self._carry = self._carry, None
            overflow, added = self._append(carried)
            if added:
                absorbed += 1
                absorbed_bytes += added
        while not overflow:
            chunk = source.try_pop()
            if chunk is None:
                break
            if should_stop():
                break
            if not chunk.length:
                continue
            overflow, added = self._append(chunk.data)
            if added:
                absorbed += 1
                absorbed_bytes += added
        self.chunks_absorbed += absorbed
        return DrainResult(absorbed, absorbed_bytes, overflow)

    def _append(self, data: bytes) -> tuple[bool, int]:
        free = self._capacity - len(self._buffer)
        if len(data) < free:
            self._buffer.extend(data)
            return False, len(data)
        if len(data) == free:
            self._buffer.extend(data)
            return True, len(data)
        if self._buffer:
            self._carry = data
            return True, 0
        # A single chunk larger than the whole buffer: split on a sample boundary.
        cut = (free - (free % 2)) or free
        self._buffer.extend(data[:cut])
        self._carry = data[cut:] or None
        return True, cut

    def update_deadline(self, overflow: bool, vad_state: VADState) -> None:
        now = self._clock()
        if overflow:
            self.flush_deadline = now
            return
        if (
            self.chunks_absorbed
            and vad_state is VADState.STOP_TALKING
            and self.flush_deadline is None
        ):
            self.flush_deadline = now + self.sentence_threshold_sec

    def should_flush(self) -> bool:
        return self.flush_deadline is not None and self._clock() >= self.flush_deadline

    def peek(self) -> memoryview:
        return memoryview(self._buffer)

    def reset(self) -> None:
        self._buffer = bytearray()
        self.chunks_absorbed = 0
        self.flush_deadline = None

    def release(self) -> None:
        self.reset()
        self._carry = None

    def has_carry(self) -> bool:
        return bool(self._carry)

