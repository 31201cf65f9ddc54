"""Ring buffer of recent non-speech frames used to recover speech onsets."""

from __future__ import annotations


class PreRollBuffer:
    """Keeps the last ``capacity_frames`` frames of ``frame_len`` bytes each.

    ``stored_frames`` counts frames written since the last ``mark_recovered``
    (saturating at capacity). ``is_wrapped`` flips once the ring has been
    overwritten for the first time and never flips back.
    """

    def __init__(self, frame_len: int, capacity_frames: int) -> None:
        if frame_len <= 0 or capacity_frames <= 0:
            raise ValueError("frame_len and capacity_frames must be positive")
        self.frame_len = int(frame_len)
        self.capacity_frames = int(capacity_frames)
        self._buffer = bytearray(self.frame_len * self.capacity_frames)
        self._write_index = 0
        self._total_written = 0
        self._stored_frames = 0
        self._wrapped = False

    @property
    def size_bytes(self) -> int:
        return len(self._buffer)

    @property
    def stored_frames(self) -> int:
        return self._stored_frames

    @property
    def is_wrapped(self) -> bool:
        return self._wrapped

    @property
    def available_frames(self) -> int:
        """Frames that can be read back in chronological order."""
        return min(self._total_written, self.capacity_frames)

    def write_frame(self, frame: bytes) -> None:
        if len(frame) != self.frame_len:
            raise ValueError(
                f"frame length {len(frame)} does not match ring frame length {self.frame_len}"
            )
        if self._total_written >= self.capacity_frames:
            self._wrapped = True
        offset = self._write_index * self.frame_len
        self._buffer[offset : offset + self.frame_len] = frame
        self._write_index = (self._write_index + 1) % self.capacity_frames
        self._total_written += 1
        if self._stored_frames < self.capacity_frames:
            self._stored_frames += 1

    def read_last(self, count: int) -> bytes:
        """Return the most recent ``count`` frames, oldest first."""
        count = max(0, min(int(count), self.available_frames))
        if count == 0:
            return b""
        start = (self._write_index - count) % self.capacity_frames
        end = start + count
        if end <= self.capacity_frames:
            return bytes(self._buffer[start * self.frame_len : end * self.frame_len])
        # Window crosses the physical end of the ring: tail segment then head segment.
        tail = self._buffer[start * self.frame_len :]
        head = self._buffer[: (end - self.capacity_frames) * self.frame_len]
        return bytes(tail) + bytes(head)

    def recovery_frame_count(self, recovery_frames: int) -> int:
        """How many frames an onset recovers right now.

        Before the first wrap only the frames stored since the last recovery
        are used; afterwards a full ``recovery_frames`` window is available.
        """
        if self._stored_frames <= 0:
            return 0
        if self._stored_frames >= recovery_frames or self._wrapped:
            return min(recovery_frames, self.available_frames)
        return self._stored_frames

    def mark_recovered(self) -> None:
        self._stored_frames = 0
