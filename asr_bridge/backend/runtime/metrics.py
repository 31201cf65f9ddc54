import threading
from collections import defaultdict
from typing import Dict

from asr_bridge.errors import ErrorCode


class Metrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active_sessions = 0
        self._sessions_opened = 0
        self._vad_onsets = 0
        self._chunks_dropped = 0
        self._utterances_flushed = 0
        self._utterance_bytes_total = 0
        self._transcripts_emitted = 0
        self._submit_count = 0
        self._submit_total = 0.0
        self._submit_max = 0.0
        self._error_counts: Dict[str, int] = defaultdict(int)

    def increase_active_sessions(self) -> None:
        with self._lock:
            self._active_sessions += 1
            self._sessions_opened += 1

    def decrease_active_sessions(self) -> None:
        with self._lock:
            if self._active_sessions > 0:
                self._active_sessions -= 1

    def record_vad_onset(self) -> None:
        with self._lock:
            self._vad_onsets += 1

    def record_chunk_dropped(self, count: int = 1) -> None:
        with self._lock:
            self._chunks_dropped += count

    def record_flush(self, utterance_bytes: int) -> None:
        with self._lock:
            self._utterances_flushed += 1
            self._utterance_bytes_total += utterance_bytes

    def record_submission(self, latency_sec: float) -> None:
        with self._lock:
            self._submit_count += 1
            self._submit_total += latency_sec
            self._submit_max = max(self._submit_max, latency_sec)

    def record_transcript(self) -> None:
        with self._lock:
            self._transcripts_emitted += 1

    def record_error(self, code: ErrorCode) -> None:
        with self._lock:
            self._error_counts[code.value] += 1

    def error_count(self, code: ErrorCode) -> int:
        with self._lock:
            return self._error_counts.get(code.value, 0)

    def render(self) -> str:
        with self._lock:
            lines = [
                f"active_sessions {self._active_sessions}",
                f"sessions_opened_total {self._sessions_opened}",
                f"vad_onsets_total {self._vad_onsets}",
                f"audio_chunks_dropped_total {self._chunks_dropped}",
                f"utterances_flushed_total {self._utterances_flushed}",
                f"utterance_bytes_total {self._utterance_bytes_total}",
                f"transcripts_emitted_total {self._transcripts_emitted}",
                f"submit_latency_total {self._submit_total:.6f}",
                f"submit_latency_count {self._submit_count}",
                f"submit_latency_max {self._submit_max:.6f}",
            ]
            for code, count in sorted(self._error_counts.items()):
                lines.append(f'error_count{{code="{code}"}} {count}')
            return "\n".join(lines) + "\n"

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            submit_avg = (
                (self._submit_total / self._submit_count) if self._submit_count else 0.0
            )
            return {
                "active_sessions": self._active_sessions,
                "sessions_opened": self._sessions_opened,
                "vad_onsets": self._vad_onsets,
                "chunks_dropped": self._chunks_dropped,
                "utterances_flushed": self._utterances_flushed,
                "transcripts_emitted": self._transcripts_emitted,
                "submit_latency_avg": submit_avg,
                "submit_latency_max": self._submit_max,
                "errors": sum(self._error_counts.values()),
            }
