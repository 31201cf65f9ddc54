"""Per-call recognition session."""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, fields
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Optional, Tuple

from asr_bridge.backend.application.events import (
    VAD_EVENT_START,
    SessionHooks,
    VadEvent,
)
from asr_bridge.backend.component.chunk_queue import AudioChunk, BoundedQueue
from asr_bridge.backend.component.preroll import PreRollBuffer
from asr_bridge.backend.component.transcription_worker import TranscriptionWorker
from asr_bridge.backend.component.vad_gate import VADDetector, VADGate, VADState
from asr_bridge.config.default.server import DEFAULT_SESSION_CLOSE_POLL_SEC
from asr_bridge.utils.logger import LOGGER

if TYPE_CHECKING:
    from asr_bridge.backend.application.process_state import ProcessState


class FeedStatus(str, Enum):
    OK = "ok"
    BREAK = "break"


@dataclass
class SessionOptions:
    """Per-session overrides set at open time or through ``set_param``."""

    model: Optional[str] = None
    language: Optional[str] = None
    session_uuid: Optional[str] = None
    caller_id_number: Optional[str] = None
    destination_number: Optional[str] = None

    def submission_fields(self) -> Dict[str, str]:
        """Multipart fields sent alongside the audio; unset values are skipped."""
        return {
            f.name: str(getattr(self, f.name))
            for f in fields(self)
            if f.name != "model" and getattr(self, f.name)
        }


_OPTION_NAMES = {f.name for f in fields(SessionOptions)}


class AsrSession:  # pylint: disable=too-many-instance-attributes
    """Owns the gate, queues and worker for one audio stream.

    ``feed`` is called from the host's media thread; the worker thread only
    reads the latched sizes and VAD state, both under ``_lock``.
    """

    def __init__(
        self,
        process: ProcessState,
        detector: VADDetector,
        sample_rate: int,
        channels: int = 1,
        options: Optional[SessionOptions] = None,
        hooks: Optional[SessionHooks] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = process.config
        self._process = process
        self._detector = detector
        self.sample_rate = int(sample_rate)
        self.channels = max(1, int(channels))
        self.options = options or SessionOptions()
        self._hooks = hooks or SessionHooks()
        self._internal_id = uuid.uuid4().hex[:12]

        self._lock = threading.Lock()
        self._feed_lock = threading.Lock()
        self._close_lock = threading.Lock()

        self.audio_queue = BoundedQueue(config.queue_size)
        self.text_queue = BoundedQueue(config.queue_size)
        self._frame_len = 0
        self._chunk_buffer_capacity = 0
        self._preroll: Optional[PreRollBuffer] = None
        self._gate: Optional[VADGate] = None
        self._vad_state = VADState.NONE
        self._pending_results = 0

        self._paused = False
        self._aborting = False
        self._destroyed = False
        self._closed = False
        self._started = False

        self.worker = TranscriptionWorker(self, process, clock=clock)

    # -- identity and state read by the worker --------------------------------

    @property
    def session_id(self) -> str:
        return self.options.session_uuid or self._internal_id

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def frame_len(self) -> int:
        with self._lock:
            return self._frame_len

    @property
    def chunk_buffer_capacity(self) -> int:
        with self._lock:
            return self._chunk_buffer_capacity

    @property
    def vad_state(self) -> VADState:
        with self._lock:
            return self._vad_state

    @property
    def pending_results(self) -> int:
        with self._lock:
            return self._pending_results

    @property
    def active_workers(self) -> int:
        return 1 if self.worker.is_alive() else 0

    def has_pending_audio(self) -> bool:
        """True while queued or assembled audio has not been submitted yet."""
        assembler = self.worker.assembler
        return not self.audio_queue.empty() or len(assembler) > 0 or assembler.has_carry()

    def submission_options(self, default_model: str) -> Tuple[str, Dict[str, str]]:
        with self._lock:
            model = self.options.model or default_model
            return model, self.options.submission_fields()

    def publish_result(self, text: str) -> bool:
        """Queue a transcript for the host; False when the text queue is full."""
        with self._lock:
            self._pending_results += 1
        if self.text_queue.try_push(AudioChunk.from_text(text)):
            return True
        with self._lock:
            self._pending_results -= 1
        return False

    # -- lifecycle -------------------------------------------------------------

    def start(self) -> None:
        if self._started:
            return
        self._process.register_worker()
        try:
            self.worker.start()
        except Exception:
            self._process.unregister_worker()
            raise
        self._started = True
        self._process.metrics.increase_active_sessions()
        LOGGER.info(
            "Session opened session_id=%s sample_rate=%d channels=%d",
            self.session_id,
            self.sample_rate,
            self.channels,
        )

    def feed(self, frame: bytes) -> FeedStatus:
        if self._closed or self._aborting or self._destroyed:
            return FeedStatus.BREAK
        if self._paused:
            return FeedStatus.OK
        if not frame:
            return FeedStatus.BREAK

        frame = bytes(frame)
        with self._feed_lock:
            if self._destroyed:
                return FeedStatus.BREAK
            if self._gate is None:
                self._latch_frame_len(len(frame))
            gate = self._gate
            if len(frame) > gate.preroll.frame_len:
                frame = frame[: gate.preroll.frame_len]
            update = gate.process(frame)
            with self._lock:
                self._vad_state = gate.state
            # close() drains the queue under _feed_lock, so push while holding it.
            dropped = False
            if update.should_queue and update.chunk is not None and not self._destroyed:
                dropped = not self.audio_queue.try_push(update.chunk)

        if dropped:
            self._process.metrics.record_chunk_dropped()
            LOGGER.trace("Audio queue full; chunk dropped bytes=%d", update.chunk.length)

        if update.onset:
            self._process.metrics.record_vad_onset()
            if update.recovery_needed:
                LOGGER.trace(
                    "Pre-roll recovered frames=%d bytes=%d",
                    update.recovered_frames,
                    len(update.chunk) if update.chunk else 0,
                )
            self._fire_vad_start()
        return FeedStatus.OK

    def _latch_frame_len(self, frame_len: int) -> None:
        config = self._process.config
        preroll = PreRollBuffer(frame_len, config.store_frames)
        self._preroll = preroll
        self._gate = VADGate(self._detector, preroll, config.recovery_frames)
        with self._lock:
            self._frame_len = frame_len
            self._chunk_buffer_capacity = int(self.sample_rate * float(config.sentence_max_sec))
        LOGGER.debug(
            "Frame length latched frame_len=%d preroll_bytes=%d utterance_capacity=%d",
            frame_len,
            preroll.size_bytes,
            self._chunk_buffer_capacity,
        )

    def _fire_vad_start(self) -> None:
        unique_id = self.options.session_uuid
        if not unique_id:
            return
        event = VadEvent(type=VAD_EVENT_START, unique_id=unique_id)
        try:
            self._hooks.on_vad_event(event)
        except Exception:
            LOGGER.exception("VAD event hook failed")

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def set_param(self, name: str, value: Optional[str]) -> None:
        key = (name or "").strip().lower()
        if key not in _OPTION_NAMES:
            LOGGER.debug("Ignoring unknown session parameter %s", name)
            return
        with self._lock:
            setattr(self.options, key, value or None)
        LOGGER.debug("Session parameter set %s=%s", key, value)

    def check_results(self) -> bool:
        with self._lock:
            return self._pending_results > 0

    def get_result(self) -> Optional[str]:
        chunk = self.text_queue.try_pop()
        if chunk is None:
            return None
        with self._lock:
            if self._pending_results > 0:
                self._pending_results -= 1
        return chunk.as_text()

    def close(self, poll_sec: float = DEFAULT_SESSION_CLOSE_POLL_SEC) -> None:
        """Stop the worker, then release queues and VAD resources; idempotent."""
        with self._close_lock:
            if self._closed:
                return
            self._aborting = True
            self._destroyed = True
            self.worker.wake()
            self.worker.join(poll_sec)

            with self._feed_lock:
                dropped_audio = self.audio_queue.drain_and_discard()
                dropped_text = self.text_queue.drain_and_discard()
                if self._gate is not None:
                    self._gate.close()
                else:
                    self._detector.close()
                self._gate = None
                self._preroll = None
            with self._lock:
                self._pending_results = 0
            self._closed = True

        if self._started:
            self._process.metrics.decrease_active_sessions()
        LOGGER.info(
            "Session closed session_id=%s dropped_audio=%d dropped_text=%d",
            self.session_id,
            dropped_audio,
            dropped_text,
        )

    def start_input_timers(self) -> None:
        return None

    def load_grammar(self, grammar: str = "", name: str = "") -> None:
        return None

    def unload_grammar(self, name: str = "") -> None:
        return None
