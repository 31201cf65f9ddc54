"""Voice activity detection helpers."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol, TypeAlias, cast

import numpy as np

from asr_bridge.backend.component.chunk_queue import AudioChunk
from asr_bridge.backend.component.preroll import PreRollBuffer
from asr_bridge.utils import audio
from asr_bridge.utils.logger import LOGGER

try:
    import torch
except ImportError:  # pragma: no cover - optional dependency in some environments
    torch = None

try:
    from silero_vad import load_silero_vad
except ImportError:  # pragma: no cover - optional dependency in some environments
    load_silero_vad = None

if TYPE_CHECKING:
    import torch as torch_mod

    TensorLike: TypeAlias = torch_mod.Tensor
else:
    TensorLike: TypeAlias = object


class VADState(str, Enum):
    NONE = "none"
    START_TALKING = "start_talking"
    TALKING = "talking"
    STOP_TALKING = "stop_talking"


class VADDetector(Protocol):
    def process(self, frame: bytes) -> VADState: ...

    def reset(self) -> None: ...

    def close(self) -> None: ...


class _TalkStateTracker:
    """Turns per-frame speech decisions into NONE/START/TALKING/STOP states."""

    def __init__(self, voice_ms: int, silence_ms: int) -> None:
        self.voice_ms = max(0, int(voice_ms))
        self.silence_ms = max(0, int(silence_ms))
        self.talking = False
        self.voice_acc_ms = 0.0
        self.silence_acc_ms = 0.0

    def advance(self, speech: bool, frame_ms: float) -> VADState:
        if not self.talking:
            if not speech:
                self.voice_acc_ms = 0.0
                return VADState.NONE
            self.voice_acc_ms += frame_ms
            if self.voice_acc_ms >= self.voice_ms:
                self.talking = True
                self.silence_acc_ms = 0.0
                return VADState.START_TALKING
            return VADState.NONE

        if speech:
            self.silence_acc_ms = 0.0
        else:
            self.silence_acc_ms += frame_ms
            if self.silence_acc_ms >= self.silence_ms:
                self.reset()
                return VADState.STOP_TALKING
        return VADState.TALKING

    def reset(self) -> None:
        self.talking = False
        self.voice_acc_ms = 0.0
        self.silence_acc_ms = 0.0


class EnergyVAD:
    """Energy-threshold detector over mean absolute PCM16 amplitude."""

    def __init__(
        self,
        sample_rate: int,
        channels: int = 1,
        threshold: float = 100.0,
        voice_ms: int = 200,
        silence_ms: int = 500,
        debug: bool = False,
    ) -> None:
        if sample_rate <= 0 or channels <= 0:
            raise ValueError("sample_rate and channels must be positive")
        self.sample_rate = sample_rate
        self.channels = channels
        self.threshold = float(threshold)
        self.debug = debug
        self._tracker = _TalkStateTracker(voice_ms, silence_ms)

    def process(self, frame: bytes) -> VADState:
        frame_ms = (
            audio.chunk_duration_seconds(len(frame), self.sample_rate, self.channels)
            * 1000.0
        )
        energy = audio.frame_energy(frame)
        state = self._tracker.advance(energy >= self.threshold, frame_ms)
        if self.debug:
            LOGGER.debug(
                "vad energy=%.1f threshold=%.1f state=%s", energy, self.threshold, state.value
            )
        return state

    def reset(self) -> None:
        self._tracker.reset()

    def close(self) -> None:
        return None


class VADModel(Protocol):
    def __call__(self, audio: TensorLike, sample_rate: int): ...

    def eval(self) -> None: ...

    def reset_states(self) -> None: ...


_SILERO_SAMPLE_RATE = 16000
_SILERO_FRAME_SAMPLES = 512
_SILERO_BASE_MODEL: Optional[VADModel] = None
_SILERO_LOCK = threading.Lock()


def _load_silero_base_model() -> VADModel:
    if torch is None or load_silero_vad is None:
        raise RuntimeError(
            "silero-vad requires torch + silero-vad. Install them to enable the silero backend."
        )
    global _SILERO_BASE_MODEL
    with _SILERO_LOCK:
        if _SILERO_BASE_MODEL is None:
            _SILERO_BASE_MODEL = cast(VADModel, load_silero_vad())
        return _SILERO_BASE_MODEL


def _new_silero_model() -> VADModel:
    base_model = _load_silero_base_model()
    try:
        model = copy.deepcopy(base_model)
    except Exception:
        assert load_silero_vad is not None
        model = cast(VADModel, load_silero_vad())
    model.eval()
    if hasattr(model, "reset_states"):
        model.reset_states()
    return model


def _silero_frame_probability(model: VADModel, frame: np.ndarray) -> float:
    if frame.size == 0:
        return 0.0
    assert torch is not None
    tensor = torch.from_numpy(frame).unsqueeze(0)
    with torch.no_grad():
        prob = model(tensor, _SILERO_SAMPLE_RATE)
    if isinstance(prob, torch.Tensor):
        return float(prob.mean().item())
    if prob is None:
        return 0.0
    return float(prob)


class SileroVAD:
    """Silero-backed detector; one model instance per session."""

    def __init__(
        self,
        sample_rate: int,
        channels: int = 1,
        threshold: float = 0.5,
        voice_ms: int = 200,
        silence_ms: int = 500,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.threshold = float(threshold)
        self._model: Optional[VADModel] = _new_silero_model()
        self._tracker = _TalkStateTracker(voice_ms, silence_ms)
        self._pending = np.zeros(0, dtype=np.float32)

    def _speech_probability(self, frame: bytes) -> float:
        if self._model is None:
            return 0.0
        audio_f32 = audio.pcm16_to_float32(frame)
        if self.channels > 1:
            audio_f32 = audio_f32[:: self.channels]
        audio_f32 = audio.ensure_16k(audio_f32, self.sample_rate)
        self._pending = np.concatenate([self._pending, audio_f32.astype(np.float32)])
        max_prob = 0.0
        # Silero scores fixed 32ms windows; keep the max score for this frame.
        while self._pending.size >= _SILERO_FRAME_SAMPLES:
            window = self._pending[:_SILERO_FRAME_SAMPLES]
            self._pending = self._pending[_SILERO_FRAME_SAMPLES:]
            max_prob = max(max_prob, _silero_frame_probability(self._model, window))
        return max_prob

    def process(self, frame: bytes) -> VADState:
        frame_ms = (
            audio.chunk_duration_seconds(len(frame), self.sample_rate, self.channels)
            * 1000.0
        )
        prob = self._speech_probability(frame)
        return self._tracker.advance(prob >= self.threshold, frame_ms)

    def reset(self) -> None:
        self._tracker.reset()
        self._pending = np.zeros(0, dtype=np.float32)
        if self._model is not None and hasattr(self._model, "reset_states"):
            self._model.reset_states()

    def close(self) -> None:
        self._model = None


def create_detector(
    backend: str,
    sample_rate: int,
    channels: int,
    threshold: float,
    voice_ms: int,
    silence_ms: int,
    silero_threshold: float = 0.5,
    debug: bool = False,
) -> VADDetector:
    if backend == "silero":
        return SileroVAD(
            sample_rate,
            channels,
            threshold=silero_threshold,
            voice_ms=voice_ms,
            silence_ms=silence_ms,
        )
    return EnergyVAD(
        sample_rate,
        channels,
        threshold=threshold,
        voice_ms=voice_ms,
        silence_ms=silence_ms,
        debug=debug,
    )


@dataclass
class VADGateUpdate:
    state: VADState
    should_queue: bool
    recovery_needed: bool
    recovered_frames: int = 0
    chunk: Optional[AudioChunk] = None

    @property
    def onset(self) -> bool:
        return self.state is VADState.START_TALKING


class VADGate:
    """Runs the detector over fixed-size frames and decides what gets queued.

    ``state`` is sticky: a NONE result from the detector leaves it untouched,
    so a session stays in STOP_TALKING between utterances.
    """

    def __init__(
        self,
        detector: VADDetector,
        preroll: PreRollBuffer,
        recovery_frames: int,
    ) -> None:
        self.detector = detector
        self.preroll = preroll
        self.recovery_frames = max(1, int(recovery_frames))
        self.state = VADState.NONE

    def _collecting_preroll(self) -> bool:
        return self.state in (VADState.NONE, VADState.STOP_TALKING)

    def process(self, frame: bytes) -> VADGateUpdate:
        collecting = self._collecting_preroll()
        detected = self.detector.process(frame)

        if detected is VADState.START_TALKING:
            self.state = detected
            return self._onset(frame)

        if collecting and len(frame) == self.preroll.frame_len:
            self.preroll.write_frame(frame)

        if detected is VADState.STOP_TALKING:
            self.state = detected
            self.detector.reset()
            return VADGateUpdate(state=detected, should_queue=False, recovery_needed=False)

        if detected is VADState.TALKING:
            self.state = detected
            return VADGateUpdate(
                state=detected,
                should_queue=True,
                recovery_needed=False,
                chunk=AudioChunk(bytes(frame)),
            )

        return VADGateUpdate(state=self.state, should_queue=False, recovery_needed=False)

    def _onset(self, frame: bytes) -> VADGateUpdate:
        count = self.preroll.recovery_frame_count(self.recovery_frames)
        if count <= 0:
            return VADGateUpdate(
                state=VADState.START_TALKING,
                should_queue=True,
                recovery_needed=False,
                chunk=AudioChunk(bytes(frame)),
            )
        recovered = self.preroll.read_last(count)
        self.preroll.mark_recovered()
        return VADGateUpdate(
            state=VADState.START_TALKING,
            should_queue=True,
            recovery_needed=True,
            recovered_frames=count,
            chunk=AudioChunk(recovered + bytes(frame)),
        )

    def close(self) -> None:
        self.detector.close()
