import numpy as np
import pytest

from asr_bridge.backend.component import vad_gate as vad_gate_module
from asr_bridge.backend.component.preroll import PreRollBuffer
from asr_bridge.backend.component.vad_gate import (
    EnergyVAD,
    VADGate,
    VADState,
    create_detector,
)
from conftest import ScriptedDetector, frame

N = VADState.NONE
START = VADState.START_TALKING
TALK = VADState.TALKING
STOP = VADState.STOP_TALKING


def _gate(states, store_frames=8, recovery_frames=4, frame_len=160):
    """Helper for a gate driven by a scripted detector."""
    detector = ScriptedDetector(states)
    preroll = PreRollBuffer(frame_len, store_frames)
    return VADGate(detector, preroll, recovery_frames), detector


def test_onset_prepends_preroll_before_trigger_frame():
    """The onset chunk is recovered frames followed by the trigger frame."""
    gate, _ = _gate([N, N, N, START])
    for marker in (1, 2, 3):
        update = gate.process(frame(marker))
        assert update.should_queue is False

    update = gate.process(frame(4))

    assert update.onset is True
    assert update.recovery_needed is True
    assert update.recovered_frames == 3
    assert update.chunk.data == frame(1) + frame(2) + frame(3) + frame(4)


def test_onset_recovers_last_r_frames():
    """Only the configured recovery window is prepended."""
    gate, _ = _gate([N] * 6 + [START], recovery_frames=4)
    for marker in range(1, 7):
        gate.process(frame(marker))

    update = gate.process(frame(7))

    expected = b"".join(frame(m) for m in (3, 4, 5, 6, 7))
    assert update.chunk.data == expected
    assert len(update.chunk) == 5 * 160


def test_onset_without_preroll_queues_trigger_only():
    """An onset on the first frame carries just that frame."""
    gate, _ = _gate([START])
    update = gate.process(frame(9))

    assert update.should_queue is True
    assert update.recovery_needed is False
    assert update.chunk.data == frame(9)


def test_talking_frames_are_queued_and_stop_is_not():
    """TALKING frames are queued one by one; the STOP frame is dropped."""
    gate, detector = _gate([START, TALK, TALK, STOP])
    queued = []
    for marker in (1, 2, 3, 4):
        update = gate.process(frame(marker))
        if update.should_queue:
            queued.append(update.chunk.data)

    assert queued == [frame(1), frame(2), frame(3)]
    assert gate.state is STOP
    assert detector.resets == 1


def test_state_is_sticky_across_none_results():
    """NONE from the detector leaves the gate in STOP_TALKING."""
    gate, _ = _gate([START, STOP, N, N])
    for marker in (1, 2, 3, 4):
        gate.process(frame(marker))
    assert gate.state is STOP


def test_second_onset_recovers_only_new_silence():
    """Frames already recovered are not sent again on the next onset."""
    gate, _ = _gate([N, N, START, TALK, STOP, N, START])
    updates = [gate.process(frame(marker)) for marker in range(1, 8)]

    first_onset = updates[2]
    assert first_onset.chunk.data == frame(1) + frame(2) + frame(3)
    second_onset = updates[6]
    assert second_onset.recovered_frames == 1
    assert second_onset.chunk.data == frame(6) + frame(7)


def test_preroll_skips_frames_of_wrong_length():
    """Short frames are passed to the detector but not stored."""
    gate, _ = _gate([N, N, START])
    gate.process(frame(1))
    gate.process(frame(2, length=80))
    update = gate.process(frame(3))
    assert update.chunk.data == frame(1) + frame(3)


def test_gate_close_closes_detector():
    gate, detector = _gate([])
    gate.close()
    assert detector.closed is True


def _pcm(amplitude: int, samples: int = 160) -> bytes:
    """Helper for a constant-amplitude PCM16 frame."""
    return (np.ones(samples, dtype=np.int16) * amplitude).tobytes()


def test_energy_vad_state_sequence():
    """Voice and silence durations drive the four states."""
    vad = EnergyVAD(8000, threshold=100.0, voice_ms=40, silence_ms=40)
    loud, quiet = _pcm(2000), _pcm(0)

    states = [vad.process(f) for f in (quiet, loud, loud, loud, quiet, quiet, quiet)]

    assert states == [N, N, START, TALK, TALK, STOP, N]


def test_energy_vad_requires_contiguous_voice():
    """A silent frame before the voice threshold restarts the count."""
    vad = EnergyVAD(8000, threshold=100.0, voice_ms=40, silence_ms=40)
    loud, quiet = _pcm(2000), _pcm(0)

    states = [vad.process(f) for f in (loud, quiet, loud, loud)]

    assert states == [N, N, N, START]


def test_energy_vad_rejects_invalid_rate():
    with pytest.raises(ValueError):
        EnergyVAD(0)


def test_create_detector_defaults_to_energy():
    detector = create_detector("energy", 8000, 1, threshold=50.0, voice_ms=20, silence_ms=100)
    assert isinstance(detector, EnergyVAD)
    assert detector.threshold == 50.0


def test_silero_backend_requires_optional_dependencies(monkeypatch):
    """Without torch/silero-vad the silero backend fails to initialize."""
    monkeypatch.setattr(vad_gate_module, "load_silero_vad", None)
    monkeypatch.setattr(vad_gate_module, "_SILERO_BASE_MODEL", None)
    with pytest.raises(RuntimeError):
        create_detector("silero", 16000, 1, threshold=0.0, voice_ms=20, silence_ms=100)
