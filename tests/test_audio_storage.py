import logging
import wave
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from asr_bridge.backend.component.audio_storage import (
    AudioStorageConfig,
    UtteranceFileWriter,
    _sanitize_session_id,
    discard,
)


def _pcm(samples: int = 800) -> bytes:
    """Helper for a short PCM16 ramp."""
    return (np.arange(samples, dtype=np.int16) * 10).tobytes()


def _writer(tmp_path, encoding):
    return UtteranceFileWriter(AudioStorageConfig(directory=tmp_path / "cache", encoding=encoding))


def test_wav_file_has_pcm16_header(tmp_path):
    pcm = _pcm()
    path = _writer(tmp_path, "wav").write(pcm, 1, 8000, "call-1")

    with wave.open(str(path), "rb") as wav:
        assert wav.getnchannels() == 1
        assert wav.getsampwidth() == 2
        assert wav.getframerate() == 8000
        assert wav.readframes(wav.getnframes()) == pcm
    assert path.suffix == ".wav"
    assert "call-1" in path.name


def test_raw_file_is_plain_pcm(tmp_path):
    pcm = _pcm()
    path = _writer(tmp_path, "pcm").write(pcm, 1, 16000)
    assert path.suffix == ".raw"
    assert path.read_bytes() == pcm


def test_flac_round_trip(tmp_path):
    pcm = _pcm()
    path = _writer(tmp_path, "flac").write(memoryview(pcm), 1, 16000)
    data, rate = sf.read(str(path), dtype="int16")
    assert rate == 16000
    assert data.tobytes() == pcm


def test_file_names_are_unique(tmp_path):
    writer = _writer(tmp_path, "raw")
    paths = {writer.write(b"\x00\x00", 1, 8000, "same") for _ in range(20)}
    assert len(paths) == 20


def test_unsupported_encoding_leaves_no_file(tmp_path):
    writer = _writer(tmp_path, "mp3")
    with pytest.raises(ValueError):
        writer.write(_pcm(), 1, 8000)
    assert list(writer.directory.iterdir()) == []


def test_discard_tolerates_missing_file(tmp_path):
    path = tmp_path / "gone.wav"
    discard(path)
    path.write_bytes(b"x")
    discard(path)
    assert not path.exists()



def test_discard_logs_permission_errors(tmp_path, monkeypatch, caplog):
    path = tmp_path / "locked.wav"
    path.write_bytes(b"x")

    def refuse(self, missing_ok=False):
        raise PermissionError("read-only")

    monkeypatch.setattr(Path, "unlink", refuse)
    caplog.set_level(logging.WARNING, logger="asr_bridge")
    discard(path)

    assert "Unable to remove utterance file" in caplog.text

def test_sanitize_session_id():
    assert _sanitize_session_id("a/b c") == "a_b_c"
    assert _sanitize_session_id("///") == "session"
    assert len(_sanitize_session_id("x" * 200)) == 80
