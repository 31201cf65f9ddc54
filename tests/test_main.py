from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest
import soundfile as sf

from asr_bridge import main as main_module
from asr_bridge.backend.application import ProcessState, SessionOptions
from asr_bridge.config import ServerConfig
from asr_bridge.errors import ASRError, ErrorCode
from conftest import FakeTranscriptionClient, ok_text


def _write_tone(path: Path, sample_rate: int = 8000, channels: int = 1) -> Path:
    """Helper for a file with 0.2s silence, 0.4s tone, 0.2s silence."""
    silence = np.zeros(int(sample_rate * 0.2), dtype=np.int16)
    t = np.arange(int(sample_rate * 0.4)) / sample_rate
    tone = (np.sin(2 * np.pi * 440 * t) * 8000).astype(np.int16)
    mono = np.concatenate([silence, tone, silence])
    data = np.stack([mono] * channels, axis=1) if channels > 1 else mono
    sf.write(str(path), data, sample_rate, subtype="PCM_16")
    return path


def test_iter_frames_pads_last_frame():
    frames = list(main_module.iter_frames(b"\x01\x00" * 250, 8000, 20))
    assert [len(f) for f in frames] == [320, 320]
    assert frames[-1].endswith(b"\x00" * 140)


def test_load_pcm16_downmixes_to_mono(tmp_path):
    path = _write_tone(tmp_path / "stereo.wav", channels=2)
    pcm, rate = main_module.load_pcm16(path)
    assert rate == 8000
    assert len(pcm) == int(8000 * 0.8) * 2


def test_parse_args_defaults():
    args = main_module.parse_args(["a.wav", "b.wav"])
    assert args.files == ["a.wav", "b.wav"]
    assert args.frame_ms == 20
    assert args.fast is False
    assert args.metrics_port is None


def test_cli_flags_override_file_values(tmp_path, monkeypatch):
    monkeypatch.setattr(main_module, "configure_logging", MagicMock())
    config_path = tmp_path / "asr.yaml"
    config_path.write_text("service:\n  api_url: http://file\n  model: file-model\n")
    args = main_module.parse_args(
        [
            "x.wav",
            "--config",
            str(config_path),
            "--api-key",
            "cli-key",
            "--model",
            "cli-model",
            "--encoding",
            "flac",
            "--log-level",
            "DEBUG",
        ]
    )

    config = main_module.configure_from_args(args)

    assert config.api_url == "http://file"
    assert config.api_key == "cli-key"
    assert config.model == "cli-model"
    assert config.encoding == "flac"
    assert config.log_level == "DEBUG"
    main_module.configure_logging.assert_called_once_with("DEBUG", None, None)


def test_run_exits_non_zero_without_credentials(monkeypatch):
    args = main_module.parse_args(["x.wav"])
    assert main_module.run(args, ServerConfig(api_url="http://stt")) == 2


def test_transcribe_file_end_to_end(tmp_path):
    """A tone between silences becomes one submitted utterance."""
    config = ServerConfig(
        api_url="http://stt.test",
        api_key="k",
        vad_voice_ms=40,
        vad_silence_ms=100,
        sentence_threshold_sec=0.0,
        tick_sec=0.005,
        encoding="wav",
        temp_dir=str(tmp_path / "cache"),
    )
    client = FakeTranscriptionClient([ok_text("a tone")])
    state = ProcessState(config, client=client)
    path = _write_tone(tmp_path / "tone.wav")
    try:
        texts = main_module.transcribe_file(
            state, path, 20, True, SessionOptions(language="en")
        )
    finally:
        state.shutdown()

    assert texts == ["a tone"]
    assert len(client.calls) == 1
    assert client.calls[0]["fields"] == {"language": "en"}
    assert state.active_workers == 0


def test_run_reports_unreadable_file(tmp_path, capsys):
    args = main_module.parse_args([str(tmp_path / "missing.wav"), "--fast"])
    config = ServerConfig(api_url="http://stt", api_key="k", temp_dir=str(tmp_path / "c"))
    assert main_module.run(args, config) == 1
    assert capsys.readouterr().out == ""


def test_main_exits_with_run_status(monkeypatch):
    monkeypatch.setattr(main_module, "configure_from_args", lambda args: ServerConfig())
    monkeypatch.setattr(main_module, "run", lambda args, config: 3)
    with pytest.raises(SystemExit) as excinfo:
        main_module.main(["x.wav"])
    assert excinfo.value.code == 3


def test_run_skips_file_on_non_fatal_error(tmp_path, monkeypatch, capsys):
    paths = [str(tmp_path / "a.wav"), str(tmp_path / "b.wav")]
    calls = []

    def fake_transcribe(state, path, frame_ms, fast, options):
        calls.append(path.name)
        if path.name == "a.wav":
            raise ASRError(ErrorCode.UNSUPPORTED_CODEC, "unsupported encoding: L8")
        return ["hello"]

    monkeypatch.setattr(main_module, "transcribe_file", fake_transcribe)
    args = main_module.parse_args(paths + ["--fast"])
    config = ServerConfig(api_url="http://stt", api_key="k", temp_dir=str(tmp_path / "c"))

    assert main_module.run(args, config) == 1
    assert calls == ["a.wav", "b.wav"]
    assert capsys.readouterr().out == "b.wav: hello\n"


def test_run_stops_on_fatal_error(tmp_path, monkeypatch):
    paths = [str(tmp_path / "a.wav"), str(tmp_path / "b.wav")]
    calls = []

    def fake_transcribe(state, path, frame_ms, fast, options):
        calls.append(path.name)
        raise ASRError(ErrorCode.CONFIG_VALUE_INVALID)

    monkeypatch.setattr(main_module, "transcribe_file", fake_transcribe)
    args = main_module.parse_args(paths + ["--fast"])
    config = ServerConfig(api_url="http://stt", api_key="k", temp_dir=str(tmp_path / "c"))

    assert main_module.run(args, config) == 2
    assert calls == ["a.wav"]
