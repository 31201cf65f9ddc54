import os
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

# Ensure project root is in sys.path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from asr_bridge.backend.component.transcription_client import SubmissionResult
from asr_bridge.backend.component.vad_gate import VADState
from asr_bridge.config import ServerConfig


class ScriptedDetector:
    """Detector that replays a fixed list of states, then reports NONE."""

    def __init__(self, states: List[VADState]) -> None:
        self._states = list(states)
        self.frames: List[bytes] = []
        self.resets = 0
        self.closed = False

    def process(self, frame: bytes) -> VADState:
        self.frames.append(frame)
        if self._states:
            return self._states.pop(0)
        return VADState.NONE

    def reset(self) -> None:
        self.resets += 1

    def close(self) -> None:
        self.closed = True


class FakeTranscriptionClient:
    """Records every submission and answers from a scripted list."""

    def __init__(self, responses: Optional[List[SubmissionResult]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[Dict[str, object]] = []
        self.lock = threading.Lock()
        self.http_sessions: List[MagicMock] = []

    def new_http_session(self) -> MagicMock:
        http = MagicMock()
        self.http_sessions.append(http)
        return http

    def transcribe(self, http, audio_path: Path, model: str, fields=None) -> SubmissionResult:
        with self.lock:
            self.calls.append(
                {
                    "path": audio_path,
                    "model": model,
                    "fields": dict(fields or {}),
                    "audio": audio_path.read_bytes(),
                }
            )
            if self.responses:
                return self.responses.pop(0)
        return ok_text("")


def ok_text(text: str) -> SubmissionResult:
    """Helper for a successful response carrying ``text``."""
    body = ('{"text": "%s"}' % text).encode("utf-8")
    return SubmissionResult(ok=True, status_code=200, body=body)


def frame(marker: int, length: int = 160) -> bytes:
    """Helper for a PCM frame filled with a single marker byte."""
    return bytes([marker]) * length


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Helper for polling a condition set by a worker thread."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def server_config(tmp_path: Path) -> ServerConfig:
    return ServerConfig(
        api_url="http://stt.test/v1/audio/transcriptions",
        api_key="test-key",
        sentence_threshold_sec=0.0,
        queue_size=16,
        store_frames=8,
        recovery_frames=4,
        tick_sec=0.005,
        encoding="raw",
        temp_dir=str(tmp_path / "cache"),
    )


@pytest.fixture
def fake_client() -> FakeTranscriptionClient:
    return FakeTranscriptionClient()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
