"""Process-wide state shared by every session."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, Optional

from asr_bridge.backend.application.events import SessionHooks
from asr_bridge.backend.application.session import AsrSession, SessionOptions
from asr_bridge.backend.component.audio_storage import (
    AudioStorageConfig,
    UtteranceFileWriter,
)
from asr_bridge.backend.component.transcription_client import (
    TranscriptionClient,
    TranscriptionClientConfig,
)
from asr_bridge.backend.component.vad_gate import VADDetector, create_detector
from asr_bridge.backend.runtime.metrics import Metrics
from asr_bridge.config import ServerConfig, validate_config
from asr_bridge.config.default.server import (
    DEFAULT_SHUTDOWN_POLL_SEC,
    SUPPORTED_CODECS,
)
from asr_bridge.errors import ASRError, ErrorCode
from asr_bridge.utils.logger import LOGGER


def _client_from_config(config: ServerConfig) -> TranscriptionClient:
    return TranscriptionClient(
        TranscriptionClientConfig(
            api_url=str(config.api_url),
            api_key=str(config.api_key),
            user_agent=config.user_agent,
            proxy=config.proxy,
            proxy_credentials=config.proxy_credentials,
            connect_timeout_sec=float(config.connect_timeout_sec),
            request_timeout_sec=float(config.request_timeout_sec),
        )
    )


class ProcessState:
    """Owns the STT client, temp-file writer, metrics and worker accounting.

    Workers register before their thread starts and unregister as the last
    thing they do; ``shutdown`` waits on the condition until none remain.
    """

    def __init__(
        self,
        config: ServerConfig,
        client: Optional[TranscriptionClient] = None,
        writer: Optional[UtteranceFileWriter] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.config = validate_config(config)
        self.metrics = metrics or Metrics()
        self.client = client or _client_from_config(config)
        self.writer = writer or UtteranceFileWriter(
            AudioStorageConfig(directory=Path(config.temp_dir), encoding=config.encoding)
        )
        self._shutdown = threading.Event()
        self._workers_cond = threading.Condition()
        self._active_workers = 0
        LOGGER.info(
            "Process state ready url=%s model=%s vad=%s encoding=%s",
            config.api_url,
            config.model,
            config.vad_backend,
            config.encoding,
        )

    @property
    def shutting_down(self) -> bool:
        return self._shutdown.is_set()

    @property
    def active_workers(self) -> int:
        with self._workers_cond:
            return self._active_workers

    def register_worker(self) -> None:
        with self._workers_cond:
            self._active_workers += 1

    def unregister_worker(self) -> None:
        with self._workers_cond:
            if self._active_workers > 0:
                self._active_workers -= 1
            self._workers_cond.notify_all()

    def open_session(
        self,
        codec: str,
        sample_rate: int,
        options: Optional[SessionOptions] = None,
        hooks: Optional[SessionHooks] = None,
        channels: int = 1,
        detector: Optional[VADDetector] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> AsrSession:
        """Validate the codec, build the detector and start a session worker."""
        if (codec or "").upper() not in SUPPORTED_CODECS:
            raise ASRError(ErrorCode.UNSUPPORTED_CODEC, f"unsupported encoding: {codec}")
        if self.shutting_down:
            raise ASRError(ErrorCode.PROCESS_SHUTTING_DOWN)
        if detector is None:
            detector = self._build_detector(sample_rate, channels)
        session = AsrSession(
            self,
            detector,
            sample_rate,
            channels=channels,
            options=options,
            hooks=hooks,
            clock=clock,
        )
        session.start()
        return session

    def _build_detector(self, sample_rate: int, channels: int) -> VADDetector:
        config = self.config
        try:
            return create_detector(
                config.vad_backend,
                sample_rate,
                channels,
                threshold=float(config.vad_threshold),
                voice_ms=int(config.vad_voice_ms),
                silence_ms=int(config.vad_silence_ms),
                silero_threshold=float(config.silero_threshold),
                debug=bool(config.vad_debug),
            )
        except Exception as exc:
            LOGGER.exception("VAD initialization failed backend=%s", config.vad_backend)
            raise ASRError(ErrorCode.VAD_INIT_FAILED, str(exc)) from exc

    def shutdown(self, poll_interval: float = DEFAULT_SHUTDOWN_POLL_SEC) -> None:
        """Stop accepting sessions and wait for every worker to exit."""
        if not self._shutdown.is_set():
            LOGGER.info("Shutting down")
        self._shutdown.set()
        with self._workers_cond:
            while self._active_workers > 0:
                LOGGER.debug("Waiting for termination (%d) threads...", self._active_workers)
                self._workers_cond.wait(timeout=poll_interval)
        LOGGER.debug("All workers exited")
