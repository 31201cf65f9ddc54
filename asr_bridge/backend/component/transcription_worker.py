"""Per-session background worker: assemble utterances and submit them."""

from __future__ import annotations

import threading
import time
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

import requests

from asr_bridge.backend.component.audio_storage import discard
from asr_bridge.backend.component.sentence_assembler import SentenceAssembler
from asr_bridge.backend.component.transcription_client import (
    ResponseKind,
    SubmissionResult,
    parse_response,
)
from asr_bridge.errors import ErrorCode, format_error
from asr_bridge.utils.logger import (
    LOGGER,
    TRANSCRIPT_LOGGER,
    clear_session_id,
    set_session_id,
)

if TYPE_CHECKING:
    from asr_bridge.backend.application.process_state import ProcessState
    from asr_bridge.backend.application.session import AsrSession

_LOG_BODY_LIMIT = 512


class WorkerState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    EXITED = "exited"


def _body_preview(body: bytes) -> str:
    return body[:_LOG_BODY_LIMIT].decode("utf-8", errors="replace")


class TranscriptionWorker:
    """Drains a session's audio queue on a fixed tick and flushes utterances.

    The network round trip happens on this thread only. Stop requests are
    observed between ticks, never in the middle of a flush.
    """

    def __init__(
        self,
        session: AsrSession,
        process: ProcessState,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._process = process
        self._assembler = SentenceAssembler(
            process.config.sentence_threshold_sec, clock=clock
        )
        self._tick_sec = float(process.config.tick_sec)
        self._wakeup = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._http: Optional[requests.Session] = None
        self.state = WorkerState.STARTING

    @property
    def assembler(self) -> SentenceAssembler:
        return self._assembler

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run,
            name=f"asr-worker-{self._session.session_id}",
            daemon=True,
        )
        self._thread.start()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wake(self) -> None:
        self._wakeup.set()

    def join(self, poll_sec: float) -> None:
        """Block until the worker thread has exited; no timeout."""
        if self._thread is None:
            return
        if self._thread is threading.current_thread():
            raise RuntimeError("worker cannot join itself")
        waiting_logged = False
        while self._thread.is_alive():
            self.wake()
            self._thread.join(timeout=poll_sec)
            if self._thread.is_alive() and not waiting_logged:
                LOGGER.debug(
                    "Waiting for worker exit session_id=%s state=%s",
                    self._session.session_id,
                    self.state.value,
                )
                waiting_logged = True

    def should_stop(self) -> bool:
        return self._process.shutting_down or self._session.destroyed

    def _run(self) -> None:
        set_session_id(self._session.session_id)
        try:
            self._http = self._process.client.new_http_session()
            self.state = WorkerState.RUNNING
            LOGGER.debug("Transcription worker started")
            while not self.should_stop():
                try:
                    self.tick()
                except Exception:
                    # A failed tick costs only the utterance being assembled.
                    LOGGER.exception("Transcription tick failed; utterance dropped")
                    self._assembler.reset()
                if self._wakeup.wait(self._tick_sec):
                    self._wakeup.clear()
            self.state = WorkerState.DRAINING
        except Exception:
            LOGGER.exception("Transcription worker failed")
        finally:
            self._release()
            self.state = WorkerState.EXITED
            self._process.unregister_worker()
            LOGGER.debug("Transcription worker exited")
            clear_session_id()

    def _release(self) -> None:
        if self._http is not None:
            self._http.close()
            self._http = None
        self._assembler.release()

    def tick(self) -> bool:
        """Run one polling iteration; returns True when a flush was attempted."""
        assembler = self._assembler
        if not assembler.ready:
            capacity = self._session.chunk_buffer_capacity
            if assembler.latch_capacity(capacity):
                LOGGER.debug("Utterance buffer sized capacity=%d bytes", capacity)
            return False

        drained = assembler.drain(self._session.audio_queue, self.should_stop)
        assembler.update_deadline(drained.overflow, self._session.vad_state)
        if drained.overflow:
            LOGGER.debug("Utterance buffer full (%d bytes); flushing", len(assembler))
        if not assembler.should_flush():
            return False
        self._flush()
        return True

    def _flush(self) -> None:
        assembler = self._assembler
        session = self._session
        metrics = self._process.metrics
        path: Optional[Path] = None
        try:
            with assembler.peek() as pcm:
                size = len(pcm)
                if size == 0:
                    return
                try:
                    path = self._process.writer.write(
                        pcm, session.channels, session.sample_rate, session.session_id
                    )
                except Exception as exc:
                    metrics.record_error(ErrorCode.AUDIO_ENCODE_FAILED)
                    LOGGER.error(format_error(ErrorCode.AUDIO_ENCODE_FAILED, str(exc)))
                    return
            metrics.record_flush(size)
            LOGGER.info(
                "Submitting utterance bytes=%d chunks=%d path=%s",
                size,
                assembler.chunks_absorbed,
                path.name,
            )
            self._handle_result(self._submit(path))
        finally:
            assembler.reset()
            if path is not None:
                discard(path)

    def _submit(self, path: Path) -> SubmissionResult:
        if self._http is None:
            self._http = self._process.client.new_http_session()
        model, fields = self._session.submission_options(self._process.config.model)
        started = time.perf_counter()
        result = self._process.client.transcribe(self._http, path, model, fields)
        elapsed = time.perf_counter() - started
        self._process.metrics.record_submission(elapsed)
        LOGGER.debug(
            "Submission finished ok=%s status=%s elapsed=%.2fs model=%s",
            result.ok,
            result.status_code,
            elapsed,
            model,
        )
        return result

    def _handle_result(self, result: SubmissionResult) -> None:
        metrics = self._process.metrics
        if not result.ok:
            metrics.record_error(ErrorCode.SUBMISSION_FAILED)
            if self._process.config.log_http_errors and result.body:
                detail = f"service response: ({_body_preview(result.body)})"
            else:
                detail = f"unable to perform request (status={result.status_code}, error={result.error})"
            LOGGER.error(format_error(ErrorCode.SUBMISSION_FAILED, detail))
            return

        parsed = parse_response(result.body)
        if parsed.kind is ResponseKind.TEXT:
            text = parsed.text or ""
            if self._session.publish_result(text):
                metrics.record_transcript()
                TRANSCRIPT_LOGGER.info("%s", text)
            else:
                metrics.record_chunk_dropped()
                LOGGER.warning("Text queue full; transcript dropped")
            return

        code = parsed.error_code or ErrorCode.RESPONSE_MALFORMED
        metrics.record_error(code)
        if parsed.kind is ResponseKind.EMPTY:
            LOGGER.error(format_error(code))
        else:
            LOGGER.error(format_error(code, f"{_describe(parsed.kind)}: ({_body_preview(result.body)})"))


def _describe(kind: ResponseKind) -> str:
    if kind is ResponseKind.SERVICE_ERROR:
        return "service response"
    if kind is ResponseKind.UNPARSEABLE:
        return "unable to parse json"
    return "malformed response"
