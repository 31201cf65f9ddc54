import contextvars
import logging
import logging.handlers
import queue
from pathlib import Path
from typing import List, Optional

# Custom TRACE level below DEBUG.
TRACE_LEVEL_NUM = 5
logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")


def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
    """Logger helper for TRACE level."""
    if self.isEnabledFor(TRACE_LEVEL_NUM):
        self._log(TRACE_LEVEL_NUM, message, args, **kwargs)


logging.Logger.trace = trace  # type: ignore

_SESSION_ID: contextvars.ContextVar[str] = contextvars.ContextVar(
    "asr_session_id", default="-"
)


def set_session_id(session_id: Optional[str]) -> None:
    """Bind a session id to log records emitted from the current context."""
    _SESSION_ID.set(session_id or "-")


def clear_session_id() -> None:
    _SESSION_ID.set("-")


class SessionIdFilter(logging.Filter):
    """Stamps each record with the session id bound to the emitting context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = _SESSION_ID.get()
        return True


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: session_id=%(session_id)s %(message)s"
TRANSCRIPT_FORMAT = "%(asctime)s session_id=%(session_id)s %(message)s"

LOG_QUEUE: "queue.Queue[logging.LogRecord]" = queue.Queue()
QUEUE_LISTENER: Optional[logging.handlers.QueueListener] = None


def configure_logging(
    level: str,
    log_file: Optional[str],
    transcript_log_file: Optional[str] = None,
) -> None:
    """Configure root logging with queue-based handlers."""
    global QUEUE_LISTENER
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if level.upper() == "TRACE":
        numeric_level = TRACE_LEVEL_NUM

    formatter = logging.Formatter(LOG_FORMAT)

    handlers: List[logging.Handler] = []
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # The filter runs on the emitting thread so the context var is still bound.
    queue_handler = logging.handlers.QueueHandler(LOG_QUEUE)
    queue_handler.addFilter(SessionIdFilter())
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(queue_handler)

    if QUEUE_LISTENER:
        QUEUE_LISTENER.stop()
    QUEUE_LISTENER = logging.handlers.QueueListener(
        LOG_QUEUE, *handlers, respect_handler_level=True
    )
    QUEUE_LISTENER.start()

    _configure_transcript_logger(transcript_log_file)


def _configure_transcript_logger(transcript_log_file: Optional[str]) -> None:
    for handler in TRANSCRIPT_LOGGER.handlers:
        handler.close()
    TRANSCRIPT_LOGGER.handlers.clear()
    if not transcript_log_file:
        TRANSCRIPT_LOGGER.addHandler(logging.NullHandler())
        return
    path = Path(transcript_log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter(TRANSCRIPT_FORMAT))
    handler.addFilter(SessionIdFilter())
    TRANSCRIPT_LOGGER.addHandler(handler)


LOGGER = logging.getLogger("asr_bridge")

# Recognized text may carry PII; it only reaches disk through its own sink.
TRANSCRIPT_LOGGER = logging.getLogger("asr_bridge.transcripts")
TRANSCRIPT_LOGGER.propagate = False
TRANSCRIPT_LOGGER.setLevel(logging.INFO)

__all__ = [
    "configure_logging",
    "clear_session_id",
    "set_session_id",
    "LOGGER",
    "TRANSCRIPT_LOGGER",
    "TRACE_LEVEL_NUM",
]
