"""Application layer: sessions and process-wide state."""

from .events import SessionHooks, VadEvent
from .process_state import ProcessState
from .session import AsrSession, FeedStatus, SessionOptions

__all__ = [
    "AsrSession",
    "FeedStatus",
    "ProcessState",
    "SessionHooks",
    "SessionOptions",
    "VadEvent",
]
