"""Events a session reports back to the host."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

VAD_EVENT_SUBCLASS = "asr_bridge::vad"
VAD_EVENT_START = "start"


@dataclass(frozen=True)
class VadEvent:
    """Fired once per speech onset; carries the call's unique id."""

    type: str
    unique_id: str
    subclass: str = VAD_EVENT_SUBCLASS


def _noop_vad_event(_: VadEvent) -> None:
    return None


@dataclass(frozen=True)
class SessionHooks:
    """Host callbacks; delivery is fire-and-forget."""

    on_vad_event: Callable[[VadEvent], None] = _noop_vad_event


__all__ = ["VAD_EVENT_START", "VAD_EVENT_SUBCLASS", "SessionHooks", "VadEvent"]
