"""Centralized error codes and messages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced to callers and logs."""

    # configuration (ERR100x)
    API_URL_MISSING = "ERR1001"
    API_KEY_MISSING = "ERR1002"
    CONFIG_VALUE_INVALID = "ERR1003"

    # session setup (ERR200x)
    UNSUPPORTED_CODEC = "ERR2001"
    VAD_INIT_FAILED = "ERR2002"
    PROCESS_SHUTTING_DOWN = "ERR2003"

    # per-utterance (ERR300x)
    SUBMISSION_FAILED = "ERR3001"
    SERVICE_ERROR = "ERR3002"
    RESPONSE_MALFORMED = "ERR3003"
    RESPONSE_UNPARSEABLE = "ERR3004"
    RESPONSE_EMPTY = "ERR3005"
    AUDIO_ENCODE_FAILED = "ERR3006"


@dataclass(frozen=True)
class ErrorSpec:
    """Maps an error code to its default message and fatality."""

    code: ErrorCode
    message: str
    fatal: bool = False


ERROR_SPECS: Final[dict[ErrorCode, ErrorSpec]] = {
    ErrorCode.API_URL_MISSING: ErrorSpec(
        ErrorCode.API_URL_MISSING,
        "Missing required parameter: api_url",
        fatal=True,
    ),
    ErrorCode.API_KEY_MISSING: ErrorSpec(
        ErrorCode.API_KEY_MISSING,
        "Missing required parameter: api_key",
        fatal=True,
    ),
    ErrorCode.CONFIG_VALUE_INVALID: ErrorSpec(
        ErrorCode.CONFIG_VALUE_INVALID,
        "invalid configuration value",
        fatal=True,
    ),
    ErrorCode.UNSUPPORTED_CODEC: ErrorSpec(
        ErrorCode.UNSUPPORTED_CODEC,
        "unsupported encoding",
    ),
    ErrorCode.VAD_INIT_FAILED: ErrorSpec(
        ErrorCode.VAD_INIT_FAILED,
        "unable to initialize VAD",
    ),
    ErrorCode.PROCESS_SHUTTING_DOWN: ErrorSpec(
        ErrorCode.PROCESS_SHUTTING_DOWN,
        "process is shutting down",
    ),
    ErrorCode.SUBMISSION_FAILED: ErrorSpec(
        ErrorCode.SUBMISSION_FAILED,
        "unable to perform request",
    ),
    ErrorCode.SERVICE_ERROR: ErrorSpec(
        ErrorCode.SERVICE_ERROR,
        "service returned an error",
    ),
    ErrorCode.RESPONSE_MALFORMED: ErrorSpec(
        ErrorCode.RESPONSE_MALFORMED,
        "malformed response",
    ),
    ErrorCode.RESPONSE_UNPARSEABLE: ErrorSpec(
        ErrorCode.RESPONSE_UNPARSEABLE,
        "unable to parse json",
    ),
    ErrorCode.RESPONSE_EMPTY: ErrorSpec(
        ErrorCode.RESPONSE_EMPTY,
        "service response is empty",
    ),
    ErrorCode.AUDIO_ENCODE_FAILED: ErrorSpec(
        ErrorCode.AUDIO_ENCODE_FAILED,
        "unable to write utterance audio",
    ),
}


def format_error(code: ErrorCode, detail: Optional[str] = None) -> str:
    """Format an error code and optional detail into a message."""
    spec = ERROR_SPECS[code]
    message = detail if detail else spec.message
    return f"{spec.code.value} {message}"


class ASRError(RuntimeError):
    """Raised for application-defined errors; ``fatal`` ones stop the process."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None) -> None:
        """Create an ASRError with formatted message and fatality."""
        self.code = code
        self.fatal = ERROR_SPECS[code].fatal
        self.detail = detail or ERROR_SPECS[code].message
        super().__init__(format_error(code, detail))


__all__ = [
    "ErrorCode",
    "ErrorSpec",
    "ERROR_SPECS",
    "ASRError",
    "format_error",
]
