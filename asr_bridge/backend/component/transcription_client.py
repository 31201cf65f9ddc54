"""HTTP submission of utterance files to an OpenAI-compatible STT endpoint."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, urlsplit, urlunsplit

import requests

from asr_bridge.errors import ErrorCode

_MIME_TYPES = {
    "wav": "audio/wav",
    "flac": "audio/flac",
    "ogg": "audio/ogg",
    "raw": "application/octet-stream",
}


@dataclass(frozen=True)
class TranscriptionClientConfig:
    api_url: str
    api_key: str
    user_agent: Optional[str] = None
    proxy: Optional[str] = None
    proxy_credentials: Optional[str] = None
    connect_timeout_sec: float = 10.0
    request_timeout_sec: float = 30.0


@dataclass
class SubmissionResult:
    ok: bool
    status_code: Optional[int] = None
    body: bytes = b""
    error: Optional[str] = None


class ResponseKind(str, Enum):
    TEXT = "text"
    SERVICE_ERROR = "service_error"
    MALFORMED = "malformed"
    UNPARSEABLE = "unparseable"
    EMPTY = "empty"


@dataclass
class ParsedResponse:
    kind: ResponseKind
    text: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return _RESPONSE_ERROR_CODES.get(self.kind)


_RESPONSE_ERROR_CODES = {
    ResponseKind.SERVICE_ERROR: ErrorCode.SERVICE_ERROR,
    ResponseKind.MALFORMED: ErrorCode.RESPONSE_MALFORMED,
    ResponseKind.UNPARSEABLE: ErrorCode.RESPONSE_UNPARSEABLE,
    ResponseKind.EMPTY: ErrorCode.RESPONSE_EMPTY,
}


def parse_response(body: bytes) -> ParsedResponse:
    """Classify a service response; only ``error`` and ``text`` are read."""
    if not body or not body.strip():
        return ParsedResponse(ResponseKind.EMPTY)
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return ParsedResponse(ResponseKind.UNPARSEABLE)
    if not isinstance(payload, dict):
        return ParsedResponse(ResponseKind.MALFORMED)
    if "error" in payload:
        return ParsedResponse(ResponseKind.SERVICE_ERROR, payload=payload)
    text = payload.get("text")
    if isinstance(text, str):
        return ParsedResponse(ResponseKind.TEXT, text=text, payload=payload)
    return ParsedResponse(ResponseKind.MALFORMED, payload=payload)


def _proxy_url(proxy: Optional[str], credentials: Optional[str]) -> Optional[str]:
    if not proxy:
        return None
    if not credentials:
        return proxy
    parts = urlsplit(proxy if "://" in proxy else f"http://{proxy}")
    user, _, password = credentials.partition(":")
    auth = quote(user, safe="")
    if password:
        auth = f"{auth}:{quote(password, safe='')}"
    return urlunsplit((parts.scheme, f"{auth}@{parts.netloc}", parts.path, "", ""))


class TranscriptionClient:
    """Builds authenticated multipart requests; one ``requests.Session`` per worker."""

    def __init__(self, config: TranscriptionClientConfig) -> None:
        self.config = config
        self._proxy = _proxy_url(config.proxy, config.proxy_credentials)

    def new_http_session(self) -> requests.Session:
        http = requests.Session()
        http.headers["Authorization"] = f"Bearer {self.config.api_key}"
        if self.config.user_agent:
            http.headers["User-Agent"] = self.config.user_agent
        if self._proxy:
            http.proxies.update({"http": self._proxy, "https": self._proxy})
        return http

    def transcribe(
        self,
        http: requests.Session,
        audio_path: Path,
        model: str,
        fields: Optional[Mapping[str, str]] = None,
    ) -> SubmissionResult:
        """POST the file; any non-200 answer counts as a failed submission."""
        data: Dict[str, str] = {"model": model}
        for key, value in (fields or {}).items():
            if value:
                data[key] = value
        suffix = audio_path.suffix.lstrip(".").lower()
        mime = _MIME_TYPES.get(suffix, "application/octet-stream")
        try:
            with audio_path.open("rb") as fh:
                response = http.post(
                    self.config.api_url,
                    data=data,
                    files={"file": (audio_path.name, fh, mime)},
                    timeout=(
                        self.config.connect_timeout_sec,
                        self.config.request_timeout_sec,
                    ),
                )
        except (requests.RequestException, OSError) as exc:
            return SubmissionResult(ok=False, error=str(exc))
        body = response.content or b""
        if response.status_code != 200:
            return SubmissionResult(
                ok=False,
                status_code=response.status_code,
                body=body,
                error=f"http status {response.status_code}",
            )
        return SubmissionResult(ok=True, status_code=response.status_code, body=body)
