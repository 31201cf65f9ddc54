import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from asr_bridge.config.default.server import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_ENCODING,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_HTTP_ERRORS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_METRICS_PORT,
    DEFAULT_MODEL_NAME,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_RECOVERY_FRAMES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SENTENCE_MAX_SEC,
    DEFAULT_SENTENCE_THRESHOLD_SEC,
    DEFAULT_SILERO_THRESHOLD,
    DEFAULT_STORE_FRAMES,
    DEFAULT_TEMP_DIR,
    DEFAULT_TICK_SEC,
    DEFAULT_TRANSCRIPT_LOG_FILE,
    DEFAULT_VAD_BACKEND,
    DEFAULT_VAD_DEBUG,
    DEFAULT_VAD_SILENCE_MS,
    DEFAULT_VAD_THRESHOLD,
    DEFAULT_VAD_VOICE_MS,
    SERVER_SECTION_MAP,
    SUPPORTED_ENCODINGS,
    SUPPORTED_VAD_BACKENDS,
)
from asr_bridge.errors import ASRError, ErrorCode

ENV_API_URL = "ASR_API_URL"
ENV_API_KEY = "ASR_API_KEY"


@dataclass
class ServerConfig:
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL_NAME
    user_agent: Optional[str] = None
    proxy: Optional[str] = None
    proxy_credentials: Optional[str] = None
    connect_timeout_sec: float = DEFAULT_CONNECT_TIMEOUT
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT
    log_http_errors: bool = DEFAULT_LOG_HTTP_ERRORS
    vad_backend: str = DEFAULT_VAD_BACKEND
    vad_silence_ms: int = DEFAULT_VAD_SILENCE_MS
    vad_voice_ms: int = DEFAULT_VAD_VOICE_MS
    vad_threshold: float = DEFAULT_VAD_THRESHOLD
    silero_threshold: float = DEFAULT_SILERO_THRESHOLD
    vad_debug: bool = DEFAULT_VAD_DEBUG
    sentence_max_sec: float = DEFAULT_SENTENCE_MAX_SEC
    sentence_threshold_sec: float = DEFAULT_SENTENCE_THRESHOLD_SEC
    queue_size: int = DEFAULT_QUEUE_SIZE
    store_frames: int = DEFAULT_STORE_FRAMES
    recovery_frames: int = DEFAULT_RECOVERY_FRAMES
    tick_sec: float = DEFAULT_TICK_SEC
    encoding: str = DEFAULT_ENCODING
    temp_dir: str = DEFAULT_TEMP_DIR
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = DEFAULT_LOG_FILE
    transcript_log_file: Optional[str] = DEFAULT_TRANSCRIPT_LOG_FILE
    metrics_port: int = DEFAULT_METRICS_PORT


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "asr.yaml"

SECTION_MAP: Dict[str, Dict[str, str]] = dict(SERVER_SECTION_MAP)


def load_config(path: Optional[Path] = None) -> ServerConfig:
    """Load configuration from YAML, falling back to defaults and env credentials."""
    cfg = ServerConfig()
    data = _read_yaml(path or DEFAULT_CONFIG_PATH)
    if data:
        _apply_sections(cfg, data)
    if not cfg.api_url:
        cfg.api_url = os.environ.get(ENV_API_URL) or None
    if not cfg.api_key:
        cfg.api_key = os.environ.get(ENV_API_KEY) or None
    return cfg


def _read_yaml(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if not path or not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, dict):
        return data
    return None


def _apply_sections(cfg: ServerConfig, raw: Dict[str, Any]) -> None:
    field_names = {f.name for f in fields(ServerConfig)}
    for section, mapping in SECTION_MAP.items():
        data = raw.get(section)
        if not isinstance(data, dict):
            continue
        for key, attr in mapping.items():
            if key in data and data[key] is not None:
                setattr(cfg, attr, data[key])

    for key, value in raw.items():
        if key in SECTION_MAP:
            continue
        if key in field_names and value is not None:
            setattr(cfg, key, value)


def validate_config(cfg: ServerConfig) -> ServerConfig:
    """Reject configurations no session could be served with."""
    if not cfg.api_url:
        raise ASRError(ErrorCode.API_URL_MISSING)
    if not cfg.api_key:
        raise ASRError(ErrorCode.API_KEY_MISSING)
    encoding = str(cfg.encoding).lower()
    if encoding not in SUPPORTED_ENCODINGS:
        raise ASRError(
            ErrorCode.CONFIG_VALUE_INVALID, f"unsupported temp file encoding: {cfg.encoding}"
        )
    cfg.encoding = encoding
    backend = str(cfg.vad_backend).lower()
    if backend not in SUPPORTED_VAD_BACKENDS:
        raise ASRError(
            ErrorCode.CONFIG_VALUE_INVALID, f"unknown vad backend: {cfg.vad_backend}"
        )
    cfg.vad_backend = backend
    if float(cfg.sentence_max_sec) <= 0:
        cfg.sentence_max_sec = DEFAULT_SENTENCE_MAX_SEC
    if float(cfg.sentence_threshold_sec) < 0:
        raise ASRError(
            ErrorCode.CONFIG_VALUE_INVALID, "sentence threshold must be non-negative"
        )
    if int(cfg.queue_size) <= 0:
        raise ASRError(ErrorCode.CONFIG_VALUE_INVALID, "queue_size must be positive")
    if int(cfg.store_frames) <= 0 or int(cfg.recovery_frames) <= 0:
        raise ASRError(
            ErrorCode.CONFIG_VALUE_INVALID, "pre-roll frame counts must be positive"
        )
    if int(cfg.recovery_frames) > int(cfg.store_frames):
        raise ASRError(
            ErrorCode.CONFIG_VALUE_INVALID,
            "recovery_frames cannot exceed store_frames",
        )
    if float(cfg.tick_sec) <= 0:
        raise ASRError(ErrorCode.CONFIG_VALUE_INVALID, "tick_sec must be positive")
    return cfg


__all__ = [
    "ServerConfig",
    "DEFAULT_CONFIG_PATH",
    "ENV_API_KEY",
    "ENV_API_URL",
    "load_config",
    "validate_config",
]
