"""Default values for process/session configuration."""

import os
import tempfile
from typing import Dict

DEFAULT_MODEL_NAME = "whisper-1"
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_LOG_HTTP_ERRORS = False

DEFAULT_VAD_BACKEND = "energy"
DEFAULT_VAD_SILENCE_MS = 500
DEFAULT_VAD_VOICE_MS = 200
DEFAULT_VAD_THRESHOLD = 100.0
DEFAULT_SILERO_THRESHOLD = 0.5
DEFAULT_VAD_DEBUG = False

DEFAULT_SENTENCE_MAX_SEC = 35
DEFAULT_SENTENCE_THRESHOLD_SEC = 1.0

DEFAULT_QUEUE_SIZE = 128
DEFAULT_STORE_FRAMES = 64
DEFAULT_RECOVERY_FRAMES = 20
DEFAULT_TICK_SEC = 0.01
DEFAULT_SESSION_CLOSE_POLL_SEC = 0.01
DEFAULT_SHUTDOWN_POLL_SEC = 0.1

DEFAULT_ENCODING = "wav"
DEFAULT_TEMP_DIR = os.path.join(tempfile.gettempdir(), "asr-bridge-cache")

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = None
DEFAULT_TRANSCRIPT_LOG_FILE = None
DEFAULT_METRICS_PORT = 0

SUPPORTED_CODECS = ("L16",)
SUPPORTED_ENCODINGS = ("wav", "raw", "pcm", "flac", "ogg")
SUPPORTED_VAD_BACKENDS = ("energy", "silero")

SERVER_SECTION_MAP: Dict[str, Dict[str, str]] = {
    "service": {
        "api_url": "api_url",
        "api_key": "api_key",
        "model": "model",
        "user_agent": "user_agent",
        "proxy": "proxy",
        "proxy_credentials": "proxy_credentials",
        "connect_timeout_sec": "connect_timeout_sec",
        "request_timeout_sec": "request_timeout_sec",
        "log_http_errors": "log_http_errors",
    },
    "vad": {
        "backend": "vad_backend",
        "silence_ms": "vad_silence_ms",
        "voice_ms": "vad_voice_ms",
        "threshold": "vad_threshold",
        "silero_threshold": "silero_threshold",
        "debug": "vad_debug",
    },
    "sentence": {
        "max_sec": "sentence_max_sec",
        "threshold_sec": "sentence_threshold_sec",
    },
    "buffer": {
        "queue_size": "queue_size",
        "store_frames": "store_frames",
        "recovery_frames": "recovery_frames",
        "tick_sec": "tick_sec",
    },
    "storage": {
        "encoding": "encoding",
        "temp_dir": "temp_dir",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
        "transcript_file": "transcript_log_file",
    },
    "server": {
        "metrics_port": "metrics_port",
    },
}

__all__ = [
    "DEFAULT_MODEL_NAME",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_LOG_HTTP_ERRORS",
    "DEFAULT_VAD_BACKEND",
    "DEFAULT_VAD_SILENCE_MS",
    "DEFAULT_VAD_VOICE_MS",
    "DEFAULT_VAD_THRESHOLD",
    "DEFAULT_SILERO_THRESHOLD",
    "DEFAULT_VAD_DEBUG",
    "DEFAULT_SENTENCE_MAX_SEC",
    "DEFAULT_SENTENCE_THRESHOLD_SEC",
    "DEFAULT_QUEUE_SIZE",
    "DEFAULT_STORE_FRAMES",
    "DEFAULT_RECOVERY_FRAMES",
    "DEFAULT_TICK_SEC",
    "DEFAULT_SESSION_CLOSE_POLL_SEC",
    "DEFAULT_SHUTDOWN_POLL_SEC",
    "DEFAULT_ENCODING",
    "DEFAULT_TEMP_DIR",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_FILE",
    "DEFAULT_TRANSCRIPT_LOG_FILE",
    "DEFAULT_METRICS_PORT",
    "SUPPORTED_CODECS",
    "SUPPORTED_ENCODINGS",
    "SUPPORTED_VAD_BACKENDS",
    "SERVER_SECTION_MAP",
]
