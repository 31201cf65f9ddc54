from __future__ import annotations

import time
import uuid
import wave
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf

from asr_bridge.utils.logger import LOGGER

_SOUNDFILE_FORMATS = {"flac": "FLAC", "ogg": "OGG"}
_RAW_ENCODINGS = ("raw", "pcm")


def _sanitize_session_id(value: str) -> str:
    sanitized = []
    for ch in value:
        if ch.isalnum() or ch in ("-", "_"):
            sanitized.append(ch)
        else:
            sanitized.append("_")
        if len(sanitized) >= 80:
            break
    result = "".join(sanitized).strip("_")
    return result or "session"


@dataclass
class AudioStorageConfig:
    directory: Path = field(default_factory=lambda: Path("asr-bridge-cache"))
    encoding: str = "wav"


class UtteranceFileWriter:
    """Writes one assembled utterance to a uniquely named file in the cache dir."""

    def __init__(self, config: AudioStorageConfig) -> None:
        self._config = config
        self._directory = Path(config.directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self.encoding = config.encoding.lower()

    @property
    def directory(self) -> Path:
        return self._directory

    def _new_path(self, session_id: Optional[str]) -> Path:
        timestamp = time.strftime("%Y%m%dT%H%M%S")
        safe_session = _sanitize_session_id(session_id or "session")
        suffix = "raw" if self.encoding in _RAW_ENCODINGS else self.encoding
        return self._directory / f"{timestamp}_{safe_session}_{uuid.uuid4().hex}.{suffix}"

    def write(
        self,
        pcm16: bytes | memoryview,
        channels: int,
        sample_rate: int,
        session_id: Optional[str] = None,
    ) -> Path:
        """Encode PCM16 audio and return the file path; a partial file is removed on failure."""
        path = self._new_path(session_id)
        channels = max(1, int(channels))
        sample_rate = max(1, int(sample_rate))
        try:
            if self.encoding == "wav":
                with wave.open(str(path), "wb") as wav:
                    wav.setnchannels(channels)
                    wav.setsampwidth(2)
                    wav.setframerate(sample_rate)
                    wav.writeframes(pcm16)
            elif self.encoding in _RAW_ENCODINGS:
                with path.open("wb") as fh:
                    fh.write(pcm16)
            elif self.encoding in _SOUNDFILE_FORMATS:
                samples = np.frombuffer(pcm16, dtype=np.int16)
                if channels > 1:
                    samples = samples[: len(samples) - (len(samples) % channels)]
                    samples = samples.reshape(-1, channels)
                sf.write(
                    str(path),
                    samples,
                    sample_rate,
                    format=_SOUNDFILE_FORMATS[self.encoding],
                    subtype="PCM_16" if self.encoding == "flac" else "VORBIS",
                )
            else:
                raise ValueError(f"unsupported encoding: {self.encoding}")
        except Exception:
            discard(path)
            raise
        LOGGER.debug(
            "Utterance written path=%s bytes=%d encoding=%s",
            path,
            len(pcm16),
            self.encoding,
        )
        return path


def discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        LOGGER.debug("Utterance file already removed: %s", path)
    except OSError as exc:
        LOGGER.warning("Unable to remove utterance file %s: %s", path, exc)
