import argparse
import sys
import time
from pathlib import Path
from typing import Iterator, List, Tuple

import numpy as np
import soundfile as sf

from asr_bridge.backend.application import ProcessState, SessionOptions
from asr_bridge.backend.application.session import AsrSession, FeedStatus
from asr_bridge.backend.endpoints.http import start_observability_server
from asr_bridge.config import DEFAULT_CONFIG_PATH, ServerConfig, load_config
from asr_bridge.config.default.server import SUPPORTED_ENCODINGS
from asr_bridge.errors import ASRError
from asr_bridge.utils.audio import BYTES_PER_SAMPLE
from asr_bridge.utils.logger import LOGGER, configure_logging

DEFAULT_FRAME_MS = 20
_RESULT_POLL_SEC = 0.05


def load_pcm16(path: Path) -> Tuple[bytes, int]:
    """Read an audio file as mono PCM16 bytes plus its sample rate."""
    data, sample_rate = sf.read(str(path), dtype="int16", always_2d=True)
    if data.shape[1] > 1:
        mono = data.astype(np.int32).mean(axis=1).astype(np.int16)
    else:
        mono = data[:, 0]
    return mono.tobytes(), int(sample_rate)


def iter_frames(pcm: bytes, sample_rate: int, frame_ms: int) -> Iterator[bytes]:
    """Split PCM16 into fixed-size frames; the last one is padded with silence."""
    frame_bytes = max(1, int(sample_rate * frame_ms / 1000)) * BYTES_PER_SAMPLE
    for offset in range(0, len(pcm), frame_bytes):
        frame = pcm[offset : offset + frame_bytes]
        if len(frame) < frame_bytes:
            frame = frame + b"\x00" * (frame_bytes - len(frame))
        yield frame


def _silence_frames(sample_rate: int, frame_ms: int, duration_ms: int) -> Iterator[bytes]:
    frame_bytes = max(1, int(sample_rate * frame_ms / 1000)) * BYTES_PER_SAMPLE
    for _ in range(max(1, duration_ms // max(1, frame_ms))):
        yield b"\x00" * frame_bytes


def _collect(session: AsrSession, results: List[str]) -> None:
    while session.check_results():
        text = session.get_result()
        if text is None:
            break
        results.append(text)


def transcribe_file(
    state: ProcessState,
    path: Path,
    frame_ms: int,
    fast: bool,
    options: SessionOptions,
) -> List[str]:
    """Stream one file through a session the way a live call would arrive."""
    pcm, sample_rate = load_pcm16(path)
    session = state.open_session("L16", sample_rate, options=options)
    config = state.config
    results: List[str] = []
    frame_sec = frame_ms / 1000.0
    # Trailing silence lets the VAD close the last utterance.
    tail_ms = int(config.vad_silence_ms) + 2 * frame_ms
    try:
        frames = list(iter_frames(pcm, sample_rate, frame_ms))
        frames.extend(_silence_frames(sample_rate, frame_ms, tail_ms))
        for frame in frames:
            if session.feed(frame) is FeedStatus.BREAK:
                LOGGER.warning("Session refused audio for %s", path)
                break
            _collect(session, results)
            if not fast:
                time.sleep(frame_sec)

        wait_sec = (
            float(config.sentence_threshold_sec)
            + float(config.connect_timeout_sec)
            + float(config.request_timeout_sec)
            + 1.0
        )
        deadline = time.monotonic() + wait_sec
        while session.has_pending_audio() and time.monotonic() < deadline:
            _collect(session, results)
            time.sleep(_RESULT_POLL_SEC)
        _collect(session, results)
    finally:
        session.close()
    return results


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Stream audio files through the VAD-gated ASR bridge"
    )
    parser.add_argument("files", nargs="+", help="Audio files to transcribe")
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to YAML config (default search: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--api-url", default=None, help="Transcription endpoint URL")
    parser.add_argument("--api-key", default=None, help="Bearer token for the endpoint")
    parser.add_argument("--model", default=None, help="Model name sent with each request")
    parser.add_argument("--language", default=None, help="Language hint sent with each request")
    parser.add_argument(
        "--frame-ms",
        type=int,
        default=DEFAULT_FRAME_MS,
        help="Frame duration fed to the session",
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Feed frames as fast as possible instead of in real time",
    )
    parser.add_argument(
        "--encoding",
        choices=SUPPORTED_ENCODINGS,
        default=None,
        help="Temp file encoding for submitted utterances",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, TRACE); overrides config",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path; overrides config",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for HTTP metrics/health server (0 disables)",
    )
    return parser.parse_args(argv)


def configure_from_args(args: argparse.Namespace) -> ServerConfig:
    config_arg_path = Path(args.config).expanduser() if args.config else None
    effective_config_path = config_arg_path or DEFAULT_CONFIG_PATH
    config = load_config(effective_config_path)

    if args.api_url is not None:
        config.api_url = args.api_url
    if args.api_key is not None:
        config.api_key = args.api_key
    if args.model is not None:
        config.model = args.model
    if args.encoding is not None:
        config.encoding = args.encoding
    if args.metrics_port is not None:
        config.metrics_port = args.metrics_port
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file

    configure_logging(config.log_level, config.log_file, config.transcript_log_file)
    if effective_config_path.exists():
        LOGGER.info("Loaded config from %s", effective_config_path)
    else:
        LOGGER.info(
            "Config file not found at %s; using defaults/CLI overrides",
            effective_config_path,
        )
    return config


def run(args: argparse.Namespace, config: ServerConfig) -> int:
    try:
        state = ProcessState(config)
    except ASRError as exc:
        LOGGER.error("%s", exc)
        return 2

    if config.metrics_port:
        start_observability_server(
            state.metrics, state, host="0.0.0.0", port=int(config.metrics_port)
        )
        LOGGER.info("Observability server listening on port %s", config.metrics_port)

    exit_code = 0
    try:
        for name in args.files:
            path = Path(name).expanduser()
            options = SessionOptions(language=args.language)
            try:
                texts = transcribe_file(state, path, args.frame_ms, args.fast, options)
            except ASRError as exc:
                LOGGER.error("Failed to transcribe %s: %s", path, exc)
                if exc.fatal:
                    return 2
                exit_code = 1
                continue
            except (OSError, RuntimeError) as exc:
                LOGGER.error("Failed to transcribe %s: %s", path, exc)
                exit_code = 1
                continue
            for text in texts:
                print(f"{path.name}: {text}")
    finally:
        state.shutdown()
    return exit_code


def main(argv=None) -> None:
    args = parse_args(argv)
    config = configure_from_args(args)
    sys.exit(run(args, config))


if __name__ == "__main__":
    main()
