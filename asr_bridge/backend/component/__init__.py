"""Component layer: queues, VAD gating, utterance assembly and submission."""

from .audio_storage import AudioStorageConfig, UtteranceFileWriter
from .chunk_queue import AudioChunk, BoundedQueue
from .preroll import PreRollBuffer
from .sentence_assembler import SentenceAssembler
from .transcription_client import TranscriptionClient, TranscriptionClientConfig
from .transcription_worker import TranscriptionWorker, WorkerState
from .vad_gate import VADGate, VADGateUpdate, VADState, create_detector

__all__ = [
    "AudioChunk",
    "AudioStorageConfig",
    "BoundedQueue",
    "PreRollBuffer",
    "SentenceAssembler",
    "TranscriptionClient",
    "TranscriptionClientConfig",
    "TranscriptionWorker",
    "UtteranceFileWriter",
    "VADGate",
    "VADGateUpdate",
    "VADState",
    "WorkerState",
    "create_detector",
]
