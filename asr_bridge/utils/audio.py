import librosa
import numpy as np

BYTES_PER_SAMPLE = 2  # PCM16


def pcm16_to_float32(pcm_bytes):
    """PCM16 bytes → float32 numpy array"""
    return np.frombuffer(pcm_bytes, dtype=np.int16).astype(np.float32) / 32768.0


def ensure_16k(audio, src_rate):
    """Resample input audio to 16 kHz when needed."""
    if src_rate == 16000:
        return audio
    return librosa.resample(audio, orig_sr=src_rate, target_sr=16000)


def chunk_duration_seconds(byte_length: int, sample_rate: int, channels: int = 1) -> float:
    """Return chunk duration given PCM16 byte length and sample rate."""
    if sample_rate <= 0 or channels <= 0:
        return 0.0
    samples = byte_length / (BYTES_PER_SAMPLE * channels)
    return samples / float(sample_rate)


def frame_energy(pcm_bytes: bytes) -> float:
    """Mean absolute amplitude of a PCM16 frame, in raw sample units."""
    usable = len(pcm_bytes) - (len(pcm_bytes) % BYTES_PER_SAMPLE)
    if usable <= 0:
        return 0.0
    samples = np.frombuffer(pcm_bytes[:usable], dtype=np.int16).astype(np.int32)
    return float(np.mean(np.abs(samples)))
