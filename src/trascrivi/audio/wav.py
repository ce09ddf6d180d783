"""In-memory WAV encoding of float samples as mono 16-bit PCM."""

import io
import wave

import numpy as np

PCM16_SCALE = 32767


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Map [-1, 1] floats to int16 with ``round(s * 32767)``, clamped."""
    scaled = np.round(np.asarray(samples, dtype=np.float64) * PCM16_SCALE)
    return np.clip(scaled, -32768, 32767).astype("<i2")


def pcm16_to_float(pcm: np.ndarray) -> np.ndarray:
    return (np.asarray(pcm, dtype=np.float32) / PCM16_SCALE).astype(np.float32)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode samples as a RIFF/WAVE container (mono, 16-bit)."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(float_to_pcm16(samples).tobytes())
    return buffer.getvalue()


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """Decode a mono 16-bit WAV container back to int16 samples and rate."""
    with wave.open(io.BytesIO(data), "rb") as wav_file:
        if wav_file.getsampwidth() != 2 or wav_file.getnchannels() != 1:
            raise ValueError("Expected mono 16-bit PCM")
        frames = wav_file.readframes(wav_file.getnframes())
        return np.frombuffer(frames, dtype="<i2"), wav_file.getframerate()
