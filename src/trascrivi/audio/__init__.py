"""Audio pipeline components for continuous capture and buffering."""

from .accumulator import ChunkAccumulator
from .capture import AudioCapture, AudioSource, SimulatedAudioSource, create_audio_source
from .wav import encode_wav

__all__ = [
    "AudioCapture",
    "AudioSource",
    "ChunkAccumulator",
    "SimulatedAudioSource",
    "create_audio_source",
    "encode_wav",
]
