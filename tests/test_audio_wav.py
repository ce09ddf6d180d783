"""Tests for WAV encoding."""

import io
import wave

import numpy as np
import pytest

from trascrivi.audio.wav import decode_wav, encode_wav, float_to_pcm16, pcm16_to_float


class TestPcmConversion:
    """Tests for float to PCM16 conversion."""

    def test_full_scale(self):
        pcm = float_to_pcm16(np.array([-1.0, 0.0, 1.0], dtype=np.float32))
        assert pcm.tolist() == [-32767, 0, 32767]
        assert pcm.dtype == np.dtype("<i2")

    def test_out_of_range_is_clamped(self):
        pcm = float_to_pcm16(np.array([-2.0, 2.0], dtype=np.float32))
        assert pcm.tolist() == [-32768, 32767]

    def test_rounding(self):
        pcm = float_to_pcm16(np.array([0.5, -0.5], dtype=np.float32))
        assert pcm.tolist() == [16384, -16384]


class TestEncodeWav:
    """Tests for encode_wav."""

    def test_header_fields(self):
        data = encode_wav(np.zeros(441, dtype=np.float32), 44100)

        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WAVE"
        with wave.open(io.BytesIO(data), "rb") as wav_file:
            assert wav_file.getnchannels() == 1
            assert wav_file.getsampwidth() == 2
            assert wav_file.getframerate() == 44100
            assert wav_file.getnframes() == 441

    def test_samples_survive_within_one_lsb(self):
        rng = np.random.default_rng(3)
        samples = rng.uniform(-1.0, 1.0, 2000).astype(np.float32)

        pcm, rate = decode_wav(encode_wav(samples, 16000))

        assert rate == 16000
        assert np.max(np.abs(pcm16_to_float(pcm) - samples)) <= 1.0 / 32767 + 1e-6

    def test_empty_samples(self):
        pcm, rate = decode_wav(encode_wav(np.zeros(0, dtype=np.float32), 16000))
        assert len(pcm) == 0
        assert rate == 16000

    def test_decode_rejects_stereo(self):
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(2)
            wav_file.setsampwidth(2)
            wav_file.setframerate(8000)
            wav_file.writeframes(b"\x00\x00" * 4)

        with pytest.raises(ValueError):
            decode_wav(buffer.getvalue())
