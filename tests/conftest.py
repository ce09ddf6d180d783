"""Pytest configuration and shared fixtures."""

import json
import queue
import tempfile
from pathlib import Path

import httpx
import numpy as np
import pytest

from trascrivi.config import AudioConfig, Config, StorageConfig, TranscriptionConfig
from trascrivi.models import AudioChunk


# ==================== Path Fixtures ====================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config file."""
    config_path = temp_dir / "settings.yaml"
    config_content = """
audio:
  device: "default"
  sample_rate: 16000
  channels: 1
  chunk_duration_ms: 100
  simulate: true

transcription:
  api_key: "file-key"
  model: "gemini-2.0-flash"
  flush_interval_ms: 1000
  max_in_flight: 2

storage:
  data_dir: "{data_dir}"

web:
  port: 9090

logging:
  level: "DEBUG"
  file: null
""".format(data_dir=str(temp_dir / "transcripts"))

    config_path.write_text(config_content)
    return config_path


# ==================== Audio Fixtures ====================

@pytest.fixture
def sample_chunk():
    """Generate one 100ms chunk of noise at 16kHz."""
    audio = np.random.randn(1600).astype(np.float32) * 0.1
    return AudioChunk(samples=audio, sample_rate=16000, timestamp=0.0)


def make_chunks(count, sample_rate=16000, chunk_ms=100, value=0.1):
    """Build ``count`` consecutive constant chunks."""
    size = int(sample_rate * chunk_ms / 1000)
    return [
        AudioChunk(
            samples=np.full(size, value, dtype=np.float32),
            sample_rate=sample_rate,
            timestamp=i * chunk_ms / 1000,
        )
        for i in range(count)
    ]


@pytest.fixture
def mock_audio_config():
    """Create a small audio config."""
    return AudioConfig(
        device="default",
        sample_rate=16000,
        channels=1,
        chunk_duration_ms=100,
    )


# ==================== App Fixtures ====================

@pytest.fixture
def storage_config(temp_dir):
    return StorageConfig(data_dir=str(temp_dir / "transcripts"))


@pytest.fixture
def app_config(temp_dir, mock_audio_config, storage_config):
    """Config wired to temp storage with a short flush interval."""
    return Config(
        audio=mock_audio_config,
        transcription=TranscriptionConfig(
            api_key="test-key",
            flush_interval_ms=200,
            max_in_flight=2,
        ),
        storage=storage_config,
    )


class FakeAudioSource:
    """Audio source fed by the test instead of a device or a clock."""

    def __init__(self, config):
        self.config = config
        self.error = None
        self.level_callbacks = []
        self.started = False
        self.stopped = False
        self._queue = None
        self._index = 0

    def add_level_callback(self, callback):
        self.level_callbacks.append(callback)

    def start(self):
        self._queue = queue.Queue()
        self.started = True
        return self._queue

    def push(self, count=1, value=0.1):
        size = int(self.config.sample_rate * self.config.chunk_duration_ms / 1000)
        for _ in range(count):
            samples = np.full(size, value, dtype=np.float32)
            self._queue.put(AudioChunk(
                samples=samples,
                sample_rate=self.config.sample_rate,
                timestamp=self._index * self.config.chunk_duration_ms / 1000,
            ))
            self._index += 1
            for callback in self.level_callbacks:
                callback(value)

    def fail(self, error):
        self.error = error
        self._queue.put(None)

    def stop(self):
        if self.stopped:
            return
        self.stopped = True
        self._queue.put(None)

    def is_running(self):
        return self.started and not self.stopped


@pytest.fixture
def fake_source_factory():
    """Factory recording every FakeAudioSource it builds."""
    created = []

    def factory(config):
        source = FakeAudioSource(config)
        created.append(source)
        return source

    factory.created = created
    return factory


# ==================== HTTP Fixtures ====================

def gemini_reply(text):
    """Body of a generateContent reply carrying ``text``."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def mock_http_client(handler):
    """httpx client whose requests are answered by ``handler``."""
    return httpx.Client(transport=httpx.MockTransport(handler))


def request_text(request):
    """First text part of a captured generateContent request."""
    body = json.loads(request.content)
    return body["contents"][0]["parts"][0]["text"]
