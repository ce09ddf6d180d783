"""Tests for the config module."""

import logging

import pytest
import yaml

from trascrivi.config import (
    AudioConfig,
    Config,
    LoggingConfig,
    StorageConfig,
    TranscriptionConfig,
    load_config,
)


@pytest.fixture(autouse=True)
def no_env_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("TRASCRIVI_CONFIG", raising=False)


class TestAudioConfig:
    """Tests for AudioConfig dataclass."""

    def test_default_values(self):
        """Test default AudioConfig values."""
        config = AudioConfig()
        assert config.device == "default"
        assert config.sample_rate == 44100
        assert config.channels == 1
        assert config.chunk_duration_ms == 100
        assert config.simulate is False

    def test_custom_values(self):
        config = AudioConfig(device="hw:1,0", sample_rate=16000, channels=2)
        assert config.device == "hw:1,0"
        assert config.sample_rate == 16000
        assert config.channels == 2


class TestTranscriptionConfig:
    """Tests for TranscriptionConfig dataclass."""

    def test_default_values(self):
        config = TranscriptionConfig()
        assert config.api_key is None
        assert config.model == "gemini-2.5-flash"
        assert config.flush_interval_ms == 2000
        assert config.max_in_flight == 4
        assert "transcribe" in config.instruction


class TestStorageConfig:
    """Tests for StorageConfig dataclass."""

    def test_export_dir_defaults_under_data_dir(self, temp_dir):
        config = StorageConfig(data_dir=str(temp_dir))
        assert config.resolved_export_dir == temp_dir / "exports"

    def test_explicit_export_dir(self, temp_dir):
        config = StorageConfig(data_dir=str(temp_dir), export_dir=str(temp_dir / "out"))
        assert config.resolved_export_dir == temp_dir / "out"


class TestConfig:
    """Tests for main Config class."""

    def test_default_config(self):
        config = Config()
        assert isinstance(config.audio, AudioConfig)
        assert isinstance(config.transcription, TranscriptionConfig)
        assert isinstance(config.logging, LoggingConfig)
        assert config.web.port == 8080

    def test_from_yaml(self, temp_config_file, temp_dir):
        """Test loading config from YAML file."""
        config = Config.from_yaml(temp_config_file)

        assert config.audio.sample_rate == 16000
        assert config.audio.simulate is True
        assert config.transcription.api_key == "file-key"
        assert config.transcription.model == "gemini-2.0-flash"
        assert config.transcription.flush_interval_ms == 1000
        assert config.storage.data_dir == str(temp_dir / "transcripts")
        assert config.web.port == 9090
        assert config.logging.level == "DEBUG"
        assert config.logging.file is None

    def test_from_yaml_missing_file(self, temp_dir):
        """Test loading from non-existent file returns defaults."""
        config = Config.from_yaml(temp_dir / "missing.yaml")
        assert config.audio.sample_rate == 44100
        assert config.transcription.api_key is None

    def test_from_yaml_empty_file(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")
        config = Config.from_yaml(path)
        assert config.transcription.flush_interval_ms == 2000

    def test_env_api_key_overrides_file(self, temp_config_file, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        config = Config.from_yaml(temp_config_file)
        assert config.transcription.api_key == "env-key"

    def test_to_yaml(self, temp_dir):
        """Test saving config to YAML."""
        config = Config()
        config.transcription.flush_interval_ms = 500
        path = temp_dir / "nested" / "out.yaml"

        config.to_yaml(path)

        data = yaml.safe_load(path.read_text())
        assert data["transcription"]["flush_interval_ms"] == 500
        assert data["audio"]["sample_rate"] == 44100
        assert Config.from_yaml(path).transcription.flush_interval_ms == 500

    def test_setup_logging_with_file(self, temp_dir):
        config = Config(logging=LoggingConfig(level="DEBUG", file=str(temp_dir / "logs" / "app.log")))
        root = logging.getLogger()
        saved = root.handlers[:]
        saved_level = root.level
        try:
            root.handlers = []
            config.setup_logging()
            assert (temp_dir / "logs").exists()
            assert root.level == logging.DEBUG
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = saved
            root.setLevel(saved_level)

    def test_ensure_directories(self, temp_dir):
        config = Config(storage=StorageConfig(data_dir=str(temp_dir / "data")))
        config.ensure_directories()
        assert (temp_dir / "data").is_dir()
        assert (temp_dir / "data" / "exports").is_dir()


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_config_with_path(self, temp_config_file):
        config = load_config(str(temp_config_file))
        assert config.audio.sample_rate == 16000

    def test_load_config_from_env(self, temp_config_file, monkeypatch):
        monkeypatch.setenv("TRASCRIVI_CONFIG", str(temp_config_file))
        config = load_config()
        assert config.web.port == 9090
