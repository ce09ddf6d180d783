"""Configuration management for Trascrivi."""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTION = (
    "Please transcribe this audio to text. "
    "Only return the transcribed text, nothing else."
)


@dataclass
class AudioConfig:
    """Audio capture configuration."""
    device: str = "default"
    sample_rate: int = 44100
    channels: int = 1
    chunk_duration_ms: int = 100
    simulate: bool = False


@dataclass
class TranscriptionConfig:
    """Remote transcription configuration."""
    api_key: Optional[str] = None
    model: str = "gemini-2.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    flush_interval_ms: int = 2000
    request_timeout: float = 30.0
    max_in_flight: int = 4
    instruction: str = DEFAULT_INSTRUCTION


@dataclass
class StorageConfig:
    """Transcript storage configuration."""
    data_dir: str = "./data/transcripts"
    export_dir: Optional[str] = None

    @property
    def resolved_export_dir(self) -> Path:
        if self.export_dir:
            return Path(self.export_dir)
        return Path(self.data_dir) / "exports"


@dataclass
class WebConfig:
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = "./logs/trascrivi.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    audio: AudioConfig = field(default_factory=AudioConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            config = cls()
        else:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}

            config = cls(
                audio=AudioConfig(**data.get("audio", {})),
                transcription=TranscriptionConfig(**data.get("transcription", {})),
                storage=StorageConfig(**data.get("storage", {})),
                web=WebConfig(**data.get("web", {})),
                logging=LoggingConfig(**data.get("logging", {})),
            )

        env_key = os.environ.get("GEMINI_API_KEY")
        if env_key:
            config.transcription.api_key = env_key

        return config

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "audio": asdict(self.audio),
            "transcription": asdict(self.transcription),
            "storage": asdict(self.storage),
            "web": asdict(self.web),
            "logging": asdict(self.logging),
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, self.logging.level.upper(), logging.INFO)

        handlers = [logging.StreamHandler()]

        if self.logging.file:
            log_path = Path(self.logging.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))

        logging.basicConfig(
            level=log_level,
            format=self.logging.format,
            handlers=handlers,
        )

    def ensure_directories(self) -> None:
        """Create necessary directories."""
        Path(self.storage.data_dir).mkdir(parents=True, exist_ok=True)
        self.storage.resolved_export_dir.mkdir(parents=True, exist_ok=True)


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from file or environment."""
    if path is None:
        path = os.environ.get("TRASCRIVI_CONFIG", "config/settings.yaml")
    return Config.from_yaml(path)
