"""Data model shared by the recording pipeline, storage and export."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import numpy as np

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TITLE = "New Transcription"


@dataclass(frozen=True)
class AudioChunk:
    """One fixed-duration slice of mono float32 samples in [-1, 1]."""
    samples: np.ndarray
    sample_rate: int
    timestamp: float  # seconds since recording start

    def __post_init__(self) -> None:
        self.samples.setflags(write=False)

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate


@dataclass(frozen=True)
class FlushUnit:
    """Accumulated audio handed to the dispatcher as one request."""
    samples: np.ndarray
    sample_rate: int
    window_start: float

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate


@dataclass(frozen=True)
class TranscriptFragment:
    """A piece of transcribed text covering one flush window."""
    text: str
    confidence: float
    start_time: float
    end_time: float
    is_final: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_final": self.is_final,
        }


class TranscriptStatus(str, Enum):
    RECORDING = "Recording"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    ERROR = "Error"


def new_id() -> str:
    return str(uuid.uuid4())


def _parse_timestamp(value: str) -> datetime:
    # fromisoformat only accepts a "Z" suffix from Python 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass
class Subsection:
    id: str
    content: str
    start_time: float
    end_time: float
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subsection":
        return cls(
            id=data["id"],
            content=data["content"],
            start_time=float(data["start_time"]),
            end_time=float(data["end_time"]),
            confidence=float(data["confidence"]),
        )


@dataclass
class Chapter:
    id: str
    title: str
    start_time: float
    content: str
    confidence: float
    subsections: list[Subsection] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": self.start_time,
            "content": self.content,
            "confidence": self.confidence,
            "subsections": [s.to_dict() for s in self.subsections],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chapter":
        return cls(
            id=data["id"],
            title=data["title"],
            start_time=float(data["start_time"]),
            content=data["content"],
            confidence=float(data["confidence"]),
            subsections=[Subsection.from_dict(s) for s in data.get("subsections", [])],
        )


@dataclass
class Transcript:
    """A recording, live while its session is active and frozen afterwards."""
    id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration: float = 0.0
    raw_text: str = ""
    chapters: list[Chapter] = field(default_factory=list)
    status: TranscriptStatus = TranscriptStatus.RECORDING
    error_reason: Optional[str] = None

    def mark_error(self, reason: str) -> None:
        self.status = TranscriptStatus.ERROR
        self.error_reason = reason

    def to_dict(self) -> dict[str, Any]:
        if self.status is TranscriptStatus.ERROR:
            status: Any = {"Error": self.error_reason or ""}
        else:
            status = self.status.value

        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "duration": self.duration,
            "chapters": [c.to_dict() for c in self.chapters],
            "raw_text": self.raw_text,
            "status": status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transcript":
        raw_status = data["status"]
        error_reason = None
        if isinstance(raw_status, dict):
            status = TranscriptStatus.ERROR
            error_reason = str(raw_status["Error"])
        else:
            status = TranscriptStatus(raw_status)

        return cls(
            id=data["id"],
            title=data["title"],
            created_at=_parse_timestamp(data["created_at"]),
            duration=float(data["duration"]),
            raw_text=data["raw_text"],
            chapters=[Chapter.from_dict(c) for c in data.get("chapters", [])],
            status=status,
            error_reason=error_reason,
        )


@dataclass
class RecordingSession:
    """Live state of the one active recording."""
    transcript_id: str
    recording_flag: bool = True
    accumulated_text: str = ""
    elapsed_duration: float = 0.0
    audio_level: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_recording": self.recording_flag,
            "current_text": self.accumulated_text,
            "duration": self.elapsed_duration,
            "audio_level": self.audio_level,
            "transcription_id": self.transcript_id,
        }


@dataclass(frozen=True)
class ModelPreset:
    id: str
    name: str
    description: str
    supports_audio: bool
    context_window: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "supports_audio": self.supports_audio,
            "context_window": self.context_window,
        }


AVAILABLE_MODELS = (
    ModelPreset(
        id="gemini-2.5-flash",
        name="Gemini 2.5 Flash",
        description="Best price/performance, audio support, thinking capabilities",
        supports_audio=True,
        context_window="1M tokens",
    ),
    ModelPreset(
        id="gemini-2.5-pro",
        name="Gemini 2.5 Pro",
        description="Most powerful model for complex reasoning and analysis",
        supports_audio=True,
        context_window="2M tokens",
    ),
    ModelPreset(
        id="gemini-2.0-flash",
        name="Gemini 2.0 Flash",
        description="Fast with native tool use and improved capabilities",
        supports_audio=True,
        context_window="1M tokens",
    ),
    ModelPreset(
        id="gemini-1.5-pro",
        name="Gemini 1.5 Pro (Legacy)",
        description="Available only for existing projects with prior usage",
        supports_audio=True,
        context_window="2M tokens",
    ),
)


def available_models() -> list[ModelPreset]:
    return list(AVAILABLE_MODELS)


class ExportType(str, Enum):
    PDF = "Pdf"
    DOCX = "Docx"
    TXT = "Txt"
    MARKDOWN = "Markdown"

    @property
    def extension(self) -> str:
        return {
            ExportType.PDF: "pdf",
            ExportType.DOCX: "docx",
            ExportType.TXT: "txt",
            ExportType.MARKDOWN: "md",
        }[self]


@dataclass
class ExportFormat:
    format_type: ExportType = ExportType.TXT
    include_timestamps: bool = False
    include_chapters: bool = True
    custom_template: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExportFormat":
        return cls(
            format_type=ExportType(data["format_type"]),
            include_timestamps=bool(data.get("include_timestamps", False)),
            include_chapters=bool(data.get("include_chapters", True)),
            custom_template=data.get("custom_template"),
        )


@dataclass
class AppSettings:
    """Settings that outlive any single recording."""
    api_key: Optional[str] = None
    selected_model: str = DEFAULT_MODEL

    def to_dict(self) -> dict[str, Any]:
        return {
            "gemini_api_key": self.api_key,
            "selected_model": self.selected_model,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppSettings":
        return cls(
            api_key=data.get("gemini_api_key"),
            selected_model=data.get("selected_model") or DEFAULT_MODEL,
        )
