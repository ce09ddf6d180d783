"""Remote transcription, fragment merging and structure analysis."""

from .analyzer import StructureAnalyzer, parse_chapters
from .client import GeminiClient
from .dispatcher import TranscriptionDispatcher
from .merger import StreamMerger

__all__ = [
    "GeminiClient",
    "StreamMerger",
    "StructureAnalyzer",
    "TranscriptionDispatcher",
    "parse_chapters",
]
