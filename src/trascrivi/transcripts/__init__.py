"""Persistence and export of finished transcripts."""

from .export import ExportService
from .storage import TranscriptStorage

__all__ = ["ExportService", "TranscriptStorage"]
