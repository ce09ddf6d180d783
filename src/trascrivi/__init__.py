"""Trascrivi - live audio transcription with Gemini."""

__version__ = "0.1.0"
