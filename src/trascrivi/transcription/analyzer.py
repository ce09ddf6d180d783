"""Splits a finished transcript into titled chapters."""

import json
import logging
from typing import Any

from ..errors import AnalysisError, ServiceError
from ..models import Chapter, new_id
from .client import GeminiClient

logger = logging.getLogger(__name__)

PLACEHOLDER_CONFIDENCE = 0.9

STRUCTURE_PROMPT = """Analyze this transcription and break it into logical chapters with titles.
Return a JSON array with this structure:
[{{"title": "Chapter Title", "content": "Chapter content...", "start_time": 0.0}}]

Transcription:
{text}"""


def parse_chapters(reply: str) -> list[Chapter]:
    """Decode the bracketed JSON list inside a free-form reply.

    Text around the outermost ``[...]`` is ignored. Missing or mistyped
    fields in a single entry fall back to defaults; a reply without a
    decodable list raises ``AnalysisError``.
    """
    start = reply.find("[")
    end = reply.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise AnalysisError("No chapter list found in analysis reply")

    try:
        entries = json.loads(reply[start:end + 1])
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Chapter list is not valid JSON: {e}") from e

    if not isinstance(entries, list):
        raise AnalysisError("Chapter list is not a JSON array")

    return [_chapter_from_entry(i, entry) for i, entry in enumerate(entries)]


def _chapter_from_entry(index: int, entry: Any) -> Chapter:
    if not isinstance(entry, dict):
        logger.warning(f"Chapter entry {index + 1} is not an object, using defaults")
        entry = {}

    title = entry.get("title")
    if not isinstance(title, str):
        title = f"Chapter {index + 1}"

    content = entry.get("content")
    if not isinstance(content, str):
        content = ""

    start_time = entry.get("start_time")
    if isinstance(start_time, bool) or not isinstance(start_time, (int, float)):
        start_time = 0.0

    return Chapter(
        id=new_id(),
        title=title,
        start_time=float(start_time),
        content=content,
        confidence=PLACEHOLDER_CONFIDENCE,
        subsections=[],
    )


class StructureAnalyzer:
    """One-shot chapter segmentation through the remote service."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def analyze(self, full_text: str) -> list[Chapter]:
        logger.info(f"Analyzing structure of {len(full_text)} characters with {self.client.model}")
        try:
            reply = self.client.generate_content([
                {"text": STRUCTURE_PROMPT.format(text=full_text)},
            ])
        except ServiceError as e:
            raise AnalysisError(str(e)) from e

        chapters = parse_chapters(reply)
        logger.info(f"Structure analysis produced {len(chapters)} chapters")
        return chapters
