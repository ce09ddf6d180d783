"""Export of finished transcripts to PDF, DOCX-as-text, plain text and Markdown."""

import logging
import textwrap
from pathlib import Path

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ..errors import ExportError
from ..models import ExportFormat, ExportType, Transcript

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
WRAP_WIDTH = 80


def _header(transcript: Transcript) -> tuple[str, str]:
    return (
        transcript.created_at.strftime(DATE_FORMAT),
        f"{transcript.duration:.0f}s",
    )


def _with_chapters(transcript: Transcript, fmt: ExportFormat) -> bool:
    return fmt.include_chapters and bool(transcript.chapters)


def render_text(transcript: Transcript, fmt: ExportFormat) -> str:
    date, duration = _header(transcript)
    parts = [f"{transcript.title}\n", f"Date: {date}\n", f"Duration: {duration}\n\n"]

    if _with_chapters(transcript, fmt):
        for chapter in transcript.chapters:
            parts.append(f"--- {chapter.title} ---\n")
            if fmt.include_timestamps:
                parts.append(f"Start: {chapter.start_time:.1f}s\n")
            parts.append(f"{chapter.content}\n\n")
    else:
        parts.append(transcript.raw_text)

    return "".join(parts)


def render_docx_text(transcript: Transcript, fmt: ExportFormat) -> str:
    date, duration = _header(transcript)
    parts = [f"# {transcript.title}\n\n", f"Date: {date}\n", f"Duration: {duration}\n\n"]

    if _with_chapters(transcript, fmt):
        for chapter in transcript.chapters:
            parts.append(f"## {chapter.title}\n")
            if fmt.include_timestamps:
                parts.append(f"Start: {chapter.start_time:.1f}s\n")
            parts.append(f"{chapter.content}\n\n")
    else:
        parts.append(transcript.raw_text)

    return "".join(parts)


def render_markdown(transcript: Transcript, fmt: ExportFormat) -> str:
    date, duration = _header(transcript)
    parts = [
        f"# {transcript.title}\n\n",
        f"**Date:** {date}\n",
        f"**Duration:** {duration}\n\n",
    ]

    if _with_chapters(transcript, fmt):
        for chapter in transcript.chapters:
            parts.append(f"## {chapter.title}\n")
            if fmt.include_timestamps:
                parts.append(f"*Start: {chapter.start_time:.1f}s*\n\n")
            parts.append(f"{chapter.content}\n\n")
    else:
        parts.append(transcript.raw_text)

    return "".join(parts)


class ExportService:
    """Writes export documents into a single export directory."""

    def __init__(self, export_dir: str | Path):
        self.export_dir = Path(export_dir)

    def _path(self, transcript: Transcript, fmt: ExportFormat) -> Path:
        self.export_dir.mkdir(parents=True, exist_ok=True)
        return self.export_dir / f"{transcript.id}_transcription.{fmt.format_type.extension}"

    def export(self, transcript: Transcript, fmt: ExportFormat) -> str:
        """Write the transcript in the requested format and return the path."""
        try:
            path = self._path(transcript, fmt)
            if fmt.format_type is ExportType.PDF:
                self._write_pdf(transcript, fmt, path)
            else:
                renderers = {
                    ExportType.DOCX: render_docx_text,
                    ExportType.TXT: render_text,
                    ExportType.MARKDOWN: render_markdown,
                }
                path.write_text(renderers[fmt.format_type](transcript, fmt), encoding="utf-8")
        except OSError as e:
            raise ExportError(f"Failed to export transcript {transcript.id}: {e}") from e

        logger.info(f"Exported transcript {transcript.id} to {path}")
        return str(path)

    def _write_pdf(self, transcript: Transcript, fmt: ExportFormat, path: Path) -> None:
        pdf = canvas.Canvas(str(path), pagesize=A4)
        page_top = 260 * mm
        bottom = 40 * mm
        left = 20 * mm
        y = page_top

        def line(text: str, font: str, size: float, step: float) -> None:
            nonlocal y
            if y < bottom:
                pdf.showPage()
                y = page_top
            pdf.setFont(font, size)
            pdf.drawString(left, y, text)
            y -= step

        date, duration = _header(transcript)
        pdf.setTitle(transcript.title)
        line(transcript.title, "Helvetica-Bold", 24, 20 * mm)
        line(date, "Helvetica", 12, 10 * mm)
        line(f"Duration: {duration}", "Helvetica", 12, 20 * mm)

        if _with_chapters(transcript, fmt):
            for chapter in transcript.chapters:
                line(chapter.title, "Helvetica-Bold", 16, 10 * mm)
                if fmt.include_timestamps:
                    line(f"Start: {chapter.start_time:.1f}s", "Helvetica", 10, 10 * mm)
                for text in textwrap.wrap(chapter.content, WRAP_WIDTH):
                    line(text, "Helvetica", 11, 8 * mm)
                y -= 10 * mm
        else:
            for text in textwrap.wrap(transcript.raw_text, WRAP_WIDTH):
                line(text, "Helvetica", 11, 8 * mm)

        pdf.save()
