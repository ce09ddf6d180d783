"""Storage of transcripts and application settings as JSON files."""

import json
import logging
from pathlib import Path
from typing import Optional

from ..config import StorageConfig
from ..errors import StorageError, TranscriptNotFound
from ..models import AppSettings, Transcript

logger = logging.getLogger(__name__)

STATE_FILENAME = "app_state.json"


class TranscriptStorage:
    """One ``<id>.json`` record per transcript plus an app state file."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.data_dir = Path(config.data_dir)

        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _record_path(self, transcript_id: str) -> Path:
        if not transcript_id or "/" in transcript_id or "\\" in transcript_id or transcript_id.startswith("."):
            raise StorageError(f"Invalid transcript id: {transcript_id!r}")
        return self.data_dir / f"{transcript_id}.json"

    def _write_json(self, path: Path, data: dict) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {path.name}: {e}") from e

    def save(self, transcript: Transcript) -> None:
        """Write a transcript record, replacing any previous version."""
        self._write_json(self._record_path(transcript.id), transcript.to_dict())
        logger.debug(f"Saved transcript {transcript.id}")

    def load(self, transcript_id: str) -> Transcript:
        path = self._record_path(transcript_id)
        if not path.exists():
            raise TranscriptNotFound(f"Transcript {transcript_id} not found")

        try:
            with open(path, "r", encoding="utf-8") as f:
                return Transcript.from_dict(json.load(f))
        except OSError as e:
            raise StorageError(f"Failed to read transcript {transcript_id}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed transcript {transcript_id}: {e}") from e

    def delete(self, transcript_id: str) -> None:
        """Remove a transcript record; deleting a missing one is a no-op."""
        path = self._record_path(transcript_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete transcript {transcript_id}: {e}") from e
        logger.debug(f"Deleted transcript {transcript_id}")

    def list_all(self) -> dict[str, Transcript]:
        """Load every readable record, skipping malformed ones."""
        transcripts: dict[str, Transcript] = {}

        for path in sorted(self.data_dir.glob("*.json")):
            if path.name == STATE_FILENAME:
                continue
            try:
                with open(path, "r", encoding="utf-8") as f:
                    transcript = Transcript.from_dict(json.load(f))
            except (OSError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable transcript record {path.name}: {e}")
                continue
            transcripts[transcript.id] = transcript

        return transcripts

    def save_state(self, settings: AppSettings) -> None:
        self._write_json(self.data_dir / STATE_FILENAME, settings.to_dict())

    def load_state(self, default: Optional[AppSettings] = None) -> AppSettings:
        """Read saved settings, falling back to ``default`` when none exist."""
        path = self.data_dir / STATE_FILENAME
        if not path.exists():
            return default or AppSettings()

        try:
            with open(path, "r", encoding="utf-8") as f:
                return AppSettings.from_dict(json.load(f))
        except (OSError, AttributeError, ValueError) as e:
            raise StorageError(f"Failed to read app state: {e}") from e
