"""Lock-guarded holder for the single active recording session."""

import logging
import threading
from dataclasses import replace
from typing import Optional

from .errors import NoActiveSession, SessionAlreadyActive
from .models import RecordingSession, TranscriptFragment

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns the one ``RecordingSession`` that may be active at a time.

    The lock is held only for a read or a single field update. Readers get
    copies, so nothing outside this class ever touches the live object.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._session: Optional[RecordingSession] = None

    def begin(self, transcript_id: str) -> RecordingSession:
        """Open a session, refusing if another one is still active."""
        with self._lock:
            if self._session is not None:
                raise SessionAlreadyActive(
                    f"Recording {self._session.transcript_id} is already active"
                )
            self._session = RecordingSession(transcript_id=transcript_id)
            logger.info(f"Session started for transcript {transcript_id}")
            return replace(self._session)

    def apply_fragment(self, transcript_id: str, fragment: TranscriptFragment) -> bool:
        """Fold a fragment into the session.

        Returns False when the fragment belongs to a session that has
        already ended. Fragments with blank text leave the state untouched.
        """
        text = fragment.text.strip()
        with self._lock:
            session = self._session
            if session is None or session.transcript_id != transcript_id:
                return False
            if not text:
                return True

            if session.accumulated_text:
                session.accumulated_text = f"{session.accumulated_text} {text}"
            else:
                session.accumulated_text = text
            session.elapsed_duration = max(session.elapsed_duration, fragment.end_time)
            return True

    def advance_duration(self, transcript_id: str, duration: float) -> None:
        """Move the session duration forward; smaller values are ignored."""
        with self._lock:
            session = self._session
            if session is not None and session.transcript_id == transcript_id:
                session.elapsed_duration = max(session.elapsed_duration, duration)

    def update_level(self, transcript_id: str, level: float) -> None:
        with self._lock:
            if self._session is not None and self._session.transcript_id == transcript_id:
                self._session.audio_level = level

    def snapshot(self) -> Optional[RecordingSession]:
        """Copy of the active session, or None when idle."""
        with self._lock:
            if self._session is None:
                return None
            return replace(self._session)

    def end(self, transcript_id: Optional[str] = None) -> RecordingSession:
        """Close the active session and hand back its final state."""
        with self._lock:
            session = self._session
            if session is None:
                raise NoActiveSession("No active recording")
            if transcript_id is not None and session.transcript_id != transcript_id:
                raise NoActiveSession(f"Recording {transcript_id} is not active")
            self._session = None

        session.recording_flag = False
        logger.info(f"Session ended for transcript {session.transcript_id}")
        return session

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._session is not None
