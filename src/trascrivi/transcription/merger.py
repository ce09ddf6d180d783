"""Folds transcript fragments into the live session and notifies observers."""

import logging
import queue
import threading
from typing import Callable, Optional

from ..models import TranscriptFragment
from ..session import SessionManager

logger = logging.getLogger(__name__)

FragmentCallback = Callable[[TranscriptFragment], None]


class StreamMerger:
    """Single consumer of the fragment stream for one recording.

    Fragments are merged in arrival order, which can differ from flush
    order when requests overlap. The session's duration only moves
    forward. Fragments arriving after the session has ended are dropped
    without notification.
    """

    def __init__(self, sessions: SessionManager, transcript_id: str):
        self.sessions = sessions
        self.transcript_id = transcript_id
        self._callbacks: list[FragmentCallback] = []
        self._thread: Optional[threading.Thread] = None
        self._merged = 0
        self._discarded = 0

    def on_fragment(self, callback: FragmentCallback) -> None:
        """Register an observer notified for every merged fragment."""
        self._callbacks.append(callback)

    def merge(self, fragment: TranscriptFragment) -> bool:
        if not self.sessions.apply_fragment(self.transcript_id, fragment):
            self._discarded += 1
            logger.info(
                f"Discarding fragment for ended recording {self.transcript_id} "
                f"({fragment.start_time:.1f}s)"
            )
            return False

        self._merged += 1
        for callback in self._callbacks:
            try:
                callback(fragment)
            except Exception as e:
                logger.error(f"Fragment callback error: {e}")
        return True

    def _merge_loop(self, fragments: queue.Queue) -> None:
        while True:
            fragment = fragments.get()
            if fragment is None:
                break
            self.merge(fragment)
        logger.info(
            f"Stream merger finished: {self._merged} merged, {self._discarded} discarded"
        )

    def start(self, fragments: queue.Queue) -> None:
        self._thread = threading.Thread(
            target=self._merge_loop, args=(fragments,), daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def merged_count(self) -> int:
        return self._merged

    @property
    def discarded_count(self) -> int:
        return self._discarded
