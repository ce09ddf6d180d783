"""Sends flushed audio to the remote service and emits text fragments."""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..audio.wav import encode_wav
from ..config import TranscriptionConfig
from ..errors import ServiceError, TranscriptionError
from ..models import FlushUnit, TranscriptFragment
from .client import GeminiClient

logger = logging.getLogger(__name__)

PLACEHOLDER_CONFIDENCE = 0.9


class TranscriptionDispatcher:
    """Turns flush units into transcript fragments.

    Units are read from a queue on one thread and handed to a small pool,
    so several requests can be in flight while the next flush builds up.
    Fragments are put on the output queue in completion order. A failed
    request is logged and dropped; the pipeline keeps going.
    """

    def __init__(self, client: GeminiClient, config: TranscriptionConfig):
        self.client = client
        self.config = config
        self.flush_interval = config.flush_interval_ms / 1000
        self.instruction = config.instruction
        self.max_in_flight = max(1, config.max_in_flight)

        self._thread: Optional[threading.Thread] = None
        self._stats_lock = threading.Lock()
        self._dispatched = 0
        self._failed = 0

    def dispatch(self, unit: FlushUnit) -> TranscriptFragment:
        """Transcribe one flush unit, raising ``TranscriptionError`` on failure."""
        wav_bytes = encode_wav(unit.samples, unit.sample_rate)
        try:
            text = self.client.transcribe_wav(wav_bytes, self.instruction)
        except ServiceError as e:
            raise TranscriptionError(str(e)) from e

        return TranscriptFragment(
            text=text.strip(),
            confidence=PLACEHOLDER_CONFIDENCE,
            start_time=unit.window_start,
            end_time=unit.window_start + self.flush_interval,
            is_final=False,
        )

    def _dispatch_safely(self, unit: FlushUnit, fragments: queue.Queue) -> None:
        try:
            fragment = self.dispatch(unit)
        except TranscriptionError as e:
            self._record(failed=True)
            logger.warning(f"Dispatch for window {unit.window_start:.2f}s failed: {e}")
            return
        except Exception as e:
            self._record(failed=True)
            logger.error(f"Transcription error: {e}", exc_info=True)
            return

        self._record(failed=False)
        if not fragment.text:
            logger.debug(f"Empty transcript for window {unit.window_start:.2f}s, discarded")
            return

        logger.info(f"Transcribed: '{fragment.text[:50]}' ({fragment.start_time:.1f}s)")
        fragments.put(fragment)

    def _record(self, failed: bool) -> None:
        with self._stats_lock:
            self._dispatched += 1
            if failed:
                self._failed += 1

    def _dispatch_loop(self, units: queue.Queue, fragments: queue.Queue) -> None:
        executor = ThreadPoolExecutor(
            max_workers=self.max_in_flight, thread_name_prefix="dispatch"
        )
        try:
            while True:
                unit = units.get()
                if unit is None:
                    break
                executor.submit(self._dispatch_safely, unit, fragments)
        finally:
            # In-flight requests finish on their own; nothing is cancelled
            executor.shutdown(wait=True)
            fragments.put(None)
            logger.info("Transcription dispatcher drained")

    def start(self, units: queue.Queue) -> queue.Queue:
        """Consume flush units on a worker thread and return the fragment queue."""
        fragments: queue.Queue = queue.Queue()
        self._thread = threading.Thread(
            target=self._dispatch_loop, args=(units, fragments), daemon=True
        )
        self._thread.start()
        logger.info(f"Transcription dispatcher started: model {self.client.model}")
        return fragments

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def stats(self) -> dict:
        with self._stats_lock:
            return {"dispatched": self._dispatched, "failed": self._failed}
