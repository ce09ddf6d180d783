"""Accumulates audio chunks into fixed-duration flush units."""

import logging
import queue
import threading
from typing import Callable, Optional

import numpy as np

from ..models import AudioChunk, FlushUnit

logger = logging.getLogger(__name__)


class ChunkAccumulator:
    """Rolling buffer that flushes once it covers the flush interval.

    A flush happens as soon as the buffered samples reach the interval
    (``>=``), checked after every chunk. Units are always exactly one
    interval long: a chunk crossing the boundary is split and its tail
    opens the next window. Whatever is still pending when the chunk
    stream closes is dropped.
    """

    def __init__(self, flush_interval_ms: int):
        if flush_interval_ms <= 0:
            raise ValueError("flush_interval_ms must be positive")
        self.flush_interval_ms = flush_interval_ms

        # Buffer state, owned by the consuming thread only
        self._buffer: list[np.ndarray] = []
        self._buffered_samples = 0
        self._window_start: Optional[float] = None
        self._sample_rate: Optional[int] = None

        self._flush_count = 0
        self._thread: Optional[threading.Thread] = None
        self._on_stream_end: list[Callable[[], None]] = []
        self._on_flush: list[Callable[[FlushUnit], None]] = []

    def samples_per_flush(self, sample_rate: int) -> int:
        return max(1, round(sample_rate * self.flush_interval_ms / 1000))

    def add_chunk(self, chunk: AudioChunk) -> list[FlushUnit]:
        """Append a chunk and return the flush units it completed."""
        rate = chunk.sample_rate
        self._sample_rate = rate
        target = self.samples_per_flush(rate)
        samples = chunk.samples
        units = []

        offset = 0
        while offset < len(samples):
            if self._window_start is None:
                self._window_start = chunk.timestamp + offset / rate

            take = min(target - self._buffered_samples, len(samples) - offset)
            self._buffer.append(samples[offset:offset + take])
            self._buffered_samples += take
            offset += take

            if self._buffered_samples >= target:
                units.append(self._flush())

        return units

    def _flush(self) -> FlushUnit:
        unit = FlushUnit(
            samples=np.concatenate(self._buffer),
            sample_rate=self._sample_rate,
            window_start=self._window_start,
        )
        self._buffer = []
        self._buffered_samples = 0
        self._window_start = None
        self._flush_count += 1

        logger.debug(
            f"Flush #{self._flush_count}: {unit.duration:.2f}s from {unit.window_start:.2f}s"
        )
        return unit

    @property
    def pending_duration(self) -> float:
        """Seconds of audio waiting for the next flush."""
        if not self._sample_rate:
            return 0.0
        return self._buffered_samples / self._sample_rate

    @property
    def flush_count(self) -> int:
        return self._flush_count

    def on_flush(self, callback: Callable[[FlushUnit], None]) -> None:
        """Register a callback run on the consuming thread for every flush unit."""
        self._on_flush.append(callback)

    def on_stream_end(self, callback: Callable[[], None]) -> None:
        """Register a callback run once the chunk stream has closed."""
        self._on_stream_end.append(callback)

    def _consume_loop(self, chunks: queue.Queue, units: queue.Queue, forward: bool) -> None:
        try:
            while True:
                chunk = chunks.get()
                if chunk is None:
                    break
                for unit in self.add_chunk(chunk):
                    for callback in self._on_flush:
                        try:
                            callback(unit)
                        except Exception as e:
                            logger.error(f"Flush callback error: {e}")
                    if forward:
                        units.put(unit)
        finally:
            if self._buffered_samples:
                logger.debug(f"Dropping {self.pending_duration:.2f}s of unflushed audio")
            units.put(None)

            for callback in self._on_stream_end:
                try:
                    callback()
                except Exception as e:
                    logger.error(f"Stream end callback error: {e}")

    def start(self, chunks: queue.Queue, forward: bool = True) -> queue.Queue:
        """Consume ``chunks`` on a worker thread and return the flush queue.

        With ``forward`` off, flush units are built and dropped, so the
        returned queue only ever carries the closing ``None``.
        """
        units: queue.Queue = queue.Queue()
        self._thread = threading.Thread(
            target=self._consume_loop, args=(chunks, units, forward), daemon=True
        )
        self._thread.start()
        logger.info(f"Chunk accumulator started: {self.flush_interval_ms}ms flush interval")
        return units

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
