"""Audio sources emitting fixed-duration PCM chunks onto a queue."""

import logging
import math
import queue
import threading
import time
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from ..config import AudioConfig
from ..errors import DeviceError, DeviceUnavailable
from ..models import AudioChunk

logger = logging.getLogger(__name__)

ChunkQueue = queue.Queue  # items are AudioChunk, closed with a None sentinel


class AudioSource:
    """Common chunk bookkeeping for hardware and simulated sources.

    ``start()`` returns the queue the chunks are delivered on. The queue is
    closed with a single ``None`` once the source stops or fails; after a
    failure ``error`` holds the ``DeviceError``.
    """

    def __init__(self, config: AudioConfig):
        self.config = config
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self.chunk_duration_ms = config.chunk_duration_ms
        self.chunk_samples = int(config.sample_rate * config.chunk_duration_ms / 1000)

        self.error: Optional[DeviceError] = None
        self._queue: Optional[ChunkQueue] = None
        self._queue_lock = threading.Lock()
        self._closed = True
        self._stop_requested = threading.Event()
        self._chunk_index = 0
        self._running = False
        self._level_callbacks: list[Callable[[float], None]] = []

    def add_level_callback(self, callback: Callable[[float], None]) -> None:
        """Register a callback receiving the peak level of every chunk."""
        self._level_callbacks.append(callback)

    def remove_level_callback(self, callback: Callable[[float], None]) -> None:
        if callback in self._level_callbacks:
            self._level_callbacks.remove(callback)

    def _open_queue(self) -> ChunkQueue:
        self.error = None
        self._chunk_index = 0
        self._stop_requested.clear()
        with self._queue_lock:
            self._queue = queue.Queue()
            self._closed = False
        return self._queue

    def _emit(self, samples: np.ndarray) -> None:
        """Wrap samples into a chunk and deliver it unless the queue is closed."""
        timestamp = self._chunk_index * self.chunk_duration_ms / 1000
        chunk = AudioChunk(samples=samples, sample_rate=self.sample_rate, timestamp=timestamp)

        with self._queue_lock:
            if self._closed:
                return
            self._queue.put(chunk)
            self._chunk_index += 1

        self._report_level(samples)

    def _close_queue(self) -> None:
        with self._queue_lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(None)

    def _report_level(self, samples: np.ndarray) -> None:
        if not self._level_callbacks or samples.size == 0:
            return
        level = min(1.0, float(np.max(np.abs(samples))))
        for callback in self._level_callbacks:
            try:
                callback(level)
            except Exception as e:
                logger.error(f"Level callback error: {e}")

    def is_running(self) -> bool:
        """Check if capture is running."""
        return self._running


class AudioCapture(AudioSource):
    """Continuous audio capture from the microphone, clocked by the driver."""

    def __init__(self, config: AudioConfig):
        super().__init__(config)
        self._stream: Optional[sd.InputStream] = None

    def _resolve_device(self) -> Optional[int | str]:
        if self.config.device == "default":
            return None
        try:
            return int(self.config.device)
        except ValueError:
            return self.config.device

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: dict,
        status: sd.CallbackFlags,
    ) -> None:
        """Callback for sounddevice stream."""
        if status:
            logger.warning(f"Audio callback status: {status}")

        if self._stop_requested.is_set():
            raise sd.CallbackStop

        # Downmix to mono float32
        if indata.ndim > 1:
            samples = indata.mean(axis=1, dtype=np.float32)
        else:
            samples = indata.astype(np.float32, copy=True)

        self._emit(samples)

    def _on_stream_finished(self) -> None:
        if not self._stop_requested.is_set():
            self.error = DeviceError("Audio input stream ended unexpectedly")
            logger.error(f"Audio capture failed: {self.error}")
        self._close_queue()

    def start(self) -> ChunkQueue:
        """Start audio capture and return the chunk queue."""
        if self._running:
            logger.warning("Audio capture already running")
            return self._queue

        device = self._resolve_device()
        try:
            sd.query_devices(device, kind="input")
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceUnavailable(f"No audio input device available: {e}") from e

        logger.info(f"Starting audio capture: {self.sample_rate}Hz, {self.channels}ch")

        chunks = self._open_queue()
        try:
            self._stream = sd.InputStream(
                device=device,
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype=np.float32,
                blocksize=self.chunk_samples,
                callback=self._audio_callback,
                finished_callback=self._on_stream_finished,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            self._close_queue()
            raise DeviceUnavailable(f"Could not open audio input: {e}") from e

        self._running = True
        logger.info("Audio capture started")
        return chunks

    def stop(self) -> None:
        """Stop audio capture after the chunk in progress."""
        if not self._running:
            return

        logger.info("Stopping audio capture")
        self._stop_requested.set()
        self._running = False

        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None

        self._close_queue()
        logger.info("Audio capture stopped")

    @staticmethod
    def list_devices() -> list[dict]:
        """List available audio input devices."""
        devices = []
        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append({
                    "id": i,
                    "name": device["name"],
                    "channels": device["max_input_channels"],
                    "sample_rate": device["default_samplerate"],
                })
        return devices


class SimulatedAudioSource(AudioSource):
    """Self-clocked source producing a quiet sine tone at a fixed cadence."""

    def __init__(self, config: AudioConfig, frequency: float = 440.0, amplitude: float = 0.1):
        super().__init__(config)
        self.frequency = frequency
        self.amplitude = amplitude
        self._thread: Optional[threading.Thread] = None
        self._phase = 0

    def _next_samples(self) -> np.ndarray:
        n = np.arange(self._phase, self._phase + self.chunk_samples)
        self._phase += self.chunk_samples
        return (self.amplitude * np.sin(2 * math.pi * self.frequency * n / self.sample_rate)).astype(np.float32)

    def _produce_loop(self) -> None:
        interval = self.chunk_duration_ms / 1000
        deadline = time.monotonic()
        while not self._stop_requested.is_set():
            self._emit(self._next_samples())
            deadline += interval
            self._stop_requested.wait(max(0.0, deadline - time.monotonic()))
        self._close_queue()

    def start(self) -> ChunkQueue:
        if self._running:
            logger.warning("Simulated audio source already running")
            return self._queue

        logger.info(f"Starting simulated audio source: {self.sample_rate}Hz")
        chunks = self._open_queue()
        self._phase = 0
        self._running = True
        self._thread = threading.Thread(target=self._produce_loop, daemon=True)
        self._thread.start()
        return chunks

    def stop(self) -> None:
        if not self._running:
            return

        logger.info("Stopping simulated audio source")
        self._stop_requested.set()
        self._running = False

        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None

        self._close_queue()


def create_audio_source(config: AudioConfig) -> AudioSource:
    """Build the source selected by the audio configuration."""
    if config.simulate:
        return SimulatedAudioSource(config)
    return AudioCapture(config)
