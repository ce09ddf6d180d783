"""Main orchestrator for Trascrivi - live audio transcription."""

import argparse
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import uvicorn

from .audio.accumulator import ChunkAccumulator
from .audio.capture import AudioCapture, AudioSource, create_audio_source
from .config import AudioConfig, Config, load_config
from .errors import (
    AnalysisError,
    MissingApiKey,
    NoActiveSession,
    SessionAlreadyActive,
    StorageError,
)
from .models import (
    AppSettings,
    ExportFormat,
    ModelPreset,
    RecordingSession,
    Transcript,
    TranscriptFragment,
    TranscriptStatus,
    available_models,
    new_id,
)
from .session import SessionManager
from .transcription.analyzer import StructureAnalyzer
from .transcription.client import GeminiClient
from .transcription.dispatcher import TranscriptionDispatcher
from .transcription.merger import StreamMerger
from .transcripts.export import ExportService
from .transcripts.storage import TranscriptStorage

logger = logging.getLogger(__name__)

FRAGMENT_EVENT = "transcription-chunk"


@dataclass
class _Pipeline:
    """Stages wired together for one recording."""
    transcript_id: str
    source: AudioSource
    accumulator: ChunkAccumulator
    client: Optional[GeminiClient] = None
    dispatcher: Optional[TranscriptionDispatcher] = None
    merger: Optional[StreamMerger] = None

    def drain(self, timeout: float = 60.0) -> None:
        """Wait for the stages to finish and release the HTTP client."""
        self.accumulator.join(timeout=timeout)
        if self.dispatcher is not None:
            self.dispatcher.join(timeout=timeout)
        if self.merger is not None:
            self.merger.join(timeout=timeout)
        if self.client is not None:
            self.client.close()


class Trascrivi:
    """Application service behind the HTTP surface and the CLI."""

    def __init__(
        self,
        config: Config,
        storage: Optional[TranscriptStorage] = None,
        source_factory: Callable[[AudioConfig], AudioSource] = create_audio_source,
        http_client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.storage = storage or TranscriptStorage(config.storage)
        self.exporter = ExportService(config.storage.resolved_export_dir)
        self.sessions = SessionManager()

        self._source_factory = source_factory
        self._http_client = http_client

        default_settings = AppSettings(selected_model=config.transcription.model)
        try:
            self.settings = self.storage.load_state(default=default_settings)
        except StorageError as e:
            logger.warning(f"Ignoring unreadable app state, using defaults: {e}")
            self.settings = default_settings

        self._transcripts: dict[str, Transcript] = self.storage.list_all()
        self._transcripts_lock = threading.Lock()

        self._pipeline: Optional[_Pipeline] = None
        self._pipeline_lock = threading.Lock()
        self._last_pipeline: Optional[_Pipeline] = None

        self._fragment_callbacks: list[Callable[[str, TranscriptFragment], None]] = []

        logger.info(f"Loaded {len(self._transcripts)} transcripts")

    # ==================== Settings ====================

    @property
    def api_key(self) -> Optional[str]:
        return self.settings.api_key or self.config.transcription.api_key

    def _create_client(self) -> Optional[GeminiClient]:
        if not self.api_key:
            return None
        return GeminiClient(
            api_key=self.api_key,
            model=self.settings.selected_model,
            base_url=self.config.transcription.base_url,
            timeout=self.config.transcription.request_timeout,
            client=self._http_client,
        )

    def set_api_key(self, api_key: str) -> None:
        self.settings.api_key = api_key
        self.storage.save_state(self.settings)
        logger.info("API key updated")

    def set_selected_model(self, model: str) -> None:
        self.settings.selected_model = model
        self.storage.save_state(self.settings)
        logger.info(f"Selected model: {model}")

    def get_selected_model(self) -> str:
        return self.settings.selected_model

    @staticmethod
    def available_models() -> list[ModelPreset]:
        return available_models()

    # ==================== Notifications ====================

    def on_fragment(self, callback: Callable[[str, TranscriptFragment], None]) -> None:
        """Register an observer for merged fragments.

        The callback receives the event name and the fragment, and is invoked
        from the merger thread. Registering the same callback again is a no-op.
        """
        if callback not in self._fragment_callbacks:
            self._fragment_callbacks.append(callback)

    def _notify_fragment(self, fragment: TranscriptFragment) -> None:
        for callback in list(self._fragment_callbacks):
            try:
                callback(FRAGMENT_EVENT, fragment)
            except Exception as e:
                logger.error(f"Fragment observer error: {e}")

    # ==================== Recording ====================

    def start_recording(self) -> str:
        """Start capture and the transcription pipeline; return the transcript id."""
        with self._pipeline_lock:
            if self._pipeline is not None:
                raise SessionAlreadyActive(
                    f"Recording {self._pipeline.transcript_id} is already active"
                )

            transcript_id = new_id()
            source = self._source_factory(self.config.audio)
            source.add_level_callback(
                lambda level: self.sessions.update_level(transcript_id, level)
            )

            self.sessions.begin(transcript_id)
            try:
                chunks = source.start()
            except Exception:
                self.sessions.end(transcript_id)
                raise

            accumulator = ChunkAccumulator(self.config.transcription.flush_interval_ms)
            accumulator.on_stream_end(lambda: self._on_capture_ended(transcript_id, source))
            pipeline = _Pipeline(transcript_id=transcript_id, source=source, accumulator=accumulator)

            client = self._create_client()
            if client is None:
                logger.warning("No API key configured, recording without transcription")
                accumulator.on_flush(
                    lambda unit: self.sessions.advance_duration(
                        transcript_id, unit.window_start + unit.duration
                    )
                )
                accumulator.start(chunks, forward=False)
            else:
                units = accumulator.start(chunks)
                dispatcher = TranscriptionDispatcher(client, self.config.transcription)
                fragments = dispatcher.start(units)
                merger = StreamMerger(self.sessions, transcript_id)
                merger.on_fragment(self._notify_fragment)
                merger.start(fragments)
                pipeline.client = client
                pipeline.dispatcher = dispatcher
                pipeline.merger = merger

            self._pipeline = pipeline
            logger.info(f"Recording started: {transcript_id}")
            return transcript_id

    def stop_recording(self) -> Transcript:
        """Stop capture and freeze the session into a persisted transcript."""
        with self._pipeline_lock:
            pipeline = self._pipeline
            if pipeline is None:
                raise NoActiveSession("No active recording")

            pipeline.source.stop()
            error = pipeline.source.error
            return self._finalize(pipeline, error=str(error) if error is not None else None)

    def _on_capture_ended(self, transcript_id: str, source: AudioSource) -> None:
        """Runs on the accumulator thread once the chunk stream closes."""
        if source.error is None:
            return

        with self._pipeline_lock:
            pipeline = self._pipeline
            if pipeline is None or pipeline.transcript_id != transcript_id:
                return
            logger.error(f"Recording {transcript_id} aborted: {source.error}")
            try:
                self._finalize(pipeline, error=str(source.error))
            except StorageError as e:
                logger.error(f"Failed to persist aborted recording {transcript_id}: {e}")

    def _finalize(self, pipeline: _Pipeline, error: Optional[str] = None) -> Transcript:
        """Must be called with the pipeline lock held."""
        session = self.sessions.end(pipeline.transcript_id)
        self._pipeline = None
        self._last_pipeline = pipeline

        transcript = Transcript(
            id=session.transcript_id,
            created_at=session.created_at,
            duration=session.elapsed_duration,
            raw_text=session.accumulated_text,
            status=TranscriptStatus.COMPLETED,
        )
        if error is not None:
            transcript.mark_error(error)

        with self._transcripts_lock:
            self._transcripts[transcript.id] = transcript

        # Late fragments still drain through the stages and are discarded
        threading.Thread(target=pipeline.drain, daemon=True).start()

        self.storage.save(transcript)
        logger.info(
            f"Recording {transcript.id} finalized: {transcript.status.value}, "
            f"{transcript.duration:.1f}s, {len(transcript.raw_text)} chars"
        )
        return transcript

    def get_recording_state(self) -> Optional[RecordingSession]:
        return self.sessions.snapshot()

    def is_recording(self) -> bool:
        return self.sessions.is_active

    # ==================== Transcripts ====================

    def list_transcripts(self) -> list[Transcript]:
        with self._transcripts_lock:
            transcripts = list(self._transcripts.values())
        return sorted(transcripts, key=lambda t: t.created_at, reverse=True)

    def get_transcript(self, transcript_id: str) -> Transcript:
        return self.storage.load(transcript_id)

    def delete_transcript(self, transcript_id: str) -> None:
        self.storage.delete(transcript_id)
        with self._transcripts_lock:
            self._transcripts.pop(transcript_id, None)
        logger.info(f"Deleted transcript {transcript_id}")

    def export_transcript(self, transcript_id: str, fmt: ExportFormat) -> str:
        transcript = self.storage.load(transcript_id)
        return self.exporter.export(transcript, fmt)

    def analyze_structure(self, transcript_id: str) -> Transcript:
        """Replace a transcript's chapters with a fresh structure analysis.

        Persisted state is only written after a successful analysis.
        """
        transcript = self.storage.load(transcript_id)
        client = self._create_client()
        if client is None:
            raise MissingApiKey("Gemini API key missing")

        previous_status = transcript.status
        with self._transcripts_lock:
            live = self._transcripts.get(transcript_id)
            if live is not None and live.status is TranscriptStatus.PROCESSING:
                client.close()
                raise AnalysisError(f"Transcript {transcript_id} is already being analyzed")
            if live is not None:
                live.status = TranscriptStatus.PROCESSING

        try:
            transcript.chapters = StructureAnalyzer(client).analyze(transcript.raw_text)
            if transcript.status is not TranscriptStatus.ERROR:
                transcript.status = TranscriptStatus.COMPLETED
            self.storage.save(transcript)
        except Exception:
            with self._transcripts_lock:
                if live is not None:
                    live.status = previous_status
            raise
        finally:
            client.close()

        with self._transcripts_lock:
            self._transcripts[transcript.id] = transcript

        return transcript

    # ==================== Lifecycle ====================

    def get_status(self) -> dict:
        """Get current status of the recorder."""
        session = self.sessions.snapshot()
        pipeline = self._pipeline
        dispatcher = pipeline.dispatcher if pipeline is not None else None
        with self._transcripts_lock:
            transcript_count = len(self._transcripts)

        return {
            "recording": session is not None,
            "session": session.to_dict() if session is not None else None,
            "transcription_enabled": bool(self.api_key),
            "selected_model": self.settings.selected_model,
            "dispatch": dispatcher.stats if dispatcher is not None else None,
            "transcripts": transcript_count,
        }

    def shutdown(self) -> None:
        """Stop any active recording."""
        try:
            self.stop_recording()
        except NoActiveSession:
            return
        logger.info("Active recording stopped on shutdown")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Trascrivi - live audio transcription")
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Web server host (overrides config)",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Web server port (overrides config)",
    )
    parser.add_argument(
        "--list-audio",
        action="store_true",
        help="List available audio devices",
    )
    args = parser.parse_args()

    if args.list_audio:
        print("Available audio devices:")
        for dev in AudioCapture.list_devices():
            print(f"  [{dev['id']}] {dev['name']} ({dev['channels']}ch)")
        return

    config = load_config(args.config)
    config.setup_logging()
    config.ensure_directories()

    host = args.host or config.web.host
    port = args.port or config.web.port

    logger.info("=" * 50)
    logger.info("Trascrivi - live audio transcription")
    logger.info("=" * 50)

    from .web.api import create_app, set_app_instance

    app = Trascrivi(config)
    set_app_instance(app)

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(),
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
    )

    logger.info(f"API available at http://{host}:{port}")
    try:
        server.run()
    finally:
        app.shutdown()


if __name__ == "__main__":
    main()
