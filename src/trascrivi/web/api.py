"""FastAPI REST API for Trascrivi."""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import (
    AnalysisError,
    DeviceUnavailable,
    MissingApiKey,
    NoActiveSession,
    ServiceError,
    SessionAlreadyActive,
    TranscriptionError,
    TranscriptNotFound,
    TrascriviError,
)
from ..models import ExportFormat, ExportType, TranscriptFragment

logger = logging.getLogger(__name__)

# Will be set by main.py
_app_instance = None


class StartResponse(BaseModel):
    """Response model for a started recording."""
    transcript_id: str


class ExportRequest(BaseModel):
    """Request body for exporting a transcript."""
    format_type: ExportType = ExportType.TXT
    include_timestamps: bool = False
    include_chapters: bool = True
    custom_template: Optional[str] = None


class ExportResponse(BaseModel):
    path: str


class ApiKeyRequest(BaseModel):
    api_key: str


class ModelRequest(BaseModel):
    model: str


class EventBroadcaster:
    """Fans fragment events out to connected WebSocket clients.

    ``publish`` may be called from any thread; delivery happens on the
    event loop that serves the sockets.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscribers: set[asyncio.Queue] = set()
        self._lock = threading.Lock()

    def subscribe(self, loop: asyncio.AbstractEventLoop) -> asyncio.Queue:
        events: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._loop = loop
            self._subscribers.add(events)
        return events

    def unsubscribe(self, events: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers.discard(events)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: str, fragment: TranscriptFragment) -> None:
        message = {"event": event, "payload": fragment.to_dict()}
        with self._lock:
            loop = self._loop
            subscribers = list(self._subscribers)

        if loop is None or loop.is_closed():
            return
        for events in subscribers:
            loop.call_soon_threadsafe(events.put_nowait, message)


_events = EventBroadcaster()


def set_app_instance(instance) -> None:
    """Set the Trascrivi instance for API access."""
    global _app_instance
    _app_instance = instance
    if instance is not None:
        instance.on_fragment(_events.publish)


def get_event_broadcaster() -> EventBroadcaster:
    return _events


def _http_status(exc: TrascriviError) -> int:
    if isinstance(exc, (SessionAlreadyActive, NoActiveSession)):
        return 409
    if isinstance(exc, DeviceUnavailable):
        return 503
    if isinstance(exc, TranscriptNotFound):
        return 404
    if isinstance(exc, MissingApiKey):
        return 400
    if isinstance(exc, (AnalysisError, ServiceError, TranscriptionError)):
        return 502
    return 500


def _require_instance():
    if _app_instance is None:
        raise HTTPException(status_code=503, detail="Trascrivi not initialized")
    return _app_instance


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Trascrivi API",
        description="Live audio transcription and structure analysis",
        version="0.1.0",
    )

    # CORS for local network access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store start time for uptime calculation
    app.state.start_time = datetime.now()

    @app.exception_handler(TrascriviError)
    async def handle_trascrivi_error(request: Request, exc: TrascriviError):
        status_code = _http_status(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # ==================== Status ====================

    @app.get("/api/status")
    async def get_status() -> dict[str, Any]:
        """Get current recorder status."""
        instance = _require_instance()
        status = instance.get_status()
        status["uptime_seconds"] = (datetime.now() - app.state.start_time).total_seconds()
        return status

    # ==================== Recording ====================

    @app.post("/api/recording/start", response_model=StartResponse)
    def start_recording():
        """Start a new recording."""
        transcript_id = _require_instance().start_recording()
        return StartResponse(transcript_id=transcript_id)

    @app.post("/api/recording/stop")
    def stop_recording():
        """Stop the active recording and return the saved transcript."""
        return _require_instance().stop_recording().to_dict()

    @app.get("/api/recording/state")
    async def get_recording_state():
        """Snapshot of the active recording, or null when idle."""
        session = _require_instance().get_recording_state()
        return session.to_dict() if session is not None else None

    # ==================== Transcripts ====================

    @app.get("/api/transcripts")
    def list_transcripts():
        """List saved transcripts, newest first."""
        return [t.to_dict() for t in _require_instance().list_transcripts()]

    @app.get("/api/transcripts/{transcript_id}")
    def get_transcript(transcript_id: str):
        return _require_instance().get_transcript(transcript_id).to_dict()

    @app.delete("/api/transcripts/{transcript_id}")
    def delete_transcript(transcript_id: str):
        _require_instance().delete_transcript(transcript_id)
        return {"success": True}

    @app.post("/api/transcripts/{transcript_id}/export", response_model=ExportResponse)
    def export_transcript(transcript_id: str, request: ExportRequest):
        """Export a transcript and return the written file path."""
        fmt = ExportFormat(
            format_type=request.format_type,
            include_timestamps=request.include_timestamps,
            include_chapters=request.include_chapters,
            custom_template=request.custom_template,
        )
        path = _require_instance().export_transcript(transcript_id, fmt)
        return ExportResponse(path=path)

    @app.post("/api/transcripts/{transcript_id}/analyze")
    def analyze_structure(transcript_id: str):
        """Split a transcript into chapters with the remote model."""
        return _require_instance().analyze_structure(transcript_id).to_dict()

    # ==================== Settings ====================

    @app.put("/api/settings/api-key")
    def set_api_key(request: ApiKeyRequest):
        _require_instance().set_api_key(request.api_key)
        return {"success": True}

    @app.get("/api/settings/model")
    async def get_selected_model():
        return {"model": _require_instance().get_selected_model()}

    @app.put("/api/settings/model")
    def set_selected_model(request: ModelRequest):
        _require_instance().set_selected_model(request.model)
        return {"model": request.model}

    @app.get("/api/models")
    async def get_available_models():
        return [m.to_dict() for m in _require_instance().available_models()]

    # ==================== Events ====================

    @app.websocket("/ws/events")
    async def events(websocket: WebSocket):
        """Stream merged transcript fragments as they arrive."""
        queue = _events.subscribe(asyncio.get_running_loop())
        await websocket.accept()

        async def forward():
            while True:
                await websocket.send_json(await queue.get())

        sender = asyncio.create_task(forward())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            _events.unsubscribe(queue)

    return app
