"""HTTP client for the Gemini generateContent endpoint."""

import base64
import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import MissingApiKey, ServiceError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class Part(BaseModel):
    text: Optional[str] = None


class Content(BaseModel):
    parts: list[Part] = []


class Candidate(BaseModel):
    content: Optional[Content] = None


class GenerateContentResponse(BaseModel):
    """The subset of a generateContent reply the pipeline reads."""
    candidates: list[Candidate] = []

    def first_text(self) -> str:
        """Text of the first part of the first candidate, or ``""``."""
        if not self.candidates:
            return ""
        content = self.candidates[0].content
        if content is None or not content.parts:
            return ""
        return content.parts[0].text or ""


class GeminiClient:
    """Thin synchronous wrapper around ``httpx.Client``.

    The API key travels as the ``key`` query parameter. Transport errors,
    non-2xx replies and replies that do not match
    ``GenerateContentResponse`` all raise ``ServiceError``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not api_key:
            raise MissingApiKey("Gemini API key missing")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def _url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate_content(self, parts: list[dict[str, Any]]) -> str:
        """Send one request and return the first text part of the reply."""
        try:
            resp = self._client.post(
                self._url(),
                params={"key": self.api_key},
                json={"contents": [{"parts": parts}]},
            )
        except httpx.HTTPError as exc:
            raise ServiceError(f"Request failed: {exc}") from exc

        if resp.status_code == 401 or resp.status_code == 403:
            raise ServiceError(f"Unauthorized ({resp.status_code}): check API key")
        if not resp.is_success:
            raise ServiceError(f"API error {resp.status_code}: {resp.text}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ServiceError(f"Invalid response: {exc}") from exc

        try:
            reply = GenerateContentResponse.model_validate(payload)
        except ValidationError as exc:
            raise ServiceError(f"Unexpected response shape: {exc}") from exc

        return reply.first_text()

    def transcribe_wav(self, wav_bytes: bytes, instruction: str) -> str:
        """Send a WAV payload with a transcription instruction."""
        audio = base64.b64encode(wav_bytes).decode("ascii")
        logger.debug(f"Sending {len(wav_bytes)} bytes of audio to {self.model}")
        return self.generate_content([
            {"text": instruction},
            {"inline_data": {"mime_type": "audio/wav", "data": audio}},
        ])

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
