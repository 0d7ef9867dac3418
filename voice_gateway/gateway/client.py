"""ElevenLabs client: provider HTTP calls routed through the bounded dispatcher.

Each public method wraps its HTTP call in a zero-argument coroutine and
submits it to the RequestDispatcher, so at most ``max_concurrent`` calls
are in flight regardless of how many API requests arrive. Failures are
logged with their duration and re-raised as ProviderError.

Endpoints:
  - GET    /voices                      list voices
  - POST   /voices/add                  create an instant voice clone (multipart)
  - POST   /text-to-speech/{voice_id}   synthesize speech (audio/mpeg bytes)
  - DELETE /voices/{voice_id}           delete a voice
  - GET    /user                        account / quota info
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from pathlib import Path

import httpx

from voice_gateway import __version__
from voice_gateway.core.metrics import PROVIDER_REQUESTS
from voice_gateway.gateway.dispatcher import RequestDispatcher
from voice_gateway.gateway.errors import ProviderError, provider_error_message, translate_provider_error
from voice_gateway.gateway.normalizer import normalize_voice_settings
from voice_gateway.gateway.types import (
    DEFAULT_ENDPOINTS,
    ProviderEndpoints,
    QueueStatus,
    SpeechResult,
    VoiceCloneResult,
    VoiceSettings,
)

logger = logging.getLogger(__name__)


def _json_object(resp: httpx.Response, *required: str) -> dict:
    """Decode a 2xx body that must be a JSON object carrying ``required`` keys."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise ProviderError(provider_error_message(None, "response is not a JSON object"))
    missing = [key for key in required if not data.get(key)]
    if missing:
        raise ProviderError(provider_error_message(None, f"response missing {', '.join(missing)}"))
    return data


class ElevenLabsClient:
    """Async client for the ElevenLabs API with bounded concurrency."""

    def __init__(
        self,
        api_key: str,
        dispatcher: RequestDispatcher,
        base_url: str = "https://api.elevenlabs.io/v1",
        timeout: float = 30.0,
        model_id: str = "",
        endpoints: ProviderEndpoints = DEFAULT_ENDPOINTS,
    ):
        self.api_key = api_key
        self.dispatcher = dispatcher
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.model_id = model_id
        self.endpoints = endpoints

    def _headers(self, json_body: bool = True) -> dict[str, str]:
        headers = {
            "xi-api-key": self.api_key,
            "User-Agent": f"voice-gateway/{__version__}",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _call(self, operation: str, execute, **log_context):
        """Run ``execute`` through the dispatcher, translating any failure."""
        start = time.monotonic()
        try:
            result = await self.dispatcher.submit(execute)
        except Exception as exc:
            error = translate_provider_error(exc)
            duration_ms = int((time.monotonic() - start) * 1000)
            PROVIDER_REQUESTS.labels(operation=operation, outcome="error").inc()
            logger.error(
                "Provider %s failed after %dms (status=%s): %s %s",
                operation,
                duration_ms,
                error.status_code,
                error.message,
                log_context or "",
            )
            raise error from exc

        PROVIDER_REQUESTS.labels(operation=operation, outcome="success").inc()
        return result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_voices(self) -> list[dict]:
        logger.info("Fetching available voices")

        async def execute() -> list[dict]:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self._url(self.endpoints.voices), headers=self._headers())
            resp.raise_for_status()
            voices = _json_object(resp).get("voices") or []
            if not isinstance(voices, list):
                raise ProviderError(provider_error_message(None, "voices is not a list"))
            return voices

        voices = await self._call("list_voices", execute)
        logger.info("Voices fetched: %d", len(voices))
        return voices

    async def create_voice_clone(
        self,
        name: str,
        audio_path: str | Path,
        description: str | None = None,
    ) -> VoiceCloneResult:
        audio_path = Path(audio_path)
        logger.info("Starting voice clone creation: name=%s file=%s", name, audio_path.name)
        start = time.monotonic()

        async def execute() -> dict:
            content = await asyncio.to_thread(audio_path.read_bytes)
            mime = mimetypes.guess_type(audio_path.name)[0] or "application/octet-stream"
            data = {"name": name}
            if description:
                data["description"] = description
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self._url(self.endpoints.voice_clone),
                    data=data,
                    files={"files": (audio_path.name, content, mime)},
                    headers=self._headers(json_body=False),
                )
            resp.raise_for_status()
            return _json_object(resp, "voice_id")

        data = await self._call("voice_clone", execute, name=name)
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("Voice clone created in %dms: voice_id=%s", duration_ms, data.get("voice_id"))
        return VoiceCloneResult(
            voice_id=data["voice_id"],
            name=data.get("name") or name,
            duration_ms=duration_ms,
        )

    async def generate_speech(
        self,
        text: str,
        voice_id: str,
        settings: dict | VoiceSettings | None = None,
    ) -> SpeechResult:
        voice_settings = normalize_voice_settings(settings)
        logger.info("Starting speech generation: voice_id=%s text_length=%d", voice_id, len(text))
        start = time.monotonic()

        payload = {"text": text, "voice_settings": voice_settings.to_provider_payload()}
        if self.model_id:
            payload["model_id"] = self.model_id

        async def execute() -> httpx.Response:
            headers = self._headers()
            headers["Accept"] = "audio/mpeg"
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self._url(f"{self.endpoints.text_to_speech}/{voice_id}"),
                    json=payload,
                    headers=headers,
                )
            resp.raise_for_status()
            return resp

        resp = await self._call("text_to_speech", execute, voice_id=voice_id)
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("Speech generated in %dms (%d bytes)", duration_ms, len(resp.content))
        return SpeechResult(
            audio=resp.content,
            settings=voice_settings,
            duration_ms=duration_ms,
            content_type=resp.headers.get("content-type", "audio/mpeg"),
        )

    async def delete_voice(self, voice_id: str) -> None:
        logger.info("Deleting voice %s", voice_id)

        async def execute() -> None:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.delete(
                    self._url(f"{self.endpoints.voice_delete}/{voice_id}"),
                    headers=self._headers(),
                )
            resp.raise_for_status()

        await self._call("delete_voice", execute, voice_id=voice_id)
        logger.info("Voice %s deleted", voice_id)

    async def get_user_info(self) -> dict:
        async def execute() -> dict:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self._url(self.endpoints.user), headers=self._headers())
            resp.raise_for_status()
            return _json_object(resp)

        return await self._call("user_info", execute)

    def queue_status(self) -> QueueStatus:
        return self.dispatcher.status()
