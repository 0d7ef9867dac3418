import secrets

from fastapi import Header, Query, Request

from voice_gateway.core.config import settings
from voice_gateway.core.exceptions import UnauthorizedError
from voice_gateway.gateway.client import ElevenLabsClient
from voice_gateway.services.audio_manager import AudioManager


async def verify_api_key(
    x_api_key: str | None = Header(None, description="API key (when REQUIRE_API_KEY is enabled)"),
    api_key: str | None = Query(None, include_in_schema=False),
) -> None:
    if not settings.require_api_key:
        return

    provided = x_api_key or api_key
    if not provided:
        raise UnauthorizedError("API key required. Provide it in the X-API-Key header")

    if not any(secrets.compare_digest(provided, key) for key in settings.api_keys):
        raise UnauthorizedError("Invalid API key")


def get_voice_client(request: Request) -> ElevenLabsClient:
    return request.app.state.voice_client


def get_audio_manager(request: Request) -> AudioManager:
    return request.app.state.audio_manager
