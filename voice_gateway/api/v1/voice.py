import logging
import time

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from voice_gateway.api.v1.agents import create_agent_from_form, parse_agent_form
from voice_gateway.core.config import settings
from voice_gateway.core.dependencies import get_audio_manager, get_voice_client
from voice_gateway.core.rate_limit import limiter
from voice_gateway.db.database import get_db
from voice_gateway.gateway.client import ElevenLabsClient
from voice_gateway.gateway.normalizer import DEFAULT_VOICE_SETTINGS, VOICE_PRESETS
from voice_gateway.models.agent import Agent
from voice_gateway.schemas.agent import AgentResponse
from voice_gateway.schemas.voice import (
    PresetsResponse,
    QueueStatusResponse,
    SynthesizeRequest,
    SynthesizeResponse,
    VoicesResponse,
)
from voice_gateway.services.agent_service import record_usage
from voice_gateway.services.audio_manager import AudioManager
from voice_gateway.services.speech_service import synthesize_for_agent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["voice"])


def _client_info(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/synthesize", response_model=SynthesizeResponse)
@limiter.limit(settings.voice_rate_limit)
async def synthesize(
    request: Request,
    body: SynthesizeRequest,
    db: AsyncSession = Depends(get_db),
    voice_client: ElevenLabsClient = Depends(get_voice_client),
    audio_manager: AudioManager = Depends(get_audio_manager),
):
    start = time.monotonic()
    try:
        outcome = await synthesize_for_agent(
            db,
            voice_client,
            audio_manager,
            agent_id=body.agent_id,
            text=body.text,
            settings=body.settings.overrides() if body.settings else None,
        )
    except Exception:
        await db.rollback()
        known_agent = await db.get(Agent, body.agent_id)
        await record_usage(
            db,
            "synthesize",
            agent_id=known_agent.id if known_agent else None,
            duration_ms=int((time.monotonic() - start) * 1000),
            status="error",
            **_client_info(request),
        )
        await db.commit()
        raise

    await record_usage(
        db,
        "synthesize",
        agent_id=outcome.agent_id,
        duration_ms=outcome.duration_ms,
        file_size=outcome.audio_size,
        **_client_info(request),
    )
    return SynthesizeResponse(
        generation_id=outcome.generation_id,
        agent_id=outcome.agent_id,
        audio_url=outcome.audio_url,
        audio_size=outcome.audio_size,
        duration_ms=outcome.duration_ms,
        settings=outcome.settings.to_dict(),
    )


@router.get("/voices", response_model=VoicesResponse)
async def list_voices(voice_client: ElevenLabsClient = Depends(get_voice_client)):
    voices = await voice_client.list_voices()
    return VoicesResponse(voices=voices, count=len(voices))


@router.post("/clone", response_model=AgentResponse, status_code=201)
@limiter.limit(settings.voice_rate_limit)
async def clone_voice(
    request: Request,
    name: str = Form(...),
    description: str = Form(""),
    voice_settings: str | None = Form(None, alias="settings"),
    audio: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    voice_client: ElevenLabsClient = Depends(get_voice_client),
    audio_manager: AudioManager = Depends(get_audio_manager),
):
    body = parse_agent_form(name, description, voice_settings)
    logger.info("Voice clone requested: name=%s file=%s", body.name, audio.filename)
    return await create_agent_from_form(request, db, voice_client, audio_manager, body, audio, "voice_clone")


@router.get("/queue/status", response_model=QueueStatusResponse)
async def queue_status(
    voice_client: ElevenLabsClient = Depends(get_voice_client),
    audio_manager: AudioManager = Depends(get_audio_manager),
):
    status = voice_client.queue_status()
    return QueueStatusResponse(**status.to_dict(), files=audio_manager.get_file_stats())


@router.get("/user")
async def user_info(voice_client: ElevenLabsClient = Depends(get_voice_client)):
    return await voice_client.get_user_info()


@router.get("/presets", response_model=PresetsResponse)
async def presets():
    return PresetsResponse(
        presets={name: preset.to_dict() for name, preset in VOICE_PRESETS.items()},
        default=DEFAULT_VOICE_SETTINGS.to_dict(),
    )
