import json
import logging
import time

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from voice_gateway.core.config import settings
from voice_gateway.core.dependencies import get_audio_manager, get_voice_client
from voice_gateway.core.exceptions import BadRequestError
from voice_gateway.core.rate_limit import limiter
from voice_gateway.db.database import get_db
from voice_gateway.gateway.client import ElevenLabsClient
from voice_gateway.schemas.agent import AgentCreate, AgentListResponse, AgentResponse, AgentStats, AgentUpdate
from voice_gateway.services import agent_service
from voice_gateway.services.audio_manager import AudioManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["agents"])


def parse_agent_form(name: str, description: str, settings_json: str | None) -> AgentCreate:
    """Build AgentCreate from multipart form fields (``settings`` arrives as a JSON string)."""
    raw_settings = None
    if settings_json:
        try:
            raw_settings = json.loads(settings_json)
        except json.JSONDecodeError:
            raise BadRequestError("Invalid settings JSON")
        if not isinstance(raw_settings, dict):
            raise BadRequestError("Settings must be a JSON object")

    try:
        return AgentCreate(name=name, description=description, settings=raw_settings)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


async def create_agent_from_form(
    request: Request,
    db: AsyncSession,
    voice_client: ElevenLabsClient,
    audio_manager: AudioManager,
    body: AgentCreate,
    audio: UploadFile,
    operation: str,
):
    start = time.monotonic()
    try:
        agent = await agent_service.create_agent(
            db,
            voice_client,
            audio_manager,
            name=body.name,
            description=body.description,
            settings=body.settings.overrides() if body.settings else None,
            upload=audio,
        )
    except Exception:
        logger.error("%s failed for %s (%s)", operation, body.name, audio.filename)
        raise

    await agent_service.record_usage(
        db,
        operation,
        agent_id=agent.id,
        duration_ms=int((time.monotonic() - start) * 1000),
        file_size=agent.file_size,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return agent


@router.post("/", response_model=AgentResponse, status_code=201)
@limiter.limit(settings.upload_rate_limit)
async def create_agent(
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
    return await create_agent_from_form(request, db, voice_client, audio_manager, body, audio, "agent_create")


@router.get("/", response_model=AgentListResponse)
async def list_agents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("created_at", pattern=r"^(created_at|updated_at|name|id)$"),
    order: str = Query("desc", pattern=r"^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
):
    return await agent_service.list_agents(db, page=page, limit=limit, sort_by=sort_by, order=order)


@router.get("/stats/overview", response_model=AgentStats)
async def agent_stats(db: AsyncSession = Depends(get_db)):
    return await agent_service.get_agent_stats(db)


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: str, db: AsyncSession = Depends(get_db)):
    return await agent_service.get_agent(db, agent_id)


@router.put("/{agent_id}", response_model=AgentResponse)
async def update_agent(agent_id: str, body: AgentUpdate, db: AsyncSession = Depends(get_db)):
    return await agent_service.update_agent(
        db,
        agent_id,
        name=body.name,
        description=body.description,
        settings=body.settings.overrides() if body.settings else None,
    )


@router.delete("/{agent_id}", status_code=204)
async def delete_agent(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
    voice_client: ElevenLabsClient = Depends(get_voice_client),
    audio_manager: AudioManager = Depends(get_audio_manager),
):
    await agent_service.delete_agent(db, voice_client, audio_manager, agent_id)
