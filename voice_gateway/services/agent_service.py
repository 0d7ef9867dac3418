"""Agent service: cloned-voice agents backed by the record store.

Create: validate upload → store sample → clone voice at the provider →
insert row. The stored sample is removed again if cloning or the insert
fails, so a failed create leaves nothing behind.
"""

import logging
import re
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import UploadFile
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voice_gateway.core.exceptions import BadRequestError, NotFoundError
from voice_gateway.gateway.client import ElevenLabsClient
from voice_gateway.gateway.errors import ProviderError
from voice_gateway.gateway.normalizer import merge_voice_settings, normalize_voice_settings
from voice_gateway.models.agent import Agent
from voice_gateway.models.generation import Generation
from voice_gateway.models.usage_log import UsageLog
from voice_gateway.services.audio_manager import AudioManager
from voice_gateway.services.validators import is_valid_agent_id

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": Agent.created_at,
    "updated_at": Agent.updated_at,
    "name": Agent.name,
    "id": Agent.id,
}


def generate_agent_id(name: str) -> str:
    sanitized = re.sub(r"[^a-z0-9]", "_", name.lower())[:20].strip("_") or "voice"
    return f"agent_{sanitized}_{secrets.token_hex(4)}"


def _check_agent_id(agent_id: str) -> None:
    if not is_valid_agent_id(agent_id):
        raise BadRequestError("Invalid agent ID format. Use 3-50 characters: letters, numbers, underscores, hyphens")


async def create_agent(
    db: AsyncSession,
    voice_client: ElevenLabsClient,
    audio_manager: AudioManager,
    *,
    name: str,
    upload: UploadFile,
    description: str = "",
    settings: dict[str, Any] | None = None,
) -> Agent:
    start = time.monotonic()
    stored = await audio_manager.save_upload(upload)
    agent_id = generate_agent_id(name)
    logger.info("Creating agent %s (name=%s, sample=%s)", agent_id, name, stored.original_name)

    try:
        clone = await voice_client.create_voice_clone(name, stored.path, description)
        agent = Agent(
            id=agent_id,
            name=name,
            description=description or "",
            voice_id=clone.voice_id,
            settings=normalize_voice_settings(settings).to_dict(),
            file_path=str(stored.path),
            file_size=stored.size,
        )
        db.add(agent)
        await db.flush()
    except Exception:
        await audio_manager.delete_file(stored.path)
        logger.error("Agent creation failed for %s after %dms", name, int((time.monotonic() - start) * 1000))
        raise

    logger.info("Agent %s created in %dms (voice_id=%s)", agent_id, int((time.monotonic() - start) * 1000), agent.voice_id)
    return agent


async def get_agent(db: AsyncSession, agent_id: str) -> Agent:
    _check_agent_id(agent_id)
    agent = await db.get(Agent, agent_id)
    if agent is None:
        raise NotFoundError("Agent not found")
    return agent


async def list_agents(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    order: str = "desc",
) -> dict:
    """One page of agents plus pagination metadata."""
    column = SORT_COLUMNS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Invalid sort field. Allowed: {', '.join(SORT_COLUMNS)}")
    if order not in ("asc", "desc"):
        raise BadRequestError("Invalid sort order. Allowed: asc, desc")

    total = (await db.execute(select(func.count(Agent.id)))).scalar_one()
    result = await db.execute(
        select(Agent)
        .order_by(column.asc() if order == "asc" else column.desc(), Agent.id.asc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    agents = list(result.scalars().all())
    total_pages = (total + limit - 1) // limit

    return {
        "agents": agents,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


async def update_agent(
    db: AsyncSession,
    agent_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    settings: dict[str, Any] | None = None,
) -> Agent:
    """Partial update; ``settings`` is merged over the stored settings."""
    agent = await get_agent(db, agent_id)

    if name is not None:
        agent.name = name
    if description is not None:
        agent.description = description
    if settings is not None:
        agent.settings = merge_voice_settings(agent.settings, settings).to_dict()
    agent.updated_at = datetime.now(timezone.utc)

    await db.flush()
    logger.info("Agent %s updated", agent_id)
    return agent


async def delete_agent(
    db: AsyncSession,
    voice_client: ElevenLabsClient,
    audio_manager: AudioManager,
    agent_id: str,
) -> None:
    """Delete the provider voice, the row (generations cascade) and the stored sample."""
    agent = await get_agent(db, agent_id)

    if agent.voice_id:
        try:
            await voice_client.delete_voice(agent.voice_id)
        except ProviderError as e:
            if e.status_code != 404:
                raise
            logger.warning("Voice %s already gone at provider, removing agent %s", agent.voice_id, agent_id)

    file_path = agent.file_path
    await db.delete(agent)
    await db.flush()
    await audio_manager.delete_file(file_path)
    logger.info("Agent %s deleted", agent_id)


async def get_agent_stats(db: AsyncSession) -> dict:
    since = datetime.now(timezone.utc) - timedelta(hours=24)
    row = (
        await db.execute(
            select(
                func.count(Agent.id).label("total_agents"),
                func.count(case((Agent.created_at > since, 1))).label("created_today"),
                func.avg(Agent.file_size).label("avg_file_size"),
            )
        )
    ).one()
    return {
        "total_agents": row.total_agents,
        "created_today": row.created_today,
        "avg_file_size": int(row.avg_file_size or 0),
    }


async def record_usage(
    db: AsyncSession,
    operation: str,
    *,
    agent_id: str | None = None,
    duration_ms: int | None = None,
    file_size: int | None = None,
    status: str = "success",
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> UsageLog:
    entry = UsageLog(
        agent_id=agent_id,
        operation=operation,
        duration_ms=duration_ms,
        file_size=file_size,
        status=status,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500] or None,
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_db_stats(db: AsyncSession) -> dict:
    since = datetime.now(timezone.utc) - timedelta(hours=24)
    agent_count = (await db.execute(select(func.count(Agent.id)))).scalar_one()
    generation_count = (await db.execute(select(func.count(Generation.id)))).scalar_one()
    usage_count = (
        await db.execute(select(func.count(UsageLog.id)).where(UsageLog.created_at > since))
    ).scalar_one()
    error_count = (
        await db.execute(
            select(func.count(UsageLog.id)).where(UsageLog.created_at > since, UsageLog.status == "error")
        )
    ).scalar_one()
    return {
        "agent_count": agent_count,
        "generation_count": generation_count,
        "usage_count_24h": usage_count,
        "error_count_24h": error_count,
    }
