"""Health endpoints (no API key): liveness, dependency checks, readiness."""

import logging
import os
import platform
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from voice_gateway import __version__
from voice_gateway.core.dependencies import get_audio_manager, get_voice_client
from voice_gateway.db.database import db_health_check, get_db
from voice_gateway.gateway.client import ElevenLabsClient
from voice_gateway.services.agent_service import get_db_stats
from voice_gateway.services.audio_manager import AudioManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_STARTED_AT = time.monotonic()


def _uptime() -> int:
    return int(time.monotonic() - _STARTED_AT)


def _system_info() -> dict:
    info = {
        "platform": platform.system().lower(),
        "arch": platform.machine(),
        "python": platform.python_version(),
        "cpus": os.cpu_count(),
    }
    if hasattr(os, "getloadavg"):
        info["load_average"] = [round(load, 2) for load in os.getloadavg()]
    return info


@router.get("")
async def health():
    return {
        "status": "healthy",
        "version": __version__,
        "uptime": _uptime(),
        "system": _system_info(),
    }


@router.get("/detailed")
async def health_detailed(
    db: AsyncSession = Depends(get_db),
    voice_client: ElevenLabsClient = Depends(get_voice_client),
    audio_manager: AudioManager = Depends(get_audio_manager),
):
    checks: dict[str, dict] = {}

    try:
        checks["database"] = {"status": "healthy", "stats": await get_db_stats(db)}
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        checks["database"] = {"status": "unhealthy", "error": str(e)}

    checks["voice_processor"] = {"status": "healthy", "queue": voice_client.queue_status().to_dict()}

    try:
        files = audio_manager.get_file_stats()
    except OSError as e:
        checks["audio_manager"] = {"status": "unhealthy", "error": str(e)}
    else:
        missing = [name for name, stats in files.items() if not stats["exists"]]
        checks["audio_manager"] = {
            "status": "unhealthy" if missing else "healthy",
            "files": files,
        }

    healthy = sum(1 for check in checks.values() if check["status"] == "healthy")
    return {
        "status": "healthy" if healthy == len(checks) else "degraded",
        "version": __version__,
        "checks": checks,
        "summary": {"total": len(checks), "healthy": healthy, "unhealthy": len(checks) - healthy},
    }


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_db)):
    if not await db_health_check(db):
        return JSONResponse(status_code=503, content={"ready": False, "error": "database unavailable"})
    return {"ready": True}


@router.get("/metrics")
async def health_metrics(
    db: AsyncSession = Depends(get_db),
    voice_client: ElevenLabsClient = Depends(get_voice_client),
    audio_manager: AudioManager = Depends(get_audio_manager),
):
    return {
        "uptime": _uptime(),
        "system": _system_info(),
        "queue": voice_client.queue_status().to_dict(),
        "files": audio_manager.get_file_stats(),
        "database": await get_db_stats(db),
    }
