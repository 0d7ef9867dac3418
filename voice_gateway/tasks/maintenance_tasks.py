"""Celery tasks for file and record maintenance."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voice_gateway.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run an async coroutine from sync Celery task context.

    Creates a fresh event loop each time; the module-level engine may be
    bound to a different loop.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _make_session_factory() -> async_sessionmaker[AsyncSession]:
    """Fresh engine + session factory for the worker's event loop."""
    from voice_gateway.core.config import settings
    from voice_gateway.db.database import make_engine

    return async_sessionmaker(make_engine(settings.database_url), class_=AsyncSession, expire_on_commit=False)


async def purge_old_records(session_factory: async_sessionmaker[AsyncSession], retention_days: int) -> dict:
    """Delete usage logs and completed generations older than ``retention_days``."""
    from voice_gateway.models.generation import Generation
    from voice_gateway.models.usage_log import UsageLog

    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    async with session_factory() as db:
        usage = await db.execute(delete(UsageLog).where(UsageLog.created_at < cutoff))
        generations = await db.execute(
            delete(Generation).where(Generation.created_at < cutoff, Generation.status == "completed")
        )
        await db.commit()
    return {"usage_logs": usage.rowcount, "generations": generations.rowcount}


@celery_app.task(name="cleanup_temp_files")
def cleanup_temp_files_task():
    """Remove temp upload files older than TEMP_FILE_MAX_AGE_HOURS. Runs hourly."""
    from voice_gateway.core.config import settings
    from voice_gateway.services.audio_manager import AudioManager

    max_age = settings.temp_file_max_age_hours
    try:
        manager = AudioManager(settings.uploads_dir, settings.temp_dir)
        removed = manager.cleanup_old_files(max_age)
        return {"status": "ok", "removed": removed, "max_age_hours": max_age}
    except Exception as exc:
        logger.error("Temp file cleanup failed: %s", exc)
        return {"status": "error", "error": str(exc)}


@celery_app.task(name="purge_old_records")
def purge_old_records_task():
    """Delete usage logs and completed generations past RETENTION_DAYS. Runs daily."""
    from voice_gateway.core.config import settings

    days = settings.retention_days
    logger.info("Purging records older than %d days...", days)
    try:
        deleted = _run_async(purge_old_records(_make_session_factory(), days))
        logger.info("Record purge completed: %s", deleted)
        return {"status": "ok", "retention_days": days, "deleted": deleted}
    except Exception as exc:
        logger.error("Failed to purge old records: %s", exc)
        return {"status": "error", "error": str(exc)}
