from celery import Celery
from celery.schedules import crontab

from voice_gateway.core.config import settings

celery_app = Celery(
    "voice_gateway",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    "cleanup-temp-files": {
        "task": "cleanup_temp_files",
        "schedule": crontab(minute=0),  # hourly
    },
    "purge-old-records": {
        "task": "purge_old_records",
        "schedule": crontab(hour=3, minute=30),  # daily at 03:30
    },
}

celery_app.conf.include = [
    "voice_gateway.tasks.maintenance_tasks",
]
