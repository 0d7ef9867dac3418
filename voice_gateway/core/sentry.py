"""Sentry error reporting for the gateway and its Celery workers.

Enabled only when SENTRY_DSN is set. Events carry the request id from the
logging context, and provider failures are tagged with the upstream status
so ElevenLabs outages can be told apart from our own bugs.
"""

import logging

from voice_gateway import __version__
from voice_gateway.core.config import settings
from voice_gateway.core.logging import request_id_var
from voice_gateway.gateway.errors import ProviderError

logger = logging.getLogger(__name__)


def tag_event(event: dict, hint: dict) -> dict:
    """before_send hook: attach request id and provider status tags."""
    tags = event.setdefault("tags", {})
    request_id = request_id_var.get()
    if request_id:
        tags["request_id"] = request_id

    exc_info = hint.get("exc_info")
    exc = exc_info[1] if exc_info else None
    if isinstance(exc, ProviderError):
        tags["provider"] = "elevenlabs"
        tags["provider_status"] = str(exc.status_code or "none")
    return event


def init_sentry() -> bool:
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping")
        return False

    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        release=f"voice-gateway@{__version__}",
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=tag_event,
        integrations=[FastApiIntegration(transaction_style="endpoint"), SqlalchemyIntegration(), CeleryIntegration()],
    )
    logger.info("Sentry initialized for voice-gateway %s (env=%s)", __version__, settings.app_env)
    return True
