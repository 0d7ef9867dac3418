"""Rate limiting configuration using slowapi."""

import logging

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import Response

from voice_gateway.core.config import settings

logger = logging.getLogger(__name__)

# Keyed by client address
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(
        "Rate limit exceeded: %s %s from %s (%s)",
        request.method,
        request.url.path,
        get_remote_address(request),
        exc.detail,
    )
    return _rate_limit_exceeded_handler(request, exc)
