import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded

from voice_gateway import __version__
from voice_gateway.api.v1.health import router as health_router
from voice_gateway.api.v1.router import api_v1_router
from voice_gateway.core.config import settings, validate_settings_for_production
from voice_gateway.core.logging import setup_logging
from voice_gateway.core.metrics import PrometheusMiddleware, bind_queue_gauges, metrics_response
from voice_gateway.core.middleware import RequestLoggingMiddleware
from voice_gateway.core.rate_limit import limiter, rate_limit_exceeded_handler
from voice_gateway.core.sentry import init_sentry
from voice_gateway.db.database import engine, init_db
from voice_gateway.gateway.client import ElevenLabsClient
from voice_gateway.gateway.dispatcher import RequestDispatcher
from voice_gateway.gateway.errors import ProviderError
from voice_gateway.services.audio_manager import AudioManager

# Configure logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


def build_audio_manager() -> AudioManager:
    return AudioManager(
        uploads_dir=settings.uploads_dir,
        temp_dir=settings.temp_dir,
        max_file_size=settings.max_audio_size,
        min_file_size=settings.min_audio_size,
    )


def build_voice_client() -> ElevenLabsClient:
    dispatcher = RequestDispatcher(
        max_concurrent=settings.elevenlabs_max_concurrent,
        dispatch_delay=settings.elevenlabs_dispatch_delay,
        name="elevenlabs",
    )
    return ElevenLabsClient(
        api_key=settings.elevenlabs_api_key,
        dispatcher=dispatcher,
        base_url=settings.elevenlabs_base_url,
        timeout=settings.elevenlabs_timeout,
        model_id=settings.elevenlabs_model_id,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    init_sentry()
    logger.info("Starting Voice Gateway %s (env=%s)...", __version__, settings.app_env)

    app.state.audio_manager.initialize_directories()
    await init_db()

    voice_client = build_voice_client()
    app.state.voice_client = voice_client
    bind_queue_gauges(
        active=lambda: voice_client.dispatcher.status().active_count,
        pending=lambda: voice_client.dispatcher.status().queued_count,
    )
    logger.info(
        "Provider dispatcher ready (max_concurrent=%d, dispatch_delay=%.2fs)",
        settings.elevenlabs_max_concurrent,
        settings.elevenlabs_dispatch_delay,
    )

    yield

    # Shutdown: let in-flight provider calls settle
    await voice_client.dispatcher.join()
    await engine.dispose()
    logger.info("Voice Gateway shut down")


app = FastAPI(
    title="Voice Gateway",
    description="ElevenLabs voice cloning and text-to-speech gateway",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)
app.state.audio_manager = build_audio_manager()


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": f"{type(exc).__name__}: {exc}"})


@app.exception_handler(ProviderError)
async def _provider_error_handler(request: Request, exc: ProviderError):
    logger.warning("Provider error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "provider_status": exc.status_code},
    )


# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Request logging + metrics middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

# CORS: parse allowed_origins from settings (comma-separated)
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials="*" not in _origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Generated audio
app.mount("/uploads", StaticFiles(directory=settings.uploads_dir, check_dir=False), name="uploads")

# Routes
app.include_router(api_v1_router)
app.include_router(health_router)


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "voice_gateway.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug and settings.app_env == "development",
    )
