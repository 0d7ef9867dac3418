"""Prometheus metrics for the application."""

import time
from collections.abc import Callable

from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from voice_gateway import __version__

# --- Metrics ---

APP_INFO = Info("app", "Voice Gateway application info")
APP_INFO.info({"version": __version__, "name": "voice_gateway"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

PROVIDER_REQUESTS = Counter(
    "provider_requests_total",
    "Calls to the voice provider API",
    ["operation", "outcome"],
)

QUEUE_ACTIVE = Gauge(
    "provider_queue_active",
    "Provider calls currently in flight",
)

QUEUE_PENDING = Gauge(
    "provider_queue_pending",
    "Provider calls waiting for a free slot",
)


# --- Middleware ---

# Normalize dynamic path segments to reduce cardinality
_PATH_PREFIXES = ("/api/v1/agents/", "/uploads/")
_STATIC_SEGMENTS = {"stats"}


def _normalize_path(path: str) -> str:
    """Replace agent ids / file names in paths with {id} to avoid high cardinality."""
    for prefix in _PATH_PREFIXES:
        if path.startswith(prefix):
            rest = path[len(prefix) :]
            parts = rest.split("/", 1)
            if parts[0] and parts[0] not in _STATIC_SEGMENTS:
                tail = f"/{parts[1]}" if len(parts) > 1 else ""
                return f"{prefix}{{id}}{tail}"
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def bind_queue_gauges(active: Callable[[], float], pending: Callable[[], float]) -> None:
    """Read dispatcher counters lazily at scrape time."""
    QUEUE_ACTIVE.set_function(active)
    QUEUE_PENDING.set_function(pending)


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
