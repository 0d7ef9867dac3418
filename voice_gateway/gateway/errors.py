"""Provider error translator: HTTP failures from ElevenLabs → domain errors.

Stateless: a fixed status → message table. Failures without a captured
status (timeouts, connection errors) use the generic branch with the raw
error message.
"""

from __future__ import annotations

import httpx

PROVIDER_NAME = "ElevenLabs"


class ProviderError(Exception):
    """Raised when the voice provider rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None, detail: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail

    @property
    def http_status(self) -> int:
        """Status returned to our own API clients."""
        if self.status_code in (422, 429):
            return self.status_code
        return 502


def provider_error_message(status: int | None, detail: str, provider: str = PROVIDER_NAME) -> str:
    messages = {
        401: f"Invalid {provider} API key",
        402: f"{provider} quota exceeded",
        422: f"Invalid request: {detail}",
        429: f"{provider} rate limit exceeded",
        500: f"{provider} server error",
    }
    return messages.get(status, f"{provider} API error: {detail}")


def _response_detail(response: httpx.Response) -> str:
    """Pull the provider's explanation out of an error response body."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()

    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, dict):
            return str(detail.get("message") or detail.get("status") or detail)
        if isinstance(detail, list):
            return "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)
        if detail:
            return str(detail)
    return response.text.strip()


def translate_provider_error(exc: BaseException, provider: str = PROVIDER_NAME) -> ProviderError:
    """Map any failure from a provider call to a ProviderError."""
    if isinstance(exc, ProviderError):
        return exc

    status: int | None = None
    detail = str(exc) or type(exc).__name__

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        detail = _response_detail(exc.response) or detail

    return ProviderError(provider_error_message(status, detail, provider), status_code=status, detail=detail)
