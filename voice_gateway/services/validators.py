"""Input validation for uploads, agent ids and synthesis text.

Pydantic schemas cover request shape and numeric ranges; the checks here
cover what schemas can't express cleanly (file names, sizes, content
patterns). Failures raise BadRequestError / PayloadTooLargeError.
"""

import logging
import re
from pathlib import PurePath

from voice_gateway.core.config import settings
from voice_gateway.core.exceptions import BadRequestError, PayloadTooLargeError

logger = logging.getLogger(__name__)

SUPPORTED_AUDIO_FORMATS = (".mp3", ".wav", ".m4a", ".flac", ".ogg")

AGENT_ID_PATTERN = r"^[a-zA-Z0-9_-]{3,50}$"
AGENT_NAME_PATTERN = r"^[a-zA-Z0-9\s._-]+$"

_AGENT_ID_RE = re.compile(AGENT_ID_PATTERN)
_FILENAME_RE = re.compile(r"^[a-zA-Z0-9._-]+$")

_FORBIDDEN_TEXT_PATTERNS = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
)


def audio_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def is_supported_audio(filename: str) -> bool:
    return audio_extension(filename) in SUPPORTED_AUDIO_FORMATS


def validate_audio_filename(filename: str | None) -> str:
    """Check name and extension of an uploaded sample. Returns the extension."""
    if not filename:
        raise BadRequestError("Audio file is required")

    errors: list[str] = []
    ext = audio_extension(filename)
    if ext not in SUPPORTED_AUDIO_FORMATS:
        errors.append(f"Unsupported format. Allowed: {', '.join(SUPPORTED_AUDIO_FORMATS)}")
    if not _FILENAME_RE.match(filename):
        errors.append("Invalid filename. Use only letters, numbers, dots, underscores, and hyphens")

    if errors:
        logger.warning("Audio file rejected: %s (%s)", filename, "; ".join(errors))
        raise BadRequestError(", ".join(errors))
    return ext


def validate_audio_size(
    size: int,
    max_size: int | None = None,
    min_size: int | None = None,
) -> None:
    max_size = settings.max_audio_size if max_size is None else max_size
    min_size = settings.min_audio_size if min_size is None else min_size

    if size > max_size:
        raise PayloadTooLargeError(f"File too large. Max size: {round(max_size / 1024 / 1024)}MB")
    if size < min_size:
        raise BadRequestError(f"File too small. Minimum size: {max(1, round(min_size / 1024))}KB")


def is_valid_agent_id(agent_id: str | None) -> bool:
    return bool(agent_id) and bool(_AGENT_ID_RE.match(agent_id))


def validate_tts_text(text: str) -> str:
    """Reject markup / script payloads. Returns the stripped text."""
    for pattern in _FORBIDDEN_TEXT_PATTERNS:
        if pattern.search(text):
            raise ValueError("Text contains forbidden content")
    return text.strip()


def sanitize_filename(filename: str) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9._-]", "_", filename)
    sanitized = re.sub(r"_{2,}", "_", sanitized)
    return sanitized[:100]
