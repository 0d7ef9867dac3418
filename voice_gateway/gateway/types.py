"""Core types and DTOs for the voice gateway layer."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

# Zero-argument async operation submitted to the dispatcher
ExecuteFn = Callable[[], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Dispatcher items
# ---------------------------------------------------------------------------


@dataclass
class QueuedTask:
    """A unit of provider work owned by the dispatcher until it settles.

    The future is the caller's handle: it is resolved with the result of
    ``execute`` or rejected with the exception it raised.
    """

    execute: ExecuteFn
    future: asyncio.Future
    task_id: str = field(default_factory=lambda: f"req-{uuid.uuid4().hex[:16]}")
    enqueued_at: float = field(default_factory=time.monotonic)
    started_at: float | None = None

    @property
    def wait_ms(self) -> int:
        """Time spent in the pending queue."""
        if self.started_at is None:
            return int((time.monotonic() - self.enqueued_at) * 1000)
        return int((self.started_at - self.enqueued_at) * 1000)


@dataclass(frozen=True)
class QueueStatus:
    """Point-in-time dispatcher snapshot."""

    active_count: int
    queued_count: int
    max_concurrent: int
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "active_count": self.active_count,
            "queued_count": self.queued_count,
            "max_concurrent": self.max_concurrent,
            "completed": self.completed,
            "failed": self.failed,
        }


# ---------------------------------------------------------------------------
# Voice settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoiceSettings:
    """Fully-populated, bounded voice settings."""

    stability: float = 0.5
    similarity_boost: float = 0.5
    style: float = 0.0
    speaker_boost: bool = True

    def to_dict(self) -> dict:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "speaker_boost": self.speaker_boost,
        }

    def to_provider_payload(self) -> dict:
        """ElevenLabs ``voice_settings`` wire format."""
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.speaker_boost,
        }


# ---------------------------------------------------------------------------
# Provider results
# ---------------------------------------------------------------------------


@dataclass
class VoiceCloneResult:
    voice_id: str
    name: str
    duration_ms: int = 0


@dataclass
class SpeechResult:
    audio: bytes
    settings: VoiceSettings
    duration_ms: int = 0
    content_type: str = "audio/mpeg"


# ---------------------------------------------------------------------------
# Provider config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderEndpoints:
    voices: str = "/voices"
    text_to_speech: str = "/text-to-speech"
    voice_clone: str = "/voices/add"
    voice_delete: str = "/voices"
    user: str = "/user"


DEFAULT_ENDPOINTS = ProviderEndpoints()
