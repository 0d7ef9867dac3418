from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from voice_gateway.core.config import settings as app_settings
from voice_gateway.services.validators import AGENT_ID_PATTERN, validate_tts_text


class VoiceSettingsIn(BaseModel):
    """Caller-supplied voice settings; omitted fields fall back to agent/baseline values."""

    model_config = ConfigDict(extra="forbid")

    stability: float | None = Field(None, ge=0, le=1)
    similarity_boost: float | None = Field(None, ge=0, le=1)
    style: float | None = Field(None, ge=0, le=1)
    speaker_boost: bool | None = None

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class VoiceSettingsOut(BaseModel):
    stability: float
    similarity_boost: float
    style: float
    speaker_boost: bool


class SynthesizeRequest(BaseModel):
    text: str = Field(min_length=1)
    agent_id: str = Field(pattern=AGENT_ID_PATTERN)
    settings: VoiceSettingsIn | None = None

    @field_validator("text")
    @classmethod
    def check_text(cls, v: str) -> str:
        v = validate_tts_text(v)
        if not v:
            raise ValueError("Text is required")
        if len(v) > app_settings.max_text_length:
            raise ValueError(f"Text too long. Maximum {app_settings.max_text_length} characters")
        return v


class SynthesizeResponse(BaseModel):
    generation_id: str
    agent_id: str
    audio_url: str
    audio_size: int
    duration_ms: int
    settings: VoiceSettingsOut


class VoicesResponse(BaseModel):
    voices: list[dict[str, Any]]
    count: int


class QueueStatusResponse(BaseModel):
    active_count: int
    queued_count: int
    max_concurrent: int
    completed: int
    failed: int
    files: dict[str, Any] | None = None


class PresetsResponse(BaseModel):
    presets: dict[str, VoiceSettingsOut]
    default: VoiceSettingsOut
