from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from voice_gateway.schemas.voice import VoiceSettingsIn, VoiceSettingsOut
from voice_gateway.services.validators import AGENT_NAME_PATTERN


class AgentCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50, pattern=AGENT_NAME_PATTERN)
    description: str = Field("", max_length=500)
    settings: VoiceSettingsIn | None = None

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class AgentUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=2, max_length=50, pattern=AGENT_NAME_PATTERN)
    description: str | None = Field(None, max_length=500)
    settings: VoiceSettingsIn | None = None


class AgentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    voice_id: str | None
    settings: VoiceSettingsOut
    file_size: int | None = None
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class AgentListResponse(BaseModel):
    agents: list[AgentResponse]
    pagination: Pagination


class AgentStats(BaseModel):
    total_agents: int
    created_today: int
    avg_file_size: int
