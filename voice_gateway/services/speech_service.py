"""Speech synthesis for stored agents.

Agent defaults are layered under the request overrides, the provider call
goes through the bounded client, the audio lands in the uploads directory
and every attempt is recorded as a Generation row.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from voice_gateway.gateway.client import ElevenLabsClient
from voice_gateway.gateway.normalizer import merge_voice_settings
from voice_gateway.gateway.types import VoiceSettings
from voice_gateway.models.generation import Generation
from voice_gateway.services.agent_service import get_agent
from voice_gateway.services.audio_manager import AudioManager

logger = logging.getLogger(__name__)


@dataclass
class SynthesisOutcome:
    generation_id: str
    agent_id: str
    audio_url: str
    audio_size: int
    duration_ms: int
    settings: VoiceSettings


async def synthesize_for_agent(
    db: AsyncSession,
    voice_client: ElevenLabsClient,
    audio_manager: AudioManager,
    *,
    agent_id: str,
    text: str,
    settings: dict[str, Any] | None = None,
) -> SynthesisOutcome:
    agent = await get_agent(db, agent_id)
    voice_settings = merge_voice_settings(agent.settings, settings)

    generation = Generation(agent_id=agent.id, text=text, settings=voice_settings.to_dict(), status="pending")
    db.add(generation)
    await db.flush()

    start = time.monotonic()
    try:
        speech = await voice_client.generate_speech(text, agent.voice_id, voice_settings)
        stored = await audio_manager.save_generated_audio(
            speech.audio, f"tts_{agent.id}_{int(time.time() * 1000)}_{secrets.token_hex(4)}.mp3"
        )
    except Exception as e:
        generation.status = "failed"
        generation.error_message = str(e)
        generation.duration_ms = int((time.monotonic() - start) * 1000)
        # keep the failed attempt even though the request errors out
        await db.commit()
        raise

    generation.status = "completed"
    generation.audio_path = str(stored.path)
    generation.audio_size = stored.size
    generation.duration_ms = speech.duration_ms
    generation.completed_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info("Speech synthesized for agent %s: %d bytes in %dms", agent.id, stored.size, speech.duration_ms)
    return SynthesisOutcome(
        generation_id=generation.id,
        agent_id=agent.id,
        audio_url=f"/uploads/{stored.filename}",
        audio_size=stored.size,
        duration_ms=speech.duration_ms,
        settings=speech.settings,
    )
