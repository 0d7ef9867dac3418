import shutil
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from voice_gateway.core.config import settings

# Override settings for tests (before the app and engine are imported)
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="voice-gateway-tests-"))
settings.app_env = "test"
settings.database_url = f"sqlite+aiosqlite:///{_TEST_ROOT / 'test.db'}"
settings.uploads_dir = str(_TEST_ROOT / "uploads")
settings.temp_dir = str(_TEST_ROOT / "temp")
settings.elevenlabs_api_key = "test-elevenlabs-key"
settings.rate_limit_enabled = False
settings.require_api_key = False

from voice_gateway.db.base import Base  # noqa: E402
from voice_gateway.db.database import enable_sqlite_foreign_keys, get_db  # noqa: E402
from voice_gateway.gateway.dispatcher import RequestDispatcher  # noqa: E402
from voice_gateway.gateway.errors import ProviderError  # noqa: E402
from voice_gateway.gateway.normalizer import normalize_voice_settings  # noqa: E402
from voice_gateway.gateway.types import SpeechResult, VoiceCloneResult  # noqa: E402
from voice_gateway.main import app  # noqa: E402
from voice_gateway.models.agent import Agent  # noqa: E402
from voice_gateway.services.audio_manager import AudioManager  # noqa: E402

# NullPool: every session gets its own aiosqlite connection
test_engine = create_async_engine(settings.database_url, echo=False, poolclass=NullPool)
enable_sqlite_foreign_keys(test_engine)
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

FAKE_MP3 = b"ID3" + b"\x00" * 2048


class FakeVoiceClient:
    """Stands in for ElevenLabsClient; calls still go through a real dispatcher."""

    def __init__(self):
        self.dispatcher = RequestDispatcher(max_concurrent=2, dispatch_delay=0, name="fake")
        self.clones: list[dict] = []
        self.deleted: list[str] = []
        self.speech_calls: list[dict] = []
        self.error: ProviderError | None = None
        self.audio = FAKE_MP3

    async def _call(self, result):
        async def execute():
            if self.error is not None:
                raise self.error
            return result

        return await self.dispatcher.submit(execute)

    async def list_voices(self) -> list[dict]:
        return await self._call([{"voice_id": "voice-1", "name": "Rachel"}, {"voice_id": "voice-2", "name": "Adam"}])

    async def create_voice_clone(self, name, audio_path, description=None) -> VoiceCloneResult:
        self.clones.append({"name": name, "audio_path": Path(audio_path), "description": description})
        return await self._call(VoiceCloneResult(voice_id=f"voice-{len(self.clones)}", name=name, duration_ms=5))

    async def generate_speech(self, text, voice_id, settings=None) -> SpeechResult:
        voice_settings = normalize_voice_settings(settings)
        self.speech_calls.append({"text": text, "voice_id": voice_id, "settings": voice_settings})
        return await self._call(SpeechResult(audio=self.audio, settings=voice_settings, duration_ms=12))

    async def delete_voice(self, voice_id) -> None:
        self.deleted.append(voice_id)
        await self._call(None)

    async def get_user_info(self) -> dict:
        return await self._call({"subscription": {"tier": "free", "character_count": 120, "character_limit": 10000}})

    def queue_status(self):
        return self.dispatcher.status()


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return test_session_factory


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def audio_manager() -> AudioManager:
    manager = AudioManager(settings.uploads_dir, settings.temp_dir, max_file_size=64 * 1024, min_file_size=1024)
    manager.initialize_directories()
    app.state.audio_manager = manager
    yield manager
    shutil.rmtree(manager.uploads_dir, ignore_errors=True)
    shutil.rmtree(manager.temp_dir, ignore_errors=True)


@pytest.fixture
def voice_client() -> FakeVoiceClient:
    fake = FakeVoiceClient()
    app.state.voice_client = fake
    return fake


@pytest.fixture
async def client(audio_manager, voice_client) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def agent(db: AsyncSession) -> Agent:
    """A stored agent with custom default settings."""
    record = Agent(
        id="agent_narrator_0a1b2c3d",
        name="Narrator",
        description="Calm narration voice",
        voice_id="voice-narrator",
        settings={"stability": 0.8, "similarity_boost": 0.6, "style": 0.1, "speaker_boost": True},
        file_path=None,
        file_size=4096,
    )
    db.add(record)
    await db.commit()
    return record
