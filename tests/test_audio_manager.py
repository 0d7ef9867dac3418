import io
import os
import re
import time

import pytest
from fastapi import UploadFile

from voice_gateway.core.exceptions import BadRequestError, PayloadTooLargeError
from voice_gateway.services.audio_manager import AudioManager


@pytest.fixture
def manager(tmp_path) -> AudioManager:
    m = AudioManager(tmp_path / "uploads", tmp_path / "temp", max_file_size=8 * 1024, min_file_size=1024)
    m.initialize_directories()
    return m


def _upload(filename: str, size: int) -> UploadFile:
    return UploadFile(file=io.BytesIO(b"\x01" * size), filename=filename)


def test_unique_filename_format(manager):
    name = manager.generate_unique_filename("my sample.mp3")
    assert re.fullmatch(r"\d{13}-[0-9a-f]{32}-my_sample\.mp3", name)
    assert name != manager.generate_unique_filename("my sample.mp3")


async def test_save_upload_moves_into_uploads(manager):
    stored = await manager.save_upload(_upload("sample.wav", 4096))

    assert stored.size == 4096
    assert stored.original_name == "sample.wav"
    assert stored.path.parent == manager.uploads_dir
    assert stored.path.read_bytes() == b"\x01" * 4096
    assert list(manager.temp_dir.iterdir()) == []


async def test_oversized_upload_is_rejected_and_cleaned(manager):
    with pytest.raises(PayloadTooLargeError):
        await manager.save_upload(_upload("big.mp3", 9 * 1024))

    assert list(manager.temp_dir.iterdir()) == []
    assert list(manager.uploads_dir.iterdir()) == []


async def test_tiny_upload_is_rejected_and_cleaned(manager):
    with pytest.raises(BadRequestError, match="too small"):
        await manager.save_upload(_upload("tiny.mp3", 10))

    assert list(manager.temp_dir.iterdir()) == []


async def test_unsupported_upload_never_touches_disk(manager):
    with pytest.raises(BadRequestError):
        await manager.save_upload(_upload("notes.txt", 4096))

    assert list(manager.temp_dir.iterdir()) == []


async def test_save_generated_audio(manager):
    stored = await manager.save_generated_audio(b"ID3data", "tts_agent_x_1.mp3")
    assert stored.filename == "tts_agent_x_1.mp3"
    assert (manager.uploads_dir / "tts_agent_x_1.mp3").read_bytes() == b"ID3data"


async def test_delete_file(manager):
    stored = await manager.save_generated_audio(b"ID3data", "gone.mp3")
    assert await manager.delete_file(stored.path) is True
    assert not stored.path.exists()
    assert await manager.delete_file(stored.path) is False
    assert await manager.delete_file(None) is False


def test_cleanup_old_files(manager):
    old = manager.temp_dir / "old.mp3"
    fresh = manager.temp_dir / "fresh.mp3"
    old.write_bytes(b"x")
    fresh.write_bytes(b"x")
    two_days_ago = time.time() - 48 * 3600
    os.utime(old, (two_days_ago, two_days_ago))

    assert manager.cleanup_old_files(max_age_hours=24) == 1
    assert not old.exists()
    assert fresh.exists()


def test_file_stats(manager):
    (manager.uploads_dir / "a.mp3").write_bytes(b"12345")
    stats = manager.get_file_stats()
    assert stats["uploads"] == {"count": 1, "total_size": 5, "exists": True}
    assert stats["temp"]["count"] == 0


def test_file_stats_missing_directories(tmp_path):
    stats = AudioManager(tmp_path / "nope", tmp_path / "nada").get_file_stats()
    assert stats["uploads"]["exists"] is False
    assert stats["temp"]["exists"] is False
