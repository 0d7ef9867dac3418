"""Audio file management: voice-sample uploads and generated speech on disk.

Uploads are streamed into the temp directory (bounded by the size limit),
validated, then moved into the uploads directory. Generated audio is
written straight into the uploads directory, which is served at /uploads.
Blocking file I/O runs in a worker thread.
"""

import asyncio
import logging
import os
import secrets
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from voice_gateway.core.exceptions import PayloadTooLargeError
from voice_gateway.services.validators import (
    audio_extension,
    sanitize_filename,
    validate_audio_filename,
    validate_audio_size,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass
class StoredAudio:
    filename: str
    path: Path
    size: int
    original_name: str = ""


class AudioManager:
    def __init__(
        self,
        uploads_dir: str | Path,
        temp_dir: str | Path,
        max_file_size: int = 50 * 1024 * 1024,
        min_file_size: int = 1024,
    ):
        self.uploads_dir = Path(uploads_dir).resolve()
        self.temp_dir = Path(temp_dir).resolve()
        self.max_file_size = max_file_size
        self.min_file_size = min_file_size

    def initialize_directories(self) -> None:
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Audio directories initialized: uploads=%s temp=%s", self.uploads_dir, self.temp_dir)

    def generate_unique_filename(self, original_name: str) -> str:
        ext = audio_extension(original_name)
        stem = sanitize_filename(Path(original_name).stem) or "audio"
        return f"{int(time.time() * 1000)}-{secrets.token_hex(16)}-{stem}{ext}"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_upload(self, upload: UploadFile) -> StoredAudio:
        """Persist an uploaded voice sample into the uploads directory."""
        original_name = upload.filename or ""
        validate_audio_filename(original_name)

        filename = self.generate_unique_filename(original_name)
        temp_path = self.temp_dir / filename
        start = time.monotonic()

        try:
            size = await self._stream_to_temp(upload, temp_path)
            validate_audio_size(size, self.max_file_size, self.min_file_size)
            final_path = await asyncio.to_thread(self._move_to_uploads, temp_path, filename)
        except Exception:
            await self.delete_file(temp_path)
            logger.warning("Audio upload rejected: %s", original_name)
            raise

        logger.info(
            "Audio upload stored in %dms: %s (%d bytes) -> %s",
            int((time.monotonic() - start) * 1000),
            original_name,
            size,
            final_path.name,
        )
        return StoredAudio(filename=filename, path=final_path, size=size, original_name=original_name)

    async def _stream_to_temp(self, upload: UploadFile, temp_path: Path) -> int:
        size = 0
        with open(temp_path, "wb") as out:
            while chunk := await upload.read(_CHUNK_SIZE):
                size += len(chunk)
                if size > self.max_file_size:
                    raise PayloadTooLargeError(
                        f"File too large. Max size: {round(self.max_file_size / 1024 / 1024)}MB"
                    )
                await asyncio.to_thread(out.write, chunk)
        return size

    def _move_to_uploads(self, temp_path: Path, filename: str) -> Path:
        final_path = self.uploads_dir / filename
        shutil.move(str(temp_path), final_path)
        return final_path

    async def save_generated_audio(self, audio: bytes, filename: str) -> StoredAudio:
        path = self.uploads_dir / sanitize_filename(filename)
        await asyncio.to_thread(path.write_bytes, audio)
        logger.info("Generated audio saved: %s (%d bytes)", path.name, len(audio))
        return StoredAudio(filename=path.name, path=path, size=len(audio))

    async def delete_file(self, path: str | Path | None) -> bool:
        if not path:
            return False
        try:
            await asyncio.to_thread(os.unlink, path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Failed to delete file %s: %s", path, e)
            return False
        logger.debug("File deleted: %s", path)
        return True

    # ------------------------------------------------------------------
    # Maintenance / stats
    # ------------------------------------------------------------------

    def cleanup_old_files(self, max_age_hours: float = 24) -> int:
        """Remove temp files older than ``max_age_hours``. Returns the count removed."""
        if not self.temp_dir.exists():
            return 0

        cutoff = time.time() - max_age_hours * 3600
        cleaned = 0
        for entry in self.temp_dir.iterdir():
            if entry.is_file() and entry.stat().st_mtime < cutoff:
                entry.unlink(missing_ok=True)
                cleaned += 1

        logger.info("Temp files cleanup completed: %d removed (max age %sh)", cleaned, max_age_hours)
        return cleaned

    def get_file_stats(self) -> dict:
        return {
            "uploads": self._dir_stats(self.uploads_dir),
            "temp": self._dir_stats(self.temp_dir),
        }

    @staticmethod
    def _dir_stats(directory: Path) -> dict:
        if not directory.exists():
            return {"count": 0, "total_size": 0, "exists": False}
        files = [f for f in directory.iterdir() if f.is_file()]
        return {
            "count": len(files),
            "total_size": sum(f.stat().st_size for f in files),
            "exists": True,
        }
