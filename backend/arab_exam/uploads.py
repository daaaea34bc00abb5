from __future__ import annotations
import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, UploadFile

from .settings import settings

logger = logging.getLogger(__name__)

ALLOWED_AUDIO_EXTENSIONS = {".webm", ".mp3", ".m4a", ".wav", ".mpga", ".mpeg", ".mp4", ".ogg", ".flac"}


def uploads_dir() -> Path:
	path = Path(settings.uploads_dir).resolve()
	path.mkdir(parents=True, exist_ok=True)
	return path


def audio_extension(file: UploadFile) -> str:
	ext = Path(file.filename or "").suffix.lower()
	content_type = file.content_type or ""
	if ext not in ALLOWED_AUDIO_EXTENSIONS and not content_type.startswith("audio/"):
		raise HTTPException(415, f"Unsupported file type: {content_type or ext}. Only audio files are accepted.")
	return ext if ext in ALLOWED_AUDIO_EXTENSIONS else ".webm"


async def save_audio(file: UploadFile, name: Optional[str] = None) -> Path:
	"""Validate and store an uploaded audio file, returning its path on disk.

	``name`` is the file stem; a random one is used when omitted.
	"""
	ext = audio_extension(file)
	content = await file.read()
	if len(content) > settings.max_audio_bytes:
		raise HTTPException(413, f"File too large. Max {settings.max_audio_bytes // (1024 * 1024)} MB.")
	path = uploads_dir() / f"{name or uuid.uuid4().hex}{ext}"
	path.write_bytes(content)
	logger.info("Stored audio %s (%d bytes)", path.name, len(content))
	return path


def public_url(path: Path) -> str:
	return f"/api/uploads/{path.name}"
