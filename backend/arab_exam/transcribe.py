"""
Arabic speech transcription with Google Cloud Speech-to-Text.

Credentials come from the usual application default credentials; the feature is
switched on with GOOGLE_SPEECH_ENABLED. Every failure path returns an empty
transcript so grading can still run (and score the answer as empty).
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from google.api_core.exceptions import GoogleAPIError
from google.cloud import speech_v1p1beta1 as speech

from .settings import settings

logger = logging.getLogger(__name__)


def _recognition_config(path: str) -> speech.RecognitionConfig:
	ext = os.path.splitext(path)[1].lower()
	kwargs = {
		"language_code": settings.speech_language_code,
		"enable_automatic_punctuation": True,
		"model": "default",
	}
	if ext == ".webm":
		kwargs["encoding"] = speech.RecognitionConfig.AudioEncoding.WEBM_OPUS
		kwargs["sample_rate_hertz"] = 48000
	elif ext == ".ogg":
		kwargs["encoding"] = speech.RecognitionConfig.AudioEncoding.OGG_OPUS
		kwargs["sample_rate_hertz"] = 48000
	elif ext == ".mp3":
		kwargs["encoding"] = speech.RecognitionConfig.AudioEncoding.MP3
	# wav and flac carry their encoding in the header
	return speech.RecognitionConfig(**kwargs)


def _recognize(path: str) -> str:
	with open(path, "rb") as fh:
		content = fh.read()
	if not content:
		return ""
	client = speech.SpeechClient()
	audio = speech.RecognitionAudio(content=content)
	response = client.recognize(config=_recognition_config(path), audio=audio)
	parts = [result.alternatives[0].transcript for result in response.results if result.alternatives]
	return " ".join(p.strip() for p in parts if p.strip())


async def transcribe_audio(path: Optional[str]) -> str:
	if not path or not settings.google_speech_enabled:
		return ""
	if not os.path.isfile(path):
		logger.warning("Audio file not found for transcription: %s", path)
		return ""
	try:
		return await run_in_threadpool(_recognize, path)
	except GoogleAPIError as e:
		logger.warning("Speech API error for %s: %s", path, e)
	except Exception as e:
		logger.warning("Transcription failed for %s: %s", path, e)
	return ""
