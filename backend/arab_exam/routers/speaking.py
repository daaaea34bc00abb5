"""
Speaking Analysis
=================

Scores a single recorded Arabic (fus'ha) answer. The audio is stored,
transcribed with Google Cloud Speech-to-Text, and the transcript is graded
against five criteria (fluency, grammar, vocabulary, pronunciation, coherence;
0-1 each) with an overall score of 0-5.

Without an AI provider a rough score is returned from the difficulty
(easy 3, medium 2, hard 1) when the transcript is longer than 10 characters.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from ..access_control import record_speaking_usage, require_speaking_access
from ..ai_client import ai_generate_json, is_ai_available
from ..cefr_scoring import round_half_up
from ..db import get_db
from ..models import User
from ..transcribe import transcribe_audio
from ..uploads import public_url, save_audio

router = APIRouter(prefix="/speaking", tags=["speaking"])

logger = logging.getLogger(__name__)

RUBRIC_KEYS = ["fluency", "grammar", "vocabulary", "pronunciation", "coherence"]

FALLBACK_SCORES = {"easy": 3, "medium": 2, "hard": 1}

SPEAKING_SYSTEM_PROMPT = """You are an expert assessor of spoken Arabic (fus'ha).
A student answered a question in Arabic and you receive the transcript of the answer.

Criteria (each between 0 and 1):
- fluency: flow, pauses, repetitions
- grammar: grammatical accuracy
- vocabulary: range and correct use of words
- pronunciation: pronunciation quality (estimated from the transcript)
- coherence: consistency of ideas and relevance to the topic

score: 0-5 points (maxScore)

IMPORTANT: if the transcript is empty or very short (fewer than 5 words), score 0.
Return valid JSON only."""


class SpeakingScore(BaseModel):
	score: float = Field(ge=0, le=5)
	fluency: float = Field(ge=0, le=1)
	grammar: float = Field(ge=0, le=1)
	vocabulary: float = Field(ge=0, le=1)
	pronunciation: float = Field(ge=0, le=1)
	coherence: float = Field(ge=0, le=1)
	feedback: str


def _rubric(value: float) -> Dict[str, float]:
	return {key: value for key in RUBRIC_KEYS}


def fallback_score(difficulty: str, transcript: str) -> int:
	return FALLBACK_SCORES[difficulty] if len(transcript) > 10 else 0


def coerce_score(data: Dict[str, Any], max_score: float) -> Dict[str, Any]:
	try:
		s = SpeakingScore.model_validate(data)
	except ValidationError:
		logger.warning("Speaking score in unexpected format: %s", str(data)[:200])
		raw = data.get("score")
		score = 0.0
		if isinstance(raw, (int, float)) and not isinstance(raw, bool):
			score = min(max_score, max(0, raw))
		return {
			"score": round_half_up(score),
			"feedback": str(data.get("feedback") or "Error during grading"),
			"rubric": _rubric(0.5),
		}
	return {
		"score": round_half_up(s.score),
		"feedback": s.feedback,
		"rubric": {key: getattr(s, key) for key in RUBRIC_KEYS},
	}


def _build_user_prompt(difficulty: str, prompt: str, transcript: str, max_score: float) -> str:
	answer = transcript or "(empty - no answer given)"
	return (
		f"Difficulty: {difficulty}\n"
		f"Question (Arabic): {prompt}\n"
		f'Student answer transcript: "{answer}"\n'
		f"Maximum score: {max_score}\n\n"
		"Answer in this JSON format:\n"
		"{\n"
		f'  "score": number (0-{max_score}),\n'
		'  "fluency": number (0-1),\n'
		'  "grammar": number (0-1),\n'
		'  "vocabulary": number (0-1),\n'
		'  "pronunciation": number (0-1),\n'
		'  "coherence": number (0-1),\n'
		'  "feedback": "string (short analysis in Uzbek)"\n'
		"}"
	)


@router.post("/analyze")
async def analyze_speaking(
	questionId: str = Form(..., min_length=1),
	difficulty: Literal["easy", "medium", "hard"] = Form(...),
	prompt: str = Form(..., min_length=1),
	maxScore: float = Form(..., ge=1, le=10),
	audio: Optional[UploadFile] = File(default=None),
	user: User = Depends(require_speaking_access),
	db: Session = Depends(get_db),
):
	transcript = ""
	audio_url = ""
	if audio is not None and audio.filename:
		path = await save_audio(audio, name=f"speaking_{questionId}_{int(time.time() * 1000)}")
		audio_url = public_url(path)
		transcript = await transcribe_audio(str(path))

	if not is_ai_available():
		scored: Dict[str, Any] = {
			"score": fallback_score(difficulty, transcript),
			"feedback": "AI is not configured. An approximate score was given.",
			"rubric": _rubric(0.5),
		}
	else:
		try:
			data, _ = await ai_generate_json(
				[
					{"role": "system", "content": SPEAKING_SYSTEM_PROMPT},
					{"role": "user", "content": _build_user_prompt(difficulty, prompt, transcript, maxScore)},
				],
				max_tokens=500,
				temperature=0.3,
			)
			if data is None:
				raise RuntimeError("AI returned no answer")
			scored = coerce_score(data, maxScore)
		except Exception as err:
			logger.error("Speaking scoring failed: %s", err)
			scored = {"score": 0, "feedback": f"Error during grading: {err}", "rubric": _rubric(0)}

	record_speaking_usage(db, user.id)
	return {"questionId": questionId, **scored, "transcript": transcript, "audioUrl": audio_url}
