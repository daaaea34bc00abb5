"""
Writing Analysis
================

Scores a single Arabic (fus'ha) writing answer against a five-part rubric:

- content, organization, grammar, vocabulary, taskAchievement: 0-3 each
- score: their sum, 0-15

Without an AI provider a rough score is returned (easy 8, hard 5 when the
answer has more than 10 words). Malformed AI output is clamped into range and
AI errors are reported in the feedback with a zero score.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from ..access_control import record_writing_usage, require_writing_access
from ..ai_client import ai_generate_json, is_ai_available
from ..cefr_scoring import round_half_up
from ..db import get_db
from ..models import User

router = APIRouter(prefix="/writing", tags=["writing"])

logger = logging.getLogger(__name__)

RUBRIC_KEYS = ["content", "organization", "grammar", "vocabulary", "taskAchievement"]

FALLBACK_SCORES = {"easy": 8, "hard": 5}

WRITING_SYSTEM_PROMPT = """You are an expert assessor of written Arabic (fus'ha).
A student completed a writing task in Arabic. Score the answer and analyse it in detail.

Criteria (0-3 points each):
- content: relevance to the topic, sufficient support
- organization: paragraphs, logical flow, connectors
- grammar: grammatical accuracy (i'rab, verb conjugation, sentence structure)
- vocabulary: range and appropriate use of words
- taskAchievement: how well the answer meets the task requirements

score is the sum of the five criteria (0-15).

IMPORTANT:
- If the text is empty or very short (fewer than 5 words), score 0.
- If the text is not in Arabic, score 0.
- Write the feedback in Uzbek.
- Return valid JSON only."""


class WritingAnalyzeRequest(BaseModel):
	taskId: str = Field(min_length=1)
	difficulty: Literal["easy", "hard"]
	prompt: str = Field(min_length=1)
	text: str
	maxScore: float = Field(ge=1, le=30)


class WritingScore(BaseModel):
	score: float = Field(ge=0, le=15)
	content: float = Field(ge=0, le=3)
	organization: float = Field(ge=0, le=3)
	grammar: float = Field(ge=0, le=3)
	vocabulary: float = Field(ge=0, le=3)
	taskAchievement: float = Field(ge=0, le=3)
	feedback: str


def _clamp(value: Any, upper: float) -> float:
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return 0
	return min(upper, max(0, value))


def count_words(text: str) -> int:
	return len(text.split())


def fallback_result(task_id: str, difficulty: str, word_count: int) -> Dict[str, Any]:
	score = FALLBACK_SCORES[difficulty] if word_count > 10 else 0
	result: Dict[str, Any] = {"taskId": task_id, "score": score}
	for key in RUBRIC_KEYS:
		result[key] = round_half_up(score / 5)
	result["feedback"] = "AI is not configured. An approximate score was given."
	return result


def coerce_result(task_id: str, data: Dict[str, Any], max_score: float) -> Dict[str, Any]:
	try:
		s = WritingScore.model_validate(data)
	except ValidationError:
		logger.warning("Writing score in unexpected format: %s", str(data)[:300])
		result: Dict[str, Any] = {"taskId": task_id, "score": round_half_up(_clamp(data.get("score"), max_score))}
		for key in RUBRIC_KEYS:
			result[key] = _clamp(data.get(key), 3)
		result["feedback"] = str(data.get("feedback") or "Error during grading")
		return result
	return {"taskId": task_id, **s.model_dump()}


def _build_user_prompt(req: WritingAnalyzeRequest, word_count: int) -> str:
	answer = req.text or "(empty - no answer given)"
	return (
		f"Difficulty: {req.difficulty}\n"
		f"Task (Arabic): {req.prompt}\n"
		f'Student answer ({word_count} words): "{answer}"\n'
		f"Maximum score: {req.maxScore}\n\n"
		"Answer in this JSON format:\n"
		"{\n"
		f'  "score": number (0-{req.maxScore}, sum of the 5 criteria),\n'
		'  "content": number (0-3),\n'
		'  "organization": number (0-3),\n'
		'  "grammar": number (0-3),\n'
		'  "vocabulary": number (0-3),\n'
		'  "taskAchievement": number (0-3),\n'
		'  "feedback": "string (detailed analysis in Uzbek)"\n'
		"}"
	)


@router.post("/analyze")
async def analyze_writing(
	req: WritingAnalyzeRequest,
	user: User = Depends(require_writing_access),
	db: Session = Depends(get_db),
):
	word_count = count_words(req.text)

	if not is_ai_available():
		result = fallback_result(req.taskId, req.difficulty, word_count)
	else:
		try:
			data, _ = await ai_generate_json(
				[
					{"role": "system", "content": WRITING_SYSTEM_PROMPT},
					{"role": "user", "content": _build_user_prompt(req, word_count)},
				],
				max_tokens=700,
				temperature=0.3,
			)
			if data is None:
				raise RuntimeError("AI returned no answer")
			result = coerce_result(req.taskId, data, req.maxScore)
		except Exception as err:
			logger.error("Writing scoring failed: %s", err)
			result = {"taskId": req.taskId, "score": 0, **{k: 0 for k in RUBRIC_KEYS}}
			result["feedback"] = f"Error during grading: {err}"

	record_writing_usage(db, user.id)
	return result
