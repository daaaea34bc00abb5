from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from .ai_client import ai_generate_json, is_ai_available

logger = logging.getLogger(__name__)

Rubric = Union[Dict[str, Union[str, float]], str]


class WritingTask(BaseModel):
	taskId: str
	prompt: str
	wordLimit: int
	rubric: Rubric = Field(default_factory=dict)
	maxScore: float = 10


class WritingTasksResponse(BaseModel):
	tasks: List[WritingTask]


class SpeakingTask(BaseModel):
	taskId: str
	part: Literal["intro", "monologue", "discussion"]
	prompt: str
	rubric: Rubric = Field(default_factory=dict)
	maxScore: float = 10


class SpeakingScript(BaseModel):
	intro: List[str] = Field(default_factory=list)
	monologueTopics: List[str] = Field(default_factory=list)
	discussionQuestions: List[str] = Field(default_factory=list)


class SpeakingExamResponse(BaseModel):
	script: SpeakingScript = Field(default_factory=SpeakingScript)
	tasks: List[SpeakingTask]
	rubric: Rubric = Field(default_factory=dict)


class Grade(BaseModel):
	score: float
	maxScore: float
	feedback: str
	rubricBreakdown: Optional[Dict[str, float]] = None


WRITING_SYSTEM = (
	"You are a CEFR Arabic (fus'ha) writing assessor. Return only valid JSON.\n"
	'For task generation: { "tasks": [ { "taskId": "w1", "prompt": "...", "wordLimit": 150, '
	'"rubric": { "content": 4, "grammar": 3, "vocabulary": 3 }, "maxScore": 10 } ] }.\n'
	'For grading: { "score": number, "maxScore": number, "feedback": "string", '
	'"rubricBreakdown": { "content": 2, "grammar": 1.5 } }.'
)

SPEAKING_SYSTEM = (
	"You are a CEFR Arabic (fus'ha) speaking assessor. Return only valid JSON.\n"
	'For task generation: { "script": { "intro": ["Q1", "Q2"], "monologueTopics": ["..."], '
	'"discussionQuestions": ["..."] }, "tasks": [ { "taskId": "s1", "part": "intro", "prompt": "...", '
	'"rubric": {}, "maxScore": 10 } ], "rubric": {} }.\n'
	'For grading: { "score": number, "maxScore": number, "feedback": "string", "rubricBreakdown": {} }.'
)


def _build_writing_tasks_prompt(level: str, count: int) -> str:
	return (
		f"Generate {count} CEFR {level} Arabic (fus'ha) writing tasks. "
		"Topics: education, society, technology, culture, economy. "
		'Return JSON: { "tasks": [ { "taskId": "w1", "prompt": "...", "wordLimit": 150, '
		'"rubric": { "content": 4, "grammar": 3, "vocabulary": 3 }, "maxScore": 10 }, ... ] }.'
	)


def _build_speaking_tasks_prompt(level: str) -> str:
	return (
		f"Generate a CEFR {level} Arabic (fus'ha) 3-part speaking exam: intro questions, "
		"monologue topics, discussion questions. Include a tasks array with taskId, "
		"part (intro, monologue or discussion), prompt, rubric and maxScore. Return JSON."
	)


def _build_grading_prompt(level: str, task: Dict[str, Any], answer: str, *, transcript: bool) -> str:
	label = "User response (transcript)" if transcript else "User text"
	return (
		f"CEFR {level}. Task: {task['prompt']}. Rubric: {json.dumps(task.get('rubric') or {}, ensure_ascii=False)}. "
		f"{label}:\n{answer}\n\n"
		f'Return JSON: {{ "score": number, "maxScore": {task["maxScore"]}, "feedback": "string", "rubricBreakdown": {{}} }}.'
	)


async def generate_writing_tasks(level: str, count: int = 2) -> WritingTasksResponse:
	if not is_ai_available():
		raise RuntimeError("AI is not configured (GEMINI_API_KEY or OPENAI_API_KEY required)")
	data, _ = await ai_generate_json(
		[
			{"role": "system", "content": WRITING_SYSTEM},
			{"role": "user", "content": _build_writing_tasks_prompt(level, count)},
		],
		max_tokens=1500,
	)
	if data is None:
		raise RuntimeError("AI did not return writing tasks")
	try:
		parsed = WritingTasksResponse.model_validate(data)
	except ValidationError as err:
		raise RuntimeError(f"AI returned malformed writing tasks: {err.error_count()} errors") from err
	if not parsed.tasks:
		raise RuntimeError("AI returned no writing tasks")
	return parsed


async def generate_speaking_tasks(level: str) -> SpeakingExamResponse:
	if not is_ai_available():
		raise RuntimeError("AI is not configured (GEMINI_API_KEY or OPENAI_API_KEY required)")
	data, _ = await ai_generate_json(
		[
			{"role": "system", "content": SPEAKING_SYSTEM},
			{"role": "user", "content": _build_speaking_tasks_prompt(level)},
		],
		max_tokens=2000,
	)
	if data is None:
		raise RuntimeError("AI did not return speaking tasks")
	try:
		parsed = SpeakingExamResponse.model_validate(data)
	except ValidationError as err:
		raise RuntimeError(f"AI returned malformed speaking tasks: {err.error_count()} errors") from err
	if not parsed.tasks:
		raise RuntimeError("AI returned no speaking tasks")
	return parsed


def _coerce_grade(data: Dict[str, Any], max_score: float) -> Grade:
	try:
		score = float(data.get("score", 0))
	except (TypeError, ValueError):
		score = 0.0
	breakdown: Dict[str, float] = {}
	raw_breakdown = data.get("rubricBreakdown")
	if isinstance(raw_breakdown, dict):
		for key, value in raw_breakdown.items():
			if isinstance(value, (int, float)) and not isinstance(value, bool):
				breakdown[str(key)] = float(value)
	return Grade(
		score=max(0.0, min(max_score, score)),
		maxScore=max_score,
		feedback=str(data.get("feedback") or ""),
		rubricBreakdown=breakdown or None,
	)


async def _grade(system: str, level: str, task: Dict[str, Any], answer: str, *, transcript: bool) -> Grade:
	max_score = float(task["maxScore"])
	if not is_ai_available():
		return Grade(score=0, maxScore=max_score, feedback="AI is not configured; grading skipped.")
	data, provider = await ai_generate_json(
		[
			{"role": "system", "content": system},
			{"role": "user", "content": _build_grading_prompt(level, task, answer, transcript=transcript)},
		],
		max_tokens=600,
	)
	if data is None:
		logger.warning("Grading failed, provider=%s", provider)
		return Grade(score=0, maxScore=max_score, feedback="AI grading failed; score could not be determined.")
	return _coerce_grade(data, max_score)


async def grade_writing(level: str, task: Dict[str, Any], user_text: str) -> Grade:
	return await _grade(WRITING_SYSTEM, level, task, user_text, transcript=False)


async def grade_speaking(level: str, task: Dict[str, Any], transcript: str) -> Grade:
	return await _grade(SPEAKING_SYSTEM, level, task, transcript, transcript=True)


MCQ_SYSTEM = (
	"You are an Arabic instructor writing CEFR (A1-C2) multiple-choice questions.\n"
	'Return JSON: { "questions": [ { "questionText": "question in Arabic", '
	'"options": ["A", "B", "C", "D"], "correctAnswer": "the full text of one option", "points": 1 } ] }.'
)


def _parse_mcq_item(item: Any) -> Optional[Dict[str, Any]]:
	if not isinstance(item, dict):
		return None
	question_text = str(item.get("questionText") or item.get("question") or "").strip()
	options = item.get("options")
	if not isinstance(options, list) or len(options) < 2 or not question_text:
		return None
	options = [str(o) for o in options]
	correct = str(item.get("correctAnswer") or "").strip() or options[0]
	try:
		points = max(1, int(item.get("points") or 1))
	except (TypeError, ValueError):
		points = 1
	return {"questionText": question_text, "options": options, "correctAnswer": correct, "points": points}


async def generate_mcq_questions(
	exam_title: str,
	count: int,
	language: str,
	level: Optional[str] = None,
) -> List[Dict[str, Any]]:
	"""Ask the AI for ``count`` multiple-choice questions for a mock exam.

	Items without a question text or with fewer than two options are dropped.
	Raises RuntimeError when AI is not configured or nothing usable comes back.
	"""
	if not is_ai_available():
		raise RuntimeError("AI is not configured (GEMINI_API_KEY or OPENAI_API_KEY required)")
	level_hint = f"Estimated level: {level}. " if level else ""
	data, _ = await ai_generate_json(
		[
			{"role": "system", "content": MCQ_SYSTEM},
			{
				"role": "user",
				"content": f'{level_hint}Exam: "{exam_title}". Language: {language}. Create {count} MCQ questions.',
			},
		],
		max_tokens=4000,
	)
	if data is None:
		raise RuntimeError("AI returned an empty response")
	items = data.get("questions") if isinstance(data.get("questions"), list) else [data]
	questions = [q for q in (_parse_mcq_item(item) for item in items) if q is not None]
	if not questions:
		raise RuntimeError("AI returned no usable questions")
	return questions[:count]
