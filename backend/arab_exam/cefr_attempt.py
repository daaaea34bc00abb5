"""
CEFR Attempt Assembly and Grading
=================================

An attempt is a snapshot: every question the user sees is copied into
``AttemptQuestion`` rows, so later edits to the question bank never change an
attempt that is already running or finished.

Assembly of a CEFR attempt:

1. an IN_PROGRESS attempt row is created;
2. listening, reading and language_use questions are drawn from the bank,
   each worth ``30 / N`` points where N is the number drawn for that section;
3. writing tasks (1 for A1/A2, 2 otherwise) and speaking tasks are generated
   by the AI and split 30 points between them.

If task generation fails the attempt is deleted and the error propagates.

Grading sums points per section, folds the sections into the five skills and
bands the total with :func:`calculate_cefr_result`. Mock exam attempts (no
level) are banded by percentage instead.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from .ai_writing_speaking import generate_mcq_questions, generate_speaking_tasks, generate_writing_tasks, grade_speaking, grade_writing
from .cefr_scoring import MAX_TOTAL_SCORE, calculate_cefr_result, cefr_feedback, determine_cefr_level, section_to_skill
from .models import AttemptQuestion, MockExam, User, UserAnswer, UserExamAttempt, UserProgress
from .question_bank import BANK_SECTIONS, points_per_question, select_questions_for_attempt
from .settings import settings
from .transcribe import transcribe_audio

logger = logging.getLogger(__name__)

AUDIO_PLACEHOLDER = "[Audio uploaded]"


def parse_json_field(value: Optional[str]) -> Any:
	if value is None or value == "":
		return None
	try:
		return json.loads(value)
	except (TypeError, ValueError):
		return value


def _dump_json_field(value: Any) -> Optional[str]:
	if value is None or value == "" or value == {}:
		return None
	if isinstance(value, str):
		return value
	return json.dumps(value, ensure_ascii=False)


def question_to_public(q: AttemptQuestion) -> Dict[str, Any]:
	"""Attempt question as shown to the candidate, without the correct answer."""
	return {
		"id": q.id,
		"order": q.order,
		"section": q.section,
		"taskType": q.task_type,
		"questionType": q.question_type,
		"questionText": q.question_text,
		"transcript": q.transcript,
		"passage": q.passage,
		"options": parse_json_field(q.options),
		"rubric": parse_json_field(q.rubric),
		"audioUrl": q.audio_url,
		"wordLimit": q.word_limit,
		"points": q.points,
		"maxScore": q.max_score if q.max_score is not None else q.points,
	}


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def _add_bank_questions(db: Session, attempt: UserExamAttempt, level: str) -> int:
	order = 0
	bank = select_questions_for_attempt(db, level)
	for section in BANK_SECTIONS:
		items = bank[section]
		points = points_per_question(len(items))
		for q in items:
			order += 1
			db.add(
				AttemptQuestion(
					attempt_id=attempt.id,
					source_question_id=q.id,
					order=order,
					section=section,
					task_type=q.task_type,
					question_type="MULTIPLE_CHOICE",
					question_text=q.prompt,
					transcript=q.transcript,
					passage=q.passage,
					options=_dump_json_field(q.options),
					correct_answer=q.correct_answer,
					rubric=_dump_json_field(q.rubric),
					points=points,
					max_score=points,
					audio_url=q.audio_url,
				)
			)
	return order


def _add_generated_tasks(
	db: Session,
	attempt: UserExamAttempt,
	order: int,
	section: str,
	task_type: str,
	question_type: str,
	tasks: List[Any],
) -> int:
	if not tasks:
		raise ValueError(f"No {section} tasks were generated")
	points = points_per_question(len(tasks))
	for t in tasks:
		order += 1
		db.add(
			AttemptQuestion(
				attempt_id=attempt.id,
				order=order,
				section=section,
				task_type=task_type,
				question_type=question_type,
				question_text=t.prompt,
				rubric=_dump_json_field(t.rubric),
				points=points,
				max_score=points,
				word_limit=getattr(t, "wordLimit", None),
			)
		)
	return order


def _discard_attempt(db: Session, attempt_id: str) -> None:
	try:
		db.query(UserExamAttempt).filter(UserExamAttempt.id == attempt_id).delete(synchronize_session=False)
		db.commit()
	except Exception as e:
		db.rollback()
		logger.warning("Could not delete failed attempt %s: %s", attempt_id, e)


async def create_cefr_attempt(db: Session, user_id: str, level: str) -> UserExamAttempt:
	attempt = UserExamAttempt(user_id=user_id, level=level, status="IN_PROGRESS")
	db.add(attempt)
	db.commit()
	db.refresh(attempt)
	attempt_id = attempt.id

	try:
		order = _add_bank_questions(db, attempt, level)
		writing = await generate_writing_tasks(level, 1 if level in ("A1", "A2") else 2)
		order = _add_generated_tasks(db, attempt, order, "writing", "essay", "ESSAY", writing.tasks)
		speaking = await generate_speaking_tasks(level)
		_add_generated_tasks(db, attempt, order, "speaking", "interview", "AUDIO_RESPONSE", speaking.tasks)
		db.commit()
	except Exception:
		db.rollback()
		_discard_attempt(db, attempt_id)
		raise

	db.refresh(attempt)
	logger.info("CEFR %s attempt %s created with %d questions", level, attempt.id, len(attempt.attempt_questions))
	return attempt


async def create_mock_attempt(db: Session, user: User, exam: MockExam) -> UserExamAttempt:
	"""Start a mock exam: AI-generated MCQs or a snapshot of the exam's bank questions.

	Raises ValueError when a bank-based exam has no questions; AI errors propagate.
	"""
	rows: List[AttemptQuestion] = []
	if exam.use_ai_generation:
		level = user.progress.current_cefr_estimate if user.progress else None
		generated = await generate_mcq_questions(
			exam.title,
			exam.number_of_questions or 10,
			user.language_preference or "uz",
			level,
		)
		for i, q in enumerate(generated, start=1):
			rows.append(
				AttemptQuestion(
					order=i,
					question_type="MULTIPLE_CHOICE",
					question_text=q["questionText"],
					options=json.dumps(q["options"], ensure_ascii=False),
					correct_answer=q["correctAnswer"],
					points=q["points"],
					max_score=q["points"],
				)
			)
	else:
		if not exam.questions:
			raise ValueError("This exam has no questions")
		for i, mq in enumerate(exam.questions, start=1):
			q = mq.question
			rows.append(
				AttemptQuestion(
					source_question_id=q.id,
					order=i,
					section=q.section,
					task_type=q.task_type,
					question_type="MULTIPLE_CHOICE",
					question_text=q.prompt,
					transcript=q.transcript,
					passage=q.passage,
					options=_dump_json_field(q.options),
					correct_answer=q.correct_answer,
					rubric=_dump_json_field(q.rubric),
					points=1,
					max_score=1,
					audio_url=q.audio_url,
				)
			)

	attempt = UserExamAttempt(user_id=user.id, mock_exam_id=exam.id, status="IN_PROGRESS")
	attempt.attempt_questions = rows
	db.add(attempt)
	db.commit()
	db.refresh(attempt)
	return attempt


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------

def normalize_correct_answer(value: Any) -> str:
	if value is None:
		return ""
	if isinstance(value, str):
		return value.strip()
	return json.dumps(value, ensure_ascii=False)


def is_answer_correct(user_answer: Optional[str], correct_answer: Any) -> bool:
	correct = normalize_correct_answer(correct_answer)
	user = (user_answer or "").strip()
	if correct == user:
		return True
	try:
		expected = correct_answer if not isinstance(correct_answer, str) else json.loads(correct)
		return expected == json.loads(user)
	except (TypeError, ValueError):
		return False


def upsert_answer(
	db: Session,
	attempt_id: str,
	attempt_question_id: str,
	answer_text: Optional[str],
	audio_url: Optional[str] = None,
) -> UserAnswer:
	answer = (
		db.query(UserAnswer)
		.filter(UserAnswer.attempt_id == attempt_id, UserAnswer.attempt_question_id == attempt_question_id)
		.first()
	)
	if answer is None:
		answer = UserAnswer(attempt_id=attempt_id, attempt_question_id=attempt_question_id)
		db.add(answer)
		db.flush()
	answer.answer_text = answer_text
	if audio_url is not None:
		answer.audio_url = audio_url
	return answer


def apply_submitted_answers(
	db: Session,
	attempt: UserExamAttempt,
	answers: Iterable[Dict[str, Any]] = (),
	writing: Iterable[Dict[str, Any]] = (),
	speaking: Iterable[Dict[str, Any]] = (),
) -> None:
	"""Upsert answers sent along with a submit. Ids outside the attempt are ignored."""
	known = {q.id for q in attempt.attempt_questions}
	for a in answers:
		if a["attemptQuestionId"] in known:
			upsert_answer(db, attempt.id, a["attemptQuestionId"], a["answer"])
	for w in writing:
		if w["taskId"] in known:
			upsert_answer(db, attempt.id, w["taskId"], w["text"])
	for s in speaking:
		if s["taskId"] not in known:
			continue
		text = s.get("text") or (AUDIO_PLACEHOLDER if s.get("audioUrl") else "")
		upsert_answer(db, attempt.id, s["taskId"], text, s.get("audioUrl"))
	db.flush()


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------

def _local_audio_path(audio_url: Optional[str]) -> Optional[str]:
	if not audio_url:
		return None
	return os.path.join(settings.uploads_dir, os.path.basename(audio_url))


async def _grade_question(level: str, q: AttemptQuestion, answer: Optional[UserAnswer]) -> Dict[str, Any]:
	max_points = q.max_score if q.max_score is not None else q.points
	user_text = answer.answer_text if answer is not None else None

	if q.section == "writing":
		task = {"prompt": q.question_text, "rubric": parse_json_field(q.rubric) or {}, "maxScore": max_points}
		result = await grade_writing(level, task, user_text or "")
		return {"answer_text": user_text, "score": result.score, "feedback": result.feedback}

	if q.section == "speaking":
		transcript = user_text or ""
		if answer is not None and answer.audio_url and transcript in ("", AUDIO_PLACEHOLDER):
			transcribed = await transcribe_audio(_local_audio_path(answer.audio_url))
			if transcribed:
				transcript = transcribed
		if transcript == AUDIO_PLACEHOLDER:
			transcript = ""
		task = {"prompt": q.question_text, "rubric": parse_json_field(q.rubric) or {}, "maxScore": max_points}
		result = await grade_speaking(level, task, transcript)
		return {"answer_text": transcript, "score": result.score, "feedback": result.feedback}

	correct = answer is not None and is_answer_correct(user_text, q.correct_answer)
	return {"answer_text": user_text, "is_correct": correct, "score": q.points if correct else 0}


def update_progress(
	db: Session,
	user_id: str,
	level: str,
	skill_scores: Optional[Dict[str, float]] = None,
	now: Optional[datetime] = None,
) -> UserProgress:
	now = now or datetime.utcnow()
	progress = db.query(UserProgress).filter(UserProgress.user_id == user_id).first()
	if progress is None:
		progress = UserProgress(user_id=user_id, total_exams_taken=0, current_streak_days=0)
		db.add(progress)

	last = progress.last_activity_at.date() if progress.last_activity_at else None
	today = now.date()
	if last == today:
		streak = max(progress.current_streak_days or 0, 1)
	elif last == today - timedelta(days=1):
		streak = (progress.current_streak_days or 0) + 1
	else:
		streak = 1

	progress.total_exams_taken = (progress.total_exams_taken or 0) + 1
	progress.current_cefr_estimate = level
	progress.current_streak_days = streak
	progress.last_activity_at = now
	if skill_scores is not None:
		progress.skill_scores = json.dumps(skill_scores)
	return progress


async def grade_attempt(db: Session, attempt: UserExamAttempt) -> Dict[str, Any]:
	"""Score every question, finish the attempt and update the user's progress."""
	level = attempt.level or "B1"
	answers_by_question = {a.attempt_question_id: a for a in attempt.answers}
	section_scores: Dict[str, Dict[str, float]] = {}
	total = 0.0
	max_possible = 0.0

	for q in attempt.attempt_questions:
		answer = answers_by_question.get(q.id)
		max_points = q.max_score if q.max_score is not None else q.points
		graded = await _grade_question(level, q, answer)

		if answer is None:
			answer = upsert_answer(db, attempt.id, q.id, graded["answer_text"])
		else:
			answer.answer_text = graded["answer_text"]
		score = float(graded["score"])
		answer.score = score
		answer.points_earned = round(score, 2)
		if "is_correct" in graded:
			answer.is_correct = graded["is_correct"]
		else:
			answer.ai_feedback = graded.get("feedback")

		bucket = section_scores.setdefault(q.section or "general", {"score": 0.0, "max": 0.0})
		bucket["score"] = round(bucket["score"] + score, 2)
		bucket["max"] = round(bucket["max"] + max_points, 2)
		total += score
		max_possible += max_points

	skill_breakdown: Optional[Dict[str, Any]] = None
	if attempt.level:
		skill_totals: Dict[str, float] = {}
		for section, bucket in section_scores.items():
			skill = section_to_skill(section)
			skill_totals[skill] = skill_totals.get(skill, 0.0) + bucket["score"]
		result = calculate_cefr_result(skill_totals)
		total_score = float(result["totalScore"])
		max_score = float(result["maxPossibleScore"])
		percentage = float(result["percentage"])
		cefr_level = str(result["cefrLevel"])
		skill_breakdown = result["skillBreakdown"]
		feedback = cefr_feedback(cefr_level, total_score)
	else:
		total_score = round(total, 2)
		max_score = round(max_possible, 2)
		percentage = round(total / max_possible * 100, 2) if max_possible > 0 else 0.0
		scaled = percentage / 100 * MAX_TOTAL_SCORE
		cefr_level = determine_cefr_level(scaled)
		feedback = cefr_feedback(cefr_level, scaled)

	now = datetime.utcnow()
	attempt.status = "COMPLETED"
	attempt.completed_at = now
	attempt.total_score = total_score
	attempt.max_possible_score = max_score
	attempt.percentage = percentage
	attempt.cefr_level_achieved = cefr_level
	attempt.cefr_feedback = feedback
	attempt.section_scores = json.dumps(section_scores)

	skill_scores = {k: v["score"] for k, v in skill_breakdown.items()} if skill_breakdown else None
	update_progress(db, attempt.user_id, cefr_level, skill_scores, now)
	db.commit()
	logger.info("Attempt %s graded: %s/%s (%s)", attempt.id, total_score, max_score, cefr_level)

	response: Dict[str, Any] = {
		"attemptId": attempt.id,
		"totalScore": total_score,
		"maxPossibleScore": max_score,
		"percentage": percentage,
		"cefrLevelAchieved": cefr_level,
		"cefrFeedback": feedback,
		"sectionScores": section_scores,
	}
	if skill_breakdown is not None:
		response["skillBreakdown"] = skill_breakdown
	return response
