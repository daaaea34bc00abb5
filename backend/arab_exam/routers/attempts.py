from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session

from ..cefr_attempt import (
	AUDIO_PLACEHOLDER,
	apply_submitted_answers,
	grade_attempt,
	parse_json_field,
	question_to_public,
	upsert_answer,
)
from ..cefr_scoring import round_half_up
from ..db import get_db
from ..models import AttemptQuestion, User, UserExamAttempt
from ..uploads import public_url, save_audio
from .auth import get_current_user

router = APIRouter(prefix="/attempts", tags=["attempts"])

logger = logging.getLogger(__name__)


class AnswerRequest(BaseModel):
	attemptQuestionId: Optional[str] = None
	questionId: Optional[str] = None
	answerText: str

	@model_validator(mode="after")
	def _has_question(self):
		if not (self.attemptQuestionId or self.questionId):
			raise ValueError("attemptQuestionId or questionId is required")
		return self


class SubmittedAnswer(BaseModel):
	attemptQuestionId: str
	answer: str


class SubmittedWriting(BaseModel):
	taskId: str
	text: str


class SubmittedSpeaking(BaseModel):
	taskId: str
	text: Optional[str] = None
	audioUrl: Optional[str] = None


class SubmitRequest(BaseModel):
	answers: List[SubmittedAnswer] = Field(default_factory=list)
	writing: List[SubmittedWriting] = Field(default_factory=list)
	speaking: List[SubmittedSpeaking] = Field(default_factory=list)


def _get_attempt(db: Session, attempt_id: str, user: User) -> UserExamAttempt:
	attempt = (
		db.query(UserExamAttempt)
		.filter(UserExamAttempt.id == attempt_id, UserExamAttempt.user_id == user.id)
		.first()
	)
	if not attempt:
		raise HTTPException(status_code=404, detail="Attempt not found")
	return attempt


def _exam_info(attempt: UserExamAttempt) -> Optional[dict]:
	if attempt.mock_exam is not None:
		return {
			"id": attempt.mock_exam.id,
			"title": attempt.mock_exam.title,
			"durationMinutes": attempt.mock_exam.duration_minutes,
		}
	if attempt.level:
		return {"id": "cefr", "title": f"CEFR {attempt.level}", "durationMinutes": 120}
	return None


def _iso(value) -> Optional[str]:
	return value.isoformat() if value else None


def _summary(attempt: UserExamAttempt) -> dict:
	questions_count = len(attempt.attempt_questions)
	correct = wrong = blank = 0
	for ans in attempt.answers:
		if ans.answer_text is None or ans.answer_text.strip() == "":
			blank += 1
		elif ans.is_correct is True:
			correct += 1
		elif ans.is_correct is False:
			wrong += 1
	duration = None
	if attempt.completed_at and attempt.started_at:
		duration = round_half_up((attempt.completed_at - attempt.started_at).total_seconds() / 60)
	return {
		"id": attempt.id,
		"status": attempt.status,
		"level": attempt.level,
		"totalScore": attempt.total_score,
		"maxPossibleScore": attempt.max_possible_score,
		"percentage": attempt.percentage,
		"cefrLevelAchieved": attempt.cefr_level_achieved,
		"sectionScores": parse_json_field(attempt.section_scores),
		"startedAt": _iso(attempt.started_at),
		"completedAt": _iso(attempt.completed_at),
		"examTitle": attempt.mock_exam.title if attempt.mock_exam else (f"CEFR {attempt.level}" if attempt.level else None),
		"examDurationMinutes": attempt.mock_exam.duration_minutes if attempt.mock_exam else None,
		"actualDurationMinutes": duration,
		"questionsCount": questions_count,
		"correctCount": correct,
		"wrongCount": wrong,
		"unansweredCount": max(0, questions_count - len(attempt.answers)) + blank,
	}


@router.get("")
async def list_attempts(
	limit: int = Query(default=20),
	cursor: Optional[str] = Query(default=None),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	limit = min(max(limit, 1), 50)
	q = db.query(UserExamAttempt).filter(UserExamAttempt.user_id == user.id)
	if cursor:
		anchor = db.get(UserExamAttempt, cursor)
		if anchor is not None and anchor.user_id == user.id:
			q = q.filter(
				(UserExamAttempt.created_at < anchor.created_at)
				| ((UserExamAttempt.created_at == anchor.created_at) & (UserExamAttempt.id < anchor.id))
			)
	rows = q.order_by(UserExamAttempt.created_at.desc(), UserExamAttempt.id.desc()).limit(limit + 1).all()
	has_more = len(rows) > limit
	items = rows[:limit]
	return {
		"items": [_summary(a) for a in items],
		"nextCursor": items[-1].id if has_more else None,
	}


@router.get("/{attempt_id}")
async def get_attempt(attempt_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	attempt = _get_attempt(db, attempt_id, user)
	return {
		"attemptId": attempt.id,
		"status": attempt.status,
		"startedAt": _iso(attempt.started_at),
		"level": attempt.level,
		"exam": _exam_info(attempt),
		"questions": [question_to_public(q) for q in attempt.attempt_questions],
		"answers": {a.attempt_question_id: {"answerText": a.answer_text, "audioUrl": a.audio_url} for a in attempt.answers},
	}


@router.put("/{attempt_id}/answer")
async def save_answer(
	attempt_id: str,
	req: AnswerRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	attempt = _get_attempt(db, attempt_id, user)
	if attempt.status != "IN_PROGRESS":
		raise HTTPException(status_code=400, detail="Exam already finished")
	question_id = req.attemptQuestionId or req.questionId
	question = (
		db.query(AttemptQuestion)
		.filter(AttemptQuestion.id == question_id, AttemptQuestion.attempt_id == attempt.id)
		.first()
	)
	if not question:
		raise HTTPException(status_code=404, detail="Question not found in this attempt")
	upsert_answer(db, attempt.id, question.id, req.answerText)
	db.commit()
	return {"ok": True}


@router.post("/{attempt_id}/speaking-audio")
async def upload_speaking_audio(
	attempt_id: str,
	audio: Optional[UploadFile] = File(default=None),
	attemptQuestionId: Optional[str] = Form(default=None),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	if audio is None or not attemptQuestionId:
		raise HTTPException(status_code=400, detail="audio file and attemptQuestionId are required")
	attempt = (
		db.query(UserExamAttempt)
		.filter(UserExamAttempt.id == attempt_id, UserExamAttempt.user_id == user.id)
		.first()
	)
	question = None
	if attempt is not None and attempt.status == "IN_PROGRESS":
		question = (
			db.query(AttemptQuestion)
			.filter(
				AttemptQuestion.id == attemptQuestionId,
				AttemptQuestion.attempt_id == attempt.id,
				AttemptQuestion.section == "speaking",
			)
			.first()
		)
	if question is None:
		raise HTTPException(status_code=404, detail="Attempt or speaking question not found")

	path = await save_audio(audio, name=f"{attempt.id}_{question.id}")
	audio_url = public_url(path)
	upsert_answer(db, attempt.id, question.id, AUDIO_PLACEHOLDER, audio_url)
	db.commit()
	return {"audioUrl": audio_url}


@router.post("/{attempt_id}/submit")
async def submit_attempt(
	attempt_id: str,
	req: Optional[SubmitRequest] = None,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	attempt = _get_attempt(db, attempt_id, user)
	if attempt.status == "COMPLETED":
		return {"message": "Already submitted", "attemptId": attempt.id}
	if req is not None:
		apply_submitted_answers(
			db,
			attempt,
			answers=[a.model_dump() for a in req.answers],
			writing=[w.model_dump() for w in req.writing],
			speaking=[s.model_dump() for s in req.speaking],
		)
		db.commit()
		db.refresh(attempt)
	return await grade_attempt(db, attempt)


@router.get("/{attempt_id}/results")
async def get_results(attempt_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	attempt = _get_attempt(db, attempt_id, user)
	answers = {a.attempt_question_id: a for a in attempt.answers}
	questions = []
	for q in attempt.attempt_questions:
		ans = answers.get(q.id)
		questions.append({
			"id": q.id,
			"order": q.order,
			"questionText": q.question_text,
			"options": parse_json_field(q.options),
			"correctAnswer": q.correct_answer,
			"points": q.points,
			"maxScore": q.max_score,
			"userAnswer": ans.answer_text if ans else None,
			"isCorrect": ans.is_correct if ans else None,
			"pointsEarned": ans.points_earned if ans else None,
			"score": ans.score if ans else None,
			"feedback": ans.ai_feedback if ans else None,
			"section": q.section,
			"taskType": q.task_type,
			"rubric": parse_json_field(q.rubric),
			"transcript": q.transcript,
		})
	return {
		"attemptId": attempt.id,
		"status": attempt.status,
		"completedAt": _iso(attempt.completed_at),
		"totalScore": attempt.total_score,
		"maxPossibleScore": attempt.max_possible_score,
		"percentage": attempt.percentage,
		"cefrLevelAchieved": attempt.cefr_level_achieved,
		"cefrFeedback": attempt.cefr_feedback,
		"sectionScores": parse_json_field(attempt.section_scores),
		"exam": _exam_info(attempt),
		"level": attempt.level,
		"questions": questions,
	}
