from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..access_control import record_mock_usage, require_mock_access
from ..cefr_attempt import create_cefr_attempt, create_mock_attempt, question_to_public
from ..cefr_scoring import CEFR_LEVEL_INFO, CEFR_LEVELS, is_valid_level
from ..db import get_db
from ..models import MockExam, User
from .auth import get_current_user

router = APIRouter(prefix="/exams", tags=["exams"])

logger = logging.getLogger(__name__)

OBJECTIVE_SECTIONS = ["listening", "reading", "language_use"]
TASK_SECTIONS = ["writing", "speaking"]


class CefrStartRequest(BaseModel):
	level: Optional[str] = None


def _exam_meta(exam: MockExam) -> dict:
	return {
		"id": exam.id,
		"title": exam.title,
		"description": exam.description,
		"durationMinutes": exam.duration_minutes,
		"useAiGeneration": bool(exam.use_ai_generation),
		"questionCount": (exam.number_of_questions or 10) if exam.use_ai_generation else len(exam.questions),
	}


@router.get("")
async def list_exams(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	exams = db.query(MockExam).order_by(MockExam.created_at.desc()).all()
	return [_exam_meta(e) for e in exams]


@router.get("/cefr/levels")
async def cefr_levels(user: User = Depends(get_current_user)):
	return {"levels": CEFR_LEVELS, "info": CEFR_LEVEL_INFO}


@router.post("/cefr/start", status_code=201)
async def start_cefr(
	req: Optional[CefrStartRequest] = Body(default=None),
	level: Optional[str] = Query(default=None),
	user: User = Depends(require_mock_access),
	db: Session = Depends(get_db),
):
	chosen = (req.level if req and req.level else level) or ""
	if not is_valid_level(chosen):
		raise HTTPException(status_code=400, detail="level required: A1, A2, B1, B2, C1, C2")
	try:
		attempt = await create_cefr_attempt(db, user.id, chosen)
	except Exception as e:
		logger.error("CEFR attempt creation failed for user %s: %s", user.id, e)
		raise HTTPException(status_code=503, detail=str(e) or "CEFR attempt creation failed")
	record_mock_usage(db, user.id)

	questions = [question_to_public(q) for q in attempt.attempt_questions]
	sections = [
		{"section": s, "questions": [q for q in questions if q["section"] == s]} for s in OBJECTIVE_SECTIONS
	] + [
		{"section": s, "tasks": [q for q in questions if q["section"] == s]} for s in TASK_SECTIONS
	]
	return {"attemptId": attempt.id, "level": attempt.level, "sections": sections}


@router.get("/{exam_id}")
async def get_exam(exam_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	exam = db.get(MockExam, exam_id)
	if not exam:
		raise HTTPException(status_code=404, detail="Exam not found")
	return _exam_meta(exam)


@router.post("/{exam_id}/start", status_code=201)
async def start_exam(exam_id: str, user: User = Depends(require_mock_access), db: Session = Depends(get_db)):
	exam = db.get(MockExam, exam_id)
	if not exam:
		raise HTTPException(status_code=404, detail="Exam not found")
	if not exam.use_ai_generation and not exam.questions:
		raise HTTPException(status_code=400, detail="This exam has no questions")
	try:
		attempt = await create_mock_attempt(db, user, exam)
	except Exception as e:
		logger.error("Mock attempt creation failed for exam %s: %s", exam_id, e)
		raise HTTPException(status_code=503, detail="AI could not generate questions. Please try again later.")
	record_mock_usage(db, user.id)
	return {
		"attemptId": attempt.id,
		"exam": {"id": exam.id, "title": exam.title, "durationMinutes": exam.duration_minutes},
		"questions": [question_to_public(q) for q in attempt.attempt_questions],
	}
