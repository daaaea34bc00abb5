import json
import math
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..cefr_attempt import parse_json_field
from ..cefr_scoring import CEFR_LEVELS
from ..db import get_db
from ..models import Payment, QuestionBank, User, UserExamAttempt
from ..question_bank import BANK_SECTIONS, count_by_section
from .auth import require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class QuestionBankUpdate(BaseModel):
    level: Optional[str] = None
    section: Optional[str] = None
    taskType: Optional[str] = None
    prompt: Optional[str] = Field(default=None, min_length=1)
    options: Optional[List[str]] = None
    correctAnswer: Optional[str] = None
    transcript: Optional[str] = None
    passage: Optional[str] = None
    audioUrl: Optional[str] = None
    rubric: Optional[Any] = None
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)
    tags: Optional[List[str]] = None

    @field_validator("level")
    @classmethod
    def _known_level(cls, v):
        if v is not None and v not in CEFR_LEVELS:
            raise ValueError(f"level must be one of {', '.join(CEFR_LEVELS)}")
        return v

    @field_validator("section")
    @classmethod
    def _known_section(cls, v):
        if v is not None and v not in BANK_SECTIONS:
            raise ValueError(f"section must be one of {', '.join(BANK_SECTIONS)}")
        return v


class QuestionBankCreate(QuestionBankUpdate):
    level: str
    section: str
    prompt: str = Field(min_length=1)


# Request field -> column
_FIELDS = {
    "level": "level",
    "section": "section",
    "taskType": "task_type",
    "prompt": "prompt",
    "correctAnswer": "correct_answer",
    "transcript": "transcript",
    "passage": "passage",
    "audioUrl": "audio_url",
    "difficulty": "difficulty",
}
_JSON_FIELDS = {"options": "options", "rubric": "rubric", "tags": "tags"}


def _apply(item: QuestionBank, data: dict) -> None:
    for key, column in _FIELDS.items():
        if key in data:
            setattr(item, column, data[key])
    for key, column in _JSON_FIELDS.items():
        if key in data:
            value = data[key]
            setattr(item, column, json.dumps(value, ensure_ascii=False) if value is not None else None)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _question(q: QuestionBank) -> dict:
    return {
        "id": q.id,
        "level": q.level,
        "section": q.section,
        "taskType": q.task_type,
        "prompt": q.prompt,
        "options": parse_json_field(q.options),
        "correctAnswer": q.correct_answer,
        "transcript": q.transcript,
        "passage": q.passage,
        "audioUrl": q.audio_url,
        "rubric": parse_json_field(q.rubric),
        "difficulty": q.difficulty,
        "tags": parse_json_field(q.tags),
        "createdAt": _iso(q.created_at),
        "updatedAt": _iso(q.updated_at),
    }


def _page(page: int, page_size: int):
    page = max(1, page)
    page_size = min(100, max(10, page_size))
    return page, page_size


def _paginated(items: list, total: int, page: int, page_size: int) -> dict:
    return {
        "items": items,
        "total": total,
        "page": page,
        "pageSize": page_size,
        "totalPages": math.ceil(total / page_size),
    }


def _get_question(db: Session, question_id: str) -> QuestionBank:
    item = db.get(QuestionBank, question_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Question not found")
    return item


@router.get("/question-bank")
async def list_questions(
    level: Optional[str] = Query(default=None),
    section: Optional[str] = Query(default=None),
    page: int = Query(default=1),
    pageSize: int = Query(default=20),
    db: Session = Depends(get_db),
):
    page, page_size = _page(page, pageSize)
    q = db.query(QuestionBank)
    if level in CEFR_LEVELS:
        q = q.filter(QuestionBank.level == level)
    if section in BANK_SECTIONS:
        q = q.filter(QuestionBank.section == section)
    total = q.count()
    items = (
        q.order_by(QuestionBank.created_at.desc(), QuestionBank.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return _paginated([_question(i) for i in items], total, page, page_size)


@router.get("/question-bank/{question_id}")
async def get_question(question_id: str, db: Session = Depends(get_db)):
    return _question(_get_question(db, question_id))


@router.post("/question-bank", status_code=201)
async def create_question(req: QuestionBankCreate, db: Session = Depends(get_db)):
    item = QuestionBank(task_type="mcq", difficulty=1)
    _apply(item, req.model_dump(exclude_unset=True))
    db.add(item)
    db.commit()
    db.refresh(item)
    return _question(item)


@router.put("/question-bank/{question_id}")
async def update_question(question_id: str, req: QuestionBankUpdate, db: Session = Depends(get_db)):
    item = _get_question(db, question_id)
    _apply(item, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(item)
    return _question(item)


@router.delete("/question-bank/{question_id}", status_code=204)
async def delete_question(question_id: str, db: Session = Depends(get_db)):
    item = _get_question(db, question_id)
    db.delete(item)
    db.commit()
    return Response(status_code=204)


@router.get("/users")
async def list_users(page: int = Query(default=1), pageSize: int = Query(default=20), db: Session = Depends(get_db)):
    page, page_size = _page(page, pageSize)
    total = db.query(User).count()
    users = db.query(User).order_by(User.created_at.desc()).offset((page - 1) * page_size).limit(page_size).all()
    items = [
        {
            "id": u.id,
            "email": u.email,
            "fullName": u.full_name,
            "subscriptionTier": u.subscription_tier,
            "subscriptionExpiresAt": _iso(u.subscription_expires_at),
            "isAdmin": u.is_admin,
            "lastLogin": _iso(u.last_login),
            "createdAt": _iso(u.created_at),
            "attemptsCount": len(u.attempts),
            "paymentsCount": len(u.payments),
        }
        for u in users
    ]
    return _paginated(items, total, page, page_size)


@router.get("/payments")
async def list_payments(page: int = Query(default=1), pageSize: int = Query(default=20), db: Session = Depends(get_db)):
    page, page_size = _page(page, pageSize)
    total = db.query(Payment).count()
    payments = db.query(Payment).order_by(Payment.created_at.desc()).offset((page - 1) * page_size).limit(page_size).all()
    items = [
        {
            "id": p.id,
            "userId": p.user_id,
            "userEmail": p.user.email,
            "userFullName": p.user.full_name,
            "amount": p.amount,
            "currency": p.currency,
            "status": p.status,
            "provider": p.provider,
            "planId": p.plan_id,
            "paymentProviderId": p.payment_provider_id,
            "paidAt": _iso(p.paid_at),
            "createdAt": _iso(p.created_at),
        }
        for p in payments
    ]
    return _paginated(items, total, page, page_size)


@router.get("/stats")
async def stats(db: Session = Depends(get_db)):
    completed_payments = db.query(Payment).filter(Payment.status == "COMPLETED")
    revenue = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(Payment.status == "COMPLETED").scalar()
    return {
        "usersCount": db.query(User).count(),
        "attemptsCount": db.query(UserExamAttempt).count(),
        "completedAttempts": db.query(UserExamAttempt).filter(UserExamAttempt.status == "COMPLETED").count(),
        "paymentsCompleted": completed_payments.count(),
        "totalRevenue": revenue or 0,
        "questionBank": count_by_section(db),
    }
