from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..access_control import (
	PRO_LIMITS,
	can_use_ai_tutor,
	get_active_subscription,
	get_or_create_usage,
	record_ai_tutor_usage,
	require_ai_tutor_access,
)
from ..db import get_db
from ..models import AITutorConversation, User
from ..tutor import chat_with_tutor
from .auth import get_current_user

router = APIRouter(prefix="/ai-tutor", tags=["ai-tutor"])

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
	message: str = Field(min_length=1, max_length=2000)


def _conversation(c: AITutorConversation) -> dict:
	return {
		"id": c.id,
		"questionAsked": c.question_asked,
		"aiResponse": c.ai_response,
		"tokensUsed": c.tokens_used,
		"createdAt": c.created_at.isoformat() if c.created_at else None,
	}


def _tutor_usage(db: Session, user_id: str) -> int:
	sub = get_active_subscription(db, user_id)
	if sub is None:
		return 0
	return get_or_create_usage(db, user_id, "aiTutor", sub).used_count


@router.get("/quota")
async def quota(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	access = can_use_ai_tutor(db, user.id)
	if access["planType"] == "pro":
		used = _tutor_usage(db, user.id)
		db.commit()
		return {"used": used, "limit": PRO_LIMITS["aiTutor"], "tier": "PRO", "allowed": access["allowed"], "reason": access["reason"]}
	db.commit()
	return {"used": 0, "limit": 0, "tier": access["planType"].upper(), "allowed": False, "reason": access["reason"]}


@router.post("/chat")
async def chat(req: ChatRequest, user: User = Depends(require_ai_tutor_access), db: Session = Depends(get_db)):
	level = user.progress.current_cefr_estimate if user.progress else None
	try:
		reply, tokens = await chat_with_tutor(req.message, user.language_preference or "uz", level)
	except Exception as e:
		logger.error("AI tutor failed for user %s: %s", user.id, e)
		raise HTTPException(status_code=503, detail=str(e) or "The AI tutor did not answer")

	conv = AITutorConversation(user_id=user.id, question_asked=req.message, ai_response=reply, tokens_used=tokens)
	db.add(conv)
	db.commit()
	db.refresh(conv)
	record_ai_tutor_usage(db, user.id)

	data = _conversation(conv)
	data["used"] = _tutor_usage(db, user.id)
	data["limit"] = PRO_LIMITS["aiTutor"]
	return data


@router.get("/history")
async def history(
	page: int = Query(default=1),
	pageSize: int = Query(default=20),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	page = max(1, page)
	page_size = min(50, max(10, pageSize))
	q = db.query(AITutorConversation).filter(AITutorConversation.user_id == user.id)
	total = q.count()
	items = (
		q.order_by(AITutorConversation.created_at.desc())
		.offset((page - 1) * page_size)
		.limit(page_size)
		.all()
	)
	return {
		"items": [_conversation(c) for c in items],
		"total": total,
		"page": page,
		"pageSize": page_size,
		"totalPages": math.ceil(total / page_size),
	}
