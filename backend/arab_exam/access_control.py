"""
Access Control
==============

Three plans decide what a user may do:

- free: one writing and one speaking demo, no mock exams, no AI tutor
- standard: holds a valid (unexpired, unused) mock exam purchase
- pro: an active, unexpired subscription with monthly quotas

Pro quotas are counted in 30-day periods starting at the subscription start.
Free demos are counted over a permanent period (2000-01-01 .. 2099-12-31).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from .db import get_db
from .models import Purchase, Subscription, UsageTracking, User
from .routers.auth import get_current_user

logger = logging.getLogger(__name__)

PRO_LIMITS: Dict[str, int] = {"mock": 3, "writing": 10, "speaking": 6, "aiTutor": 50}
FREE_LIMITS: Dict[str, int] = {"mock": 0, "writing": 1, "speaking": 1, "aiTutor": 0}

PERIOD = timedelta(days=30)
FREE_PERIOD_START = datetime(2000, 1, 1)
FREE_PERIOD_END = datetime(2099, 12, 31)


def _result(allowed: bool, plan_type: str, reason: Optional[str] = None) -> Dict[str, Any]:
	return {"allowed": allowed, "planType": plan_type, "reason": reason}


def get_active_subscription(db: Session, user_id: str) -> Optional[Subscription]:
	return (
		db.query(Subscription)
		.filter(
			Subscription.user_id == user_id,
			Subscription.plan_type == "pro",
			Subscription.status == "active",
			Subscription.expires_at > datetime.utcnow(),
		)
		.order_by(Subscription.expires_at.desc())
		.first()
	)


def get_valid_purchases(db: Session, user_id: str, product_type: str = "mock_exam") -> List[Purchase]:
	return (
		db.query(Purchase)
		.filter(
			Purchase.user_id == user_id,
			Purchase.product_type == product_type,
			Purchase.remaining_uses > 0,
			Purchase.expires_at > datetime.utcnow(),
		)
		.order_by(Purchase.expires_at.asc())
		.all()
	)


def get_or_create_usage(db: Session, user_id: str, usage_type: str, subscription: Subscription) -> UsageTracking:
	now = datetime.utcnow()
	period_start = subscription.started_at
	while period_start + PERIOD <= now:
		period_start += PERIOD
	period_end = period_start + PERIOD

	usage = (
		db.query(UsageTracking)
		.filter(
			UsageTracking.user_id == user_id,
			UsageTracking.type == usage_type,
			UsageTracking.period_start >= period_start,
			UsageTracking.period_start < period_end,
		)
		.first()
	)
	if usage is None:
		usage = UsageTracking(
			user_id=user_id,
			type=usage_type,
			used_count=0,
			period_start=period_start,
			period_end=period_end,
		)
		db.add(usage)
		db.flush()
	return usage


def get_total_usage(db: Session, user_id: str, usage_type: str) -> int:
	total = (
		db.query(func.coalesce(func.sum(UsageTracking.used_count), 0))
		.filter(UsageTracking.user_id == user_id, UsageTracking.type == usage_type)
		.scalar()
	)
	return int(total or 0)


def get_user_plan_type(db: Session, user_id: str) -> str:
	if get_active_subscription(db, user_id) is not None:
		return "pro"
	if get_valid_purchases(db, user_id):
		return "standard"
	return "free"


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _check_pro_quota(db: Session, user_id: str, usage_type: str, label: str) -> Dict[str, Any]:
	sub = get_active_subscription(db, user_id)
	if sub is None:
		return _result(False, "free", "Subscription not found.")
	usage = get_or_create_usage(db, user_id, usage_type, sub)
	limit = PRO_LIMITS[usage_type]
	if usage.used_count >= limit:
		return _result(False, "pro", f"Monthly {label} limit reached ({limit}/{limit}).")
	return _result(True, "pro")


def _check_free_demo(db: Session, user_id: str, usage_type: str) -> Dict[str, Any]:
	if get_total_usage(db, user_id, usage_type) >= FREE_LIMITS[usage_type]:
		return _result(False, "free", "The free demo has been used. Upgrade to Pro.")
	return _result(True, "free")


def can_start_mock(db: Session, user_id: str) -> Dict[str, Any]:
	plan_type = get_user_plan_type(db, user_id)
	if plan_type == "free":
		return _result(False, plan_type, "The free plan only includes the demo exam. Buy an exam or upgrade to Pro.")
	if plan_type == "standard":
		purchases = get_valid_purchases(db, user_id)
		if purchases and purchases[0].remaining_uses > 0:
			return _result(True, plan_type)
		return _result(False, plan_type, "No exam attempts left. Buy a new exam.")
	return _check_pro_quota(db, user_id, "mock", "mock exam")


def can_use_writing_ai(db: Session, user_id: str) -> Dict[str, Any]:
	plan_type = get_user_plan_type(db, user_id)
	if plan_type == "free":
		return _check_free_demo(db, user_id, "writing")
	if plan_type == "standard":
		return _result(False, plan_type, "Writing AI is only available on the Pro plan.")
	return _check_pro_quota(db, user_id, "writing", "writing AI")


def can_use_speaking_ai(db: Session, user_id: str) -> Dict[str, Any]:
	plan_type = get_user_plan_type(db, user_id)
	if plan_type == "free":
		return _check_free_demo(db, user_id, "speaking")
	if plan_type == "standard":
		return _result(False, plan_type, "Speaking AI is only available on the Pro plan.")
	return _check_pro_quota(db, user_id, "speaking", "speaking AI")


def can_use_ai_tutor(db: Session, user_id: str) -> Dict[str, Any]:
	plan_type = get_user_plan_type(db, user_id)
	if plan_type != "pro":
		return _result(False, plan_type, "The AI tutor is only available on the Pro plan. Upgrade to Pro.")
	return _check_pro_quota(db, user_id, "aiTutor", "AI tutor")


def can_access_full_sarf(db: Session, user_id: str) -> Dict[str, Any]:
	plan_type = get_user_plan_type(db, user_id)
	if plan_type == "pro":
		return _result(True, plan_type)
	return _result(False, plan_type, "Full access to the Sarf platform is only available on the Pro plan.")


# ---------------------------------------------------------------------------
# Usage recording
# ---------------------------------------------------------------------------

def _increment_pro_usage(db: Session, user_id: str, usage_type: str) -> None:
	sub = get_active_subscription(db, user_id)
	if sub is not None:
		usage = get_or_create_usage(db, user_id, usage_type, sub)
		usage.used_count += 1


def _increment_free_usage(db: Session, user_id: str, usage_type: str) -> None:
	usage = (
		db.query(UsageTracking)
		.filter(
			UsageTracking.user_id == user_id,
			UsageTracking.type == usage_type,
			UsageTracking.period_start == FREE_PERIOD_START,
		)
		.first()
	)
	if usage is None:
		db.add(
			UsageTracking(
				user_id=user_id,
				type=usage_type,
				used_count=1,
				period_start=FREE_PERIOD_START,
				period_end=FREE_PERIOD_END,
			)
		)
	else:
		usage.used_count += 1


def record_mock_usage(db: Session, user_id: str) -> None:
	plan_type = get_user_plan_type(db, user_id)
	if plan_type == "standard":
		purchases = get_valid_purchases(db, user_id)
		if purchases:
			purchases[0].remaining_uses -= 1
	elif plan_type == "pro":
		_increment_pro_usage(db, user_id, "mock")
	db.commit()


def _record_demo_or_quota(db: Session, user_id: str, usage_type: str) -> None:
	plan_type = get_user_plan_type(db, user_id)
	if plan_type == "free":
		_increment_free_usage(db, user_id, usage_type)
	elif plan_type == "pro":
		_increment_pro_usage(db, user_id, usage_type)
	db.commit()


def record_writing_usage(db: Session, user_id: str) -> None:
	_record_demo_or_quota(db, user_id, "writing")


def record_speaking_usage(db: Session, user_id: str) -> None:
	_record_demo_or_quota(db, user_id, "speaking")


def record_ai_tutor_usage(db: Session, user_id: str) -> None:
	if get_user_plan_type(db, user_id) == "pro":
		_increment_pro_usage(db, user_id, "aiTutor")
	db.commit()


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def get_access_status(db: Session, user_id: str) -> Dict[str, Any]:
	plan_type = get_user_plan_type(db, user_id)
	sub = get_active_subscription(db, user_id)
	purchases = get_valid_purchases(db, user_id)

	used = {usage_type: 0 for usage_type in PRO_LIMITS}
	limits = {usage_type: 0 for usage_type in PRO_LIMITS}
	if plan_type == "pro" and sub is not None:
		for usage_type in PRO_LIMITS:
			used[usage_type] = get_or_create_usage(db, user_id, usage_type, sub).used_count
		limits = dict(PRO_LIMITS)
	elif plan_type == "free":
		for usage_type in ("writing", "speaking"):
			used[usage_type] = get_total_usage(db, user_id, usage_type)
			limits[usage_type] = FREE_LIMITS[usage_type]

	purchase_uses = sum(p.remaining_uses for p in purchases)
	if plan_type == "standard":
		used["mock"] = 0
		limits["mock"] = purchase_uses

	status = {
		"planType": plan_type,
		"subscription": {
			"active": sub is not None,
			"expiresAt": sub.expires_at.isoformat() if sub is not None else None,
		},
		"purchases": {
			"mockExam": {
				"available": purchase_uses,
				"expiresAt": purchases[0].expires_at.isoformat() if purchases else None,
			},
		},
		"usage": {usage_type: {"used": used[usage_type], "limit": limits[usage_type]} for usage_type in PRO_LIMITS},
		"access": {
			"fullSarf": can_access_full_sarf(db, user_id)["allowed"],
			"mockExam": can_start_mock(db, user_id)["allowed"],
			"writingAI": can_use_writing_ai(db, user_id)["allowed"],
			"speakingAI": can_use_speaking_ai(db, user_id)["allowed"],
			"aiTutor": can_use_ai_tutor(db, user_id)["allowed"],
		},
	}
	# get_or_create_usage may have added rows for a new period
	db.commit()
	return status


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def _require(check):
	def dependency(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
		result = check(db, user.id)
		db.commit()
		if not result["allowed"]:
			logger.info("Access denied for user %s: %s", user.id, result["reason"])
			raise HTTPException(
				status_code=403,
				detail={
					"message": result["reason"],
					"planType": result["planType"],
					"upgradeRequired": True,
				},
			)
		return user

	return dependency


require_mock_access = _require(can_start_mock)
require_writing_access = _require(can_use_writing_ai)
require_speaking_access = _require(can_use_speaking_ai)
require_ai_tutor_access = _require(can_use_ai_tutor)
