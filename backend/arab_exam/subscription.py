from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from .models import Purchase, Subscription, UsageTracking, User

logger = logging.getLogger(__name__)

USAGE_TYPES = ["mock", "writing", "speaking", "aiTutor"]

PRO_PERIOD_DAYS = 30
MOCK_PURCHASE_DAYS = 7

SUBSCRIPTION_PLANS: List[Dict[str, Any]] = [
	{
		"id": "mock_exam",
		"type": "purchase",
		"tier": "MOCK",
		"name": "Mock Exam",
		"durationMonths": 0,
		"amount": 50_000,
		"description": "One full exam, valid for 7 days",
	},
	{
		"id": "pro_basic",
		"type": "subscription",
		"tier": "PRO",
		"name": "Pro Basic",
		"durationMonths": 1,
		"amount": 89_000,
		"description": "Monthly Pro subscription",
	},
	{
		"id": "pro_premium",
		"type": "subscription",
		"tier": "PRO",
		"name": "Pro Premium",
		"durationMonths": 1,
		"amount": 119_000,
		"description": "Monthly Pro subscription, premium price level",
	},
]


def get_plan(plan_id: Optional[str]) -> Optional[Dict[str, Any]]:
	for plan in SUBSCRIPTION_PLANS:
		if plan["id"] == plan_id:
			return plan
	return None


def effective_tier(tier: str, expires_at: Optional[datetime], now: Optional[datetime] = None) -> str:
	"""The stored tier while it is valid, "FREE" once ``expires_at`` has passed."""
	if expires_at is None or (now or datetime.utcnow()) <= expires_at:
		return tier
	return "FREE"


def create_mock_purchase(db: Session, user_id: str) -> Purchase:
	purchase = Purchase(
		user_id=user_id,
		product_type="mock_exam",
		quantity=1,
		remaining_uses=1,
		expires_at=datetime.utcnow() + timedelta(days=MOCK_PURCHASE_DAYS),
	)
	db.add(purchase)
	db.flush()
	return purchase


def cancel_active_subscriptions(db: Session, user_id: str) -> int:
	return (
		db.query(Subscription)
		.filter(Subscription.user_id == user_id, Subscription.status == "active")
		.update({Subscription.status: "cancelled"}, synchronize_session=False)
	)


def create_pro_subscription(db: Session, user_id: str) -> Subscription:
	# Not guarded against a concurrent activation for the same user
	started_at = datetime.utcnow()
	expires_at = started_at + timedelta(days=PRO_PERIOD_DAYS)
	cancel_active_subscriptions(db, user_id)
	subscription = Subscription(
		user_id=user_id,
		plan_type="pro",
		status="active",
		started_at=started_at,
		expires_at=expires_at,
	)
	db.add(subscription)
	for usage_type in USAGE_TYPES:
		exists = (
			db.query(UsageTracking)
			.filter(
				UsageTracking.user_id == user_id,
				UsageTracking.type == usage_type,
				UsageTracking.period_start == started_at,
			)
			.first()
		)
		if exists is None:
			db.add(
				UsageTracking(
					user_id=user_id,
					type=usage_type,
					used_count=0,
					period_start=started_at,
					period_end=expires_at,
				)
			)
	user = db.get(User, user_id)
	if user is not None:
		user.subscription_tier = "PRO"
		user.subscription_expires_at = expires_at
	db.flush()
	logger.info("Pro subscription %s active for user %s until %s", subscription.id, user_id, expires_at)
	return subscription


def activate_subscription(db: Session, user_id: str, plan: Dict[str, Any]) -> Union[Purchase, Subscription]:
	"""Grant what a paid plan buys: a mock purchase or a fresh 30-day Pro period."""
	if plan["id"] == "mock_exam":
		return create_mock_purchase(db, user_id)
	return create_pro_subscription(db, user_id)


def cancel_subscription(db: Session, user_id: str) -> None:
	cancel_active_subscriptions(db, user_id)
	user = db.get(User, user_id)
	if user is not None:
		user.subscription_tier = "FREE"
		user.subscription_expires_at = None
	db.flush()
