from datetime import datetime, timedelta

import pytest

from arab_exam.models import Purchase, Subscription, UsageTracking, User
from arab_exam.subscription import (
	USAGE_TYPES,
	activate_subscription,
	cancel_subscription,
	effective_tier,
	get_plan,
)


@pytest.fixture
def user(db):
	u = User(email="payer@mail.uz", password_hash="x", full_name="Payer")
	db.add(u)
	db.commit()
	return u


class TestEffectiveTier:
	def test_valid_until_expiry(self):
		now = datetime(2026, 5, 1)
		assert effective_tier("PRO", now + timedelta(days=1), now=now) == "PRO"
		assert effective_tier("PRO", now, now=now) == "PRO"

	def test_expired_is_free(self):
		now = datetime(2026, 5, 1)
		assert effective_tier("PRO", now - timedelta(seconds=1), now=now) == "FREE"

	def test_no_expiry(self):
		assert effective_tier("FREE", None) == "FREE"


def test_plans():
	assert get_plan("mock_exam")["amount"] == 50_000
	assert get_plan("pro_basic")["amount"] == 89_000
	assert get_plan("pro_premium")["amount"] == 119_000
	assert get_plan("unknown") is None


class TestActivate:
	def test_mock_plan_creates_purchase(self, db, user):
		purchase = activate_subscription(db, user.id, get_plan("mock_exam"))
		db.commit()
		assert isinstance(purchase, Purchase)
		assert purchase.remaining_uses == 1
		assert purchase.expires_at > datetime.utcnow() + timedelta(days=6)

	def test_pro_plan_replaces_active_subscription(self, db, user):
		first = activate_subscription(db, user.id, get_plan("pro_basic"))
		db.commit()
		second = activate_subscription(db, user.id, get_plan("pro_premium"))
		db.commit()
		db.expire_all()

		assert db.get(Subscription, first.id).status == "cancelled"
		assert db.get(Subscription, second.id).status == "active"
		refreshed = db.get(User, user.id)
		assert refreshed.subscription_tier == "PRO"
		assert refreshed.subscription_expires_at == db.get(Subscription, second.id).expires_at
		rows = db.query(UsageTracking).filter(UsageTracking.user_id == user.id).all()
		assert {r.type for r in rows} == set(USAGE_TYPES)

	def test_cancel(self, db, user):
		activate_subscription(db, user.id, get_plan("pro_basic"))
		db.commit()
		cancel_subscription(db, user.id)
		db.commit()
		db.expire_all()
		refreshed = db.get(User, user.id)
		assert refreshed.subscription_tier == "FREE"
		assert refreshed.subscription_expires_at is None
		assert db.query(Subscription).filter(Subscription.status == "active").count() == 0
