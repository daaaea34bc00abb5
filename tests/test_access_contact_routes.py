from unittest.mock import AsyncMock, patch

import httpx

from arab_exam.models import Payment
from arab_exam.routers import contact


class TestAccessRoutes:
	def test_status_for_new_user(self, client, student):
		headers, _ = student
		status = client.get("/api/access/status", headers=headers).json()
		assert status["planType"] == "free"
		assert status["usage"]["writing"] == {"used": 0, "limit": 1}
		assert status["access"]["mockExam"] is False

	def test_purchase_mock(self, client, student, db):
		headers, user = student
		r = client.post("/api/access/purchase/mock", headers=headers)
		assert r.status_code == 200
		assert r.json()["purchase"]["remainingUses"] == 1
		payment = db.query(Payment).filter(Payment.user_id == user["id"]).one()
		assert payment.provider == "simulated"
		assert payment.amount == 50000
		assert payment.status == "COMPLETED"

	def test_subscribe_premium_and_cancel(self, client, student, db):
		headers, user = student
		r = client.post("/api/access/subscribe/pro", headers=headers, json={"priceLevel": "premium"})
		assert r.status_code == 200
		assert r.json()["subscription"]["status"] == "active"
		payment = db.query(Payment).filter(Payment.user_id == user["id"]).one()
		assert payment.amount == 119000
		assert payment.plan_id == "pro_monthly"
		assert client.get("/api/auth/me", headers=headers).json()["user"]["subscriptionTier"] == "PRO"

		assert client.post("/api/access/cancel", headers=headers).json()["success"] is True
		assert client.get("/api/access/status", headers=headers).json()["planType"] == "free"
		assert client.get("/api/auth/me", headers=headers).json()["user"]["subscriptionTier"] == "FREE"

	def test_subscribe_defaults_to_basic(self, client, student, db):
		headers, user = student
		client.post("/api/access/subscribe/pro", headers=headers)
		assert db.query(Payment).filter(Payment.user_id == user["id"]).one().amount == 89000

	def test_usage_record(self, client, student):
		headers, _ = student
		r = client.post("/api/access/usage/record", headers=headers, json={"type": "speaking"})
		assert r.status_code == 200
		assert r.json()["status"]["usage"]["speaking"]["used"] == 1
		assert client.post("/api/access/usage/record", headers=headers, json={"type": "tutor"}).status_code == 400


class TestContact:
	def test_validation(self, client):
		assert client.post("/api/contact", json={"message": "long enough message"}).status_code == 400
		assert client.post("/api/contact", json={"fullName": "Ali", "message": "short"}).status_code == 400

	def test_logged_when_telegram_missing(self, client):
		r = client.post("/api/contact", json={"fullName": "Ali", "message": "I would like to ask about prices"})
		assert r.status_code == 200
		assert r.json()["ok"] is True

	def test_sent_to_telegram(self, client, monkeypatch):
		monkeypatch.setattr(contact.settings, "telegram_bot_token", "bot-token")
		monkeypatch.setattr(contact.settings, "telegram_chat_id", "42")
		sender = AsyncMock()
		with patch.object(contact, "send_telegram", sender):
			r = client.post(
				"/api/contact",
				json={"fullName": "Ali", "phone": "+998901234567", "message": "I would like to ask about prices"},
			)
		assert r.status_code == 200
		text = sender.call_args.args[0]
		assert "+998901234567" in text
		assert "Ali" in text

	def test_telegram_failure_is_500(self, client, monkeypatch):
		monkeypatch.setattr(contact.settings, "telegram_bot_token", "bot-token")
		monkeypatch.setattr(contact.settings, "telegram_chat_id", "42")
		with patch.object(contact, "send_telegram", AsyncMock(side_effect=httpx.ConnectError("down"))):
			r = client.post("/api/contact", json={"fullName": "Ali", "message": "I would like to ask about prices"})
		assert r.status_code == 500

	def test_format_message_without_phone(self):
		text = contact.format_message("Ali", None, "Salom, savolim bor")
		assert "Phone" not in text
		assert text.startswith("*New message - Arab Exam*")


def test_health(client):
	r = client.get("/api/health")
	assert r.status_code == 200
	assert r.json()["ok"] is True
