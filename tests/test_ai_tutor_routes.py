from unittest.mock import AsyncMock, patch

from conftest import make_pro

from arab_exam.access_control import PRO_LIMITS
from arab_exam.ai_client import AIResponse
from arab_exam.tutor import build_system_prompt


def _ai_reply(text="Bu savolga javob", tokens=42):
	return AsyncMock(return_value=AIResponse(text=text, provider="gemini", tokens_used=tokens))


class TestChat:
	def test_free_user_refused(self, client, student):
		headers, _ = student
		r = client.post("/api/ai-tutor/chat", headers=headers, json={"message": "Salom"})
		assert r.status_code == 403
		assert r.json()["detail"]["upgradeRequired"] is True

	def test_pro_user_chat(self, client, student, db):
		headers, user = student
		make_pro(db, user["id"])
		with patch("arab_exam.tutor.is_ai_available", return_value=True), patch("arab_exam.tutor.ai_generate", _ai_reply()):
			r = client.post("/api/ai-tutor/chat", headers=headers, json={"message": "Idofa nima?"})
		assert r.status_code == 200
		body = r.json()
		assert body["questionAsked"] == "Idofa nima?"
		assert body["aiResponse"] == "Bu savolga javob"
		assert body["used"] == 1
		assert body["limit"] == PRO_LIMITS["aiTutor"]

	def test_ai_failure_is_503(self, client, student, db):
		headers, user = student
		make_pro(db, user["id"])
		with patch("arab_exam.tutor.is_ai_available", return_value=True), patch("arab_exam.tutor.ai_generate", _ai_reply(text="")):
			r = client.post("/api/ai-tutor/chat", headers=headers, json={"message": "Savol"})
		assert r.status_code == 503
		quota = client.get("/api/ai-tutor/quota", headers=headers).json()
		assert quota["used"] == 0

	def test_ai_not_configured_is_503(self, client, student, db):
		headers, user = student
		make_pro(db, user["id"])
		r = client.post("/api/ai-tutor/chat", headers=headers, json={"message": "Savol"})
		assert r.status_code == 503

	def test_message_length(self, client, student, db):
		headers, user = student
		make_pro(db, user["id"])
		assert client.post("/api/ai-tutor/chat", headers=headers, json={"message": ""}).status_code == 400
		assert client.post("/api/ai-tutor/chat", headers=headers, json={"message": "x" * 2001}).status_code == 400


class TestQuotaHistory:
	def test_free_quota(self, client, student):
		headers, _ = student
		quota = client.get("/api/ai-tutor/quota", headers=headers).json()
		assert quota == {"used": 0, "limit": 0, "tier": "FREE", "allowed": False, "reason": quota["reason"]}

	def test_history_pages(self, client, student, db):
		headers, user = student
		make_pro(db, user["id"])
		with patch("arab_exam.tutor.is_ai_available", return_value=True), patch("arab_exam.tutor.ai_generate", _ai_reply()):
			for i in range(12):
				assert client.post("/api/ai-tutor/chat", headers=headers, json={"message": f"Savol {i}"}).status_code == 200

		first = client.get("/api/ai-tutor/history?pageSize=10", headers=headers).json()
		assert first["total"] == 12
		assert first["totalPages"] == 2
		assert len(first["items"]) == 10
		second = client.get("/api/ai-tutor/history?pageSize=10&page=2", headers=headers).json()
		assert len(second["items"]) == 2

		quota = client.get("/api/ai-tutor/quota", headers=headers).json()
		assert quota["used"] == 12
		assert quota["tier"] == "PRO"


def test_system_prompt_language_and_level():
	prompt = build_system_prompt("ru", "B1")
	assert "Russian" in prompt
	assert "B1" in prompt
	assert "Uzbek" in build_system_prompt("xx")
