import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="arab_exam_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["UPLOADS_DIR"] = os.path.join(_TMP, "uploads")
os.environ["ENVIRONMENT"] = "development"
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["GOOGLE_SPEECH_ENABLED"] = "false"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_CHAT_ID"] = ""
os.environ["CLICK_SERVICE_ID"] = "111"
os.environ["CLICK_MERCHANT_ID"] = "222"
os.environ["CLICK_SECRET_KEY"] = "click-secret"

import pytest
from fastapi.testclient import TestClient

from arab_exam.ai_writing_speaking import SpeakingExamResponse, WritingTasksResponse
from arab_exam.db import Base, SessionLocal, engine
from arab_exam.main import app
from arab_exam.models import QuestionBank, User
from arab_exam.question_bank import BANK_SECTIONS, SECTION_COUNTS
from arab_exam.subscription import create_mock_purchase, create_pro_subscription


@pytest.fixture(autouse=True)
def fresh_db():
	Base.metadata.drop_all(bind=engine)
	Base.metadata.create_all(bind=engine)
	yield


@pytest.fixture
def db():
	session = SessionLocal()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def client():
	with TestClient(app) as c:
		yield c


def register(client, email="student@mail.uz", password="secret123", full_name="Test Student"):
	r = client.post("/api/auth/register", json={"email": email, "password": password, "fullName": full_name})
	assert r.status_code == 201, r.text
	body = r.json()
	return {"Authorization": f"Bearer {body['accessToken']}"}, body["user"]


@pytest.fixture
def student(client):
	return register(client)


def make_pro(db, user_id):
	sub = create_pro_subscription(db, user_id)
	db.commit()
	return sub


def make_standard(db, user_id):
	purchase = create_mock_purchase(db, user_id)
	db.commit()
	return purchase


def make_admin(db, user_id):
	user = db.get(User, user_id)
	user.is_admin = True
	db.commit()


def seed_bank(db, level="B1", extra=0):
	"""Enough objective questions in every section for one attempt at ``level``."""
	for section in BANK_SECTIONS:
		for i in range(SECTION_COUNTS[level][section] + extra):
			db.add(
				QuestionBank(
					level=level,
					section=section,
					task_type="mcq",
					prompt=f"{section} question {i}",
					options='["a", "b", "c", "d"]',
					correct_answer="a",
				)
			)
	db.commit()


def writing_tasks(count=2):
	return WritingTasksResponse.model_validate(
		{
			"tasks": [
				{"taskId": f"w{i}", "prompt": f"اكتب عن موضوع {i}", "wordLimit": 150, "rubric": {"content": 4}}
				for i in range(1, count + 1)
			]
		}
	)


def speaking_tasks():
	return SpeakingExamResponse.model_validate(
		{
			"tasks": [
				{"taskId": "s1", "part": "intro", "prompt": "عرّف بنفسك"},
				{"taskId": "s2", "part": "monologue", "prompt": "تحدث عن مدينتك"},
				{"taskId": "s3", "part": "discussion", "prompt": "ما رأيك في التعليم؟"},
			]
		}
	)


@pytest.fixture
def fake_generation(monkeypatch):
	"""Replace AI task generation with fixed writing and speaking tasks."""
	calls = {"writing": []}

	async def fake_writing(level, count=2):
		calls["writing"].append((level, count))
		return writing_tasks(count)

	async def fake_speaking(level):
		return speaking_tasks()

	monkeypatch.setattr("arab_exam.cefr_attempt.generate_writing_tasks", fake_writing)
	monkeypatch.setattr("arab_exam.cefr_attempt.generate_speaking_tasks", fake_speaking)
	return calls
