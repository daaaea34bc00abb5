import pytest

from conftest import make_admin, register, seed_bank

from arab_exam.models import Payment


@pytest.fixture
def admin(client, db):
	headers, user = register(client, email="admin@mail.uz")
	make_admin(db, user["id"])
	return headers


QUESTION = {
	"level": "B1",
	"section": "reading",
	"prompt": "ما الفكرة الرئيسية؟",
	"passage": "نص قصير",
	"options": ["أ", "ب", "ج", "د"],
	"correctAnswer": "أ",
	"tags": ["main-idea"],
}


class TestQuestionBankCrud:
	def test_non_admin_forbidden(self, client, student):
		headers, _ = student
		assert client.get("/api/admin/question-bank", headers=headers).status_code == 403

	def test_create_get_update_delete(self, client, admin):
		r = client.post("/api/admin/question-bank", headers=admin, json=QUESTION)
		assert r.status_code == 201
		created = r.json()
		assert created["options"] == QUESTION["options"]
		assert created["taskType"] == "mcq"
		qid = created["id"]

		assert client.get(f"/api/admin/question-bank/{qid}", headers=admin).json()["passage"] == "نص قصير"

		r = client.put(f"/api/admin/question-bank/{qid}", headers=admin, json={"level": "B2", "difficulty": 3})
		assert r.status_code == 200
		assert r.json()["level"] == "B2"
		assert r.json()["prompt"] == QUESTION["prompt"]

		assert client.delete(f"/api/admin/question-bank/{qid}", headers=admin).status_code == 204
		assert client.get(f"/api/admin/question-bank/{qid}", headers=admin).status_code == 404

	def test_rejects_unknown_section(self, client, admin):
		r = client.post("/api/admin/question-bank", headers=admin, json={**QUESTION, "section": "poetry"})
		assert r.status_code == 400

	def test_missing_question(self, client, admin):
		assert client.put("/api/admin/question-bank/none", headers=admin, json={"level": "A1"}).status_code == 404
		assert client.delete("/api/admin/question-bank/none", headers=admin).status_code == 404

	def test_list_filters_and_pages(self, client, admin, db):
		seed_bank(db, "A1")
		seed_bank(db, "B1")
		r = client.get("/api/admin/question-bank?level=A1&section=listening&pageSize=10", headers=admin)
		body = r.json()
		assert body["total"] == 15
		assert body["pageSize"] == 10
		assert body["totalPages"] == 2
		assert len(body["items"]) == 10
		assert all(i["level"] == "A1" and i["section"] == "listening" for i in body["items"])

		page2 = client.get("/api/admin/question-bank?level=A1&section=listening&pageSize=10&page=2", headers=admin).json()
		assert len(page2["items"]) == 5

	def test_page_size_is_clamped(self, client, admin):
		assert client.get("/api/admin/question-bank?pageSize=500", headers=admin).json()["pageSize"] == 100
		assert client.get("/api/admin/question-bank?pageSize=1", headers=admin).json()["pageSize"] == 10


class TestUsersPaymentsStats:
	def test_users(self, client, admin, student):
		body = client.get("/api/admin/users", headers=admin).json()
		assert body["total"] == 2
		assert {u["email"] for u in body["items"]} == {"admin@mail.uz", "student@mail.uz"}

	def test_payments_and_stats(self, client, admin, student, db):
		_, user = student
		db.add(Payment(user_id=user["id"], amount=89000, provider="click", plan_id="pro_basic", status="COMPLETED"))
		db.add(Payment(user_id=user["id"], amount=50000, provider="click", plan_id="mock_exam"))
		db.commit()
		seed_bank(db, "A1")

		payments = client.get("/api/admin/payments", headers=admin).json()
		assert payments["total"] == 2
		assert payments["items"][0]["userEmail"] == "student@mail.uz"

		stats = client.get("/api/admin/stats", headers=admin).json()
		assert stats["usersCount"] == 2
		assert stats["paymentsCompleted"] == 1
		assert stats["totalRevenue"] == 89000
		assert stats["questionBank"] == {"listening": 15, "reading": 15, "language_use": 15}
