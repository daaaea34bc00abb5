import pytest

from arab_exam.click import sign_complete, sign_prepare
from arab_exam.models import Payment, User


def _create_payment(client, headers, plan_id="pro_basic"):
	r = client.post("/api/subscriptions/create-payment", headers=headers, json={"planId": plan_id, "provider": "click"})
	assert r.status_code == 200, r.text
	return r.json()


def _prepare_form(payment_id, amount="89000", **overrides):
	form = {
		"click_trans_id": "9001",
		"service_id": "111",
		"merchant_trans_id": payment_id,
		"amount": amount,
		"action": "0",
		"sign_time": "2026-05-01 10:00:00",
		"error": "0",
	}
	form.update(overrides)
	form.setdefault(
		"sign_string",
		sign_prepare(form["click_trans_id"], form["service_id"], payment_id, form["amount"], form["action"], form["sign_time"]),
	)
	return form


def _complete_form(payment_id, amount="89000", **overrides):
	form = {
		"click_trans_id": "9001",
		"service_id": "111",
		"merchant_trans_id": payment_id,
		"merchant_prepare_id": "1",
		"amount": amount,
		"action": "1",
		"sign_time": "2026-05-01 10:01:00",
		"error": "0",
	}
	form.update(overrides)
	form.setdefault(
		"sign_string",
		sign_complete(
			form["click_trans_id"],
			form["service_id"],
			payment_id,
			form["merchant_prepare_id"],
			form["amount"],
			form["action"],
			form["sign_time"],
		),
	)
	return form


def test_plans(client):
	plans = client.get("/api/subscriptions/plans").json()["plans"]
	assert [p["id"] for p in plans] == ["mock_exam", "pro_basic", "pro_premium"]
	assert all(p["currency"] == "UZS" for p in plans)


class TestCreatePayment:
	def test_pending_payment_and_redirect(self, client, student, db):
		headers, user = student
		body = _create_payment(client, headers)
		assert body["amount"] == 89000
		assert "my.click.uz/services/pay" in body["redirectUrl"]
		assert f"payment_id%3D{body['paymentId']}" in body["redirectUrl"]
		payment = db.get(Payment, body["paymentId"])
		assert payment.status == "PENDING"
		assert payment.user_id == user["id"]

	def test_unknown_plan(self, client, student):
		headers, _ = student
		r = client.post("/api/subscriptions/create-payment", headers=headers, json={"planId": "gold"})
		assert r.status_code == 400


class TestClickPrepare:
	def test_success(self, client, student):
		headers, _ = student
		payment = _create_payment(client, headers)
		r = client.post("/api/subscriptions/click/prepare", data=_prepare_form(payment["paymentId"]))
		assert r.status_code == 200
		assert r.json()["error"] == 0
		assert r.json()["merchant_prepare_id"] == 1

	def test_json_body_is_accepted(self, client, student):
		headers, _ = student
		payment = _create_payment(client, headers)
		r = client.post("/api/subscriptions/click/prepare", json=_prepare_form(payment["paymentId"]))
		assert r.json()["error"] == 0

	@pytest.mark.parametrize(
		"overrides,code",
		[
			({"error": "-5017"}, -8),
			({"sign_string": "bad"}, -1),
			({"amount": "1000"}, -2),
		],
	)
	def test_errors(self, client, student, overrides, code):
		headers, _ = student
		payment = _create_payment(client, headers)
		r = client.post("/api/subscriptions/click/prepare", data=_prepare_form(payment["paymentId"], **overrides))
		assert r.status_code == 200
		assert r.json()["error"] == code

	def test_unknown_order(self, client):
		r = client.post("/api/subscriptions/click/prepare", data=_prepare_form("missing"))
		assert r.json()["error"] == -5


class TestClickComplete:
	def test_activates_pro(self, client, student, db):
		headers, user = student
		payment = _create_payment(client, headers)
		r = client.post("/api/subscriptions/click/complete", data=_complete_form(payment["paymentId"]))
		assert r.status_code == 200
		assert r.json()["error"] == 0
		assert r.json()["merchant_confirm_id"] == 1

		stored = db.get(Payment, payment["paymentId"])
		assert stored.status == "COMPLETED"
		assert stored.payment_provider_id == "9001"
		assert stored.paid_at is not None
		assert db.get(User, user["id"]).subscription_tier == "PRO"
		assert client.get("/api/auth/me", headers=headers).json()["user"]["subscriptionTier"] == "PRO"

	def test_second_complete_is_already_paid(self, client, student):
		headers, _ = student
		payment = _create_payment(client, headers)
		client.post("/api/subscriptions/click/complete", data=_complete_form(payment["paymentId"]))
		r = client.post("/api/subscriptions/click/complete", data=_complete_form(payment["paymentId"]))
		assert r.json()["error"] == -4
		assert r.json()["merchant_confirm_id"] == 1

	def test_mock_plan_creates_purchase(self, client, student):
		headers, _ = student
		payment = _create_payment(client, headers, "mock_exam")
		client.post("/api/subscriptions/click/complete", data=_complete_form(payment["paymentId"], amount="50000"))
		status = client.get("/api/access/status", headers=headers).json()
		assert status["planType"] == "standard"
		assert status["purchases"]["mockExam"]["available"] == 1

	def test_invalid_plan(self, client, student, db):
		headers, user = student
		payment = Payment(user_id=user["id"], amount=1, provider="click", plan_id="legacy")
		db.add(payment)
		db.commit()
		r = client.post("/api/subscriptions/click/complete", data=_complete_form(payment.id, amount="1"))
		assert r.json()["error"] == -6

	def test_cancelled_by_click(self, client, student):
		headers, _ = student
		payment = _create_payment(client, headers)
		r = client.post("/api/subscriptions/click/complete", data=_complete_form(payment["paymentId"], error="-1"))
		assert r.json()["error"] == -9

	def test_bad_sign_and_missing_order(self, client):
		assert client.post("/api/subscriptions/click/complete", data=_complete_form("x", sign_string="bad")).json()["error"] == -1
		assert client.post("/api/subscriptions/click/complete", data=_complete_form("missing")).json()["error"] == -5
