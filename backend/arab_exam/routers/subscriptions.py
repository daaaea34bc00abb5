"""
Subscriptions and Click payments
================================

``create-payment`` stores a PENDING payment and returns the Click checkout URL.
Click then calls ``click/prepare`` and ``click/complete``; both always answer
HTTP 200 and report problems through Click's ``error`` codes. A completed
payment activates the plan it was created for.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import click
from ..db import get_db
from ..models import Payment, User
from ..settings import settings
from ..subscription import SUBSCRIPTION_PLANS, activate_subscription, get_plan
from .auth import get_current_user

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])

logger = logging.getLogger(__name__)


class CreatePaymentRequest(BaseModel):
	planId: Literal["mock_exam", "pro_basic", "pro_premium"]
	provider: Literal["click"] = "click"


async def _callback_body(request: Request) -> Dict[str, Any]:
	"""Click posts form data; JSON is accepted too."""
	if request.headers.get("content-type", "").startswith("application/json"):
		try:
			data = await request.json()
		except ValueError:
			return {}
		return data if isinstance(data, dict) else {}
	form = await request.form()
	return dict(form)


def _str(value: Any) -> str:
	return "" if value is None else str(value)


def _int(value: Any) -> int:
	try:
		return int(value)
	except (TypeError, ValueError):
		return 0


@router.get("/plans")
async def list_plans():
	return {
		"plans": [
			{
				"id": p["id"],
				"tier": p["tier"],
				"name": p["name"],
				"durationMonths": p["durationMonths"],
				"amount": p["amount"],
				"currency": "UZS",
				"description": p["description"],
			}
			for p in SUBSCRIPTION_PLANS
		]
	}


@router.post("/create-payment")
async def create_payment(req: CreatePaymentRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	plan = get_plan(req.planId)
	if plan is None:
		raise HTTPException(status_code=400, detail="Unknown plan")
	payment = Payment(
		user_id=user.id,
		amount=plan["amount"],
		currency="UZS",
		status="PENDING",
		provider=req.provider,
		plan_id=plan["id"],
	)
	db.add(payment)
	db.commit()
	db.refresh(payment)

	return_url = f"{settings.frontend_url}/payment/return?payment_id={payment.id}"
	redirect_url = click.get_click_pay_url(
		plan["amount"],
		payment.id,
		return_url=return_url,
		merchant_user_id=user.id,
	)
	logger.info("Payment %s created for user %s (%s)", payment.id, user.id, plan["id"])
	return {
		"paymentId": payment.id,
		"amount": plan["amount"],
		"currency": "UZS",
		"provider": req.provider,
		"redirectUrl": redirect_url,
	}


@router.post("/click/prepare")
async def click_prepare(request: Request, db: Session = Depends(get_db)):
	body = await _callback_body(request)
	click_trans_id = _str(body.get("click_trans_id"))
	merchant_trans_id = _str(body.get("merchant_trans_id"))
	amount = _str(body.get("amount"))

	def reply(error: int, note: str, prepare_id: int = 0) -> Dict[str, Any]:
		return {
			"click_trans_id": click_trans_id,
			"merchant_trans_id": merchant_trans_id,
			"merchant_prepare_id": prepare_id,
			"error": error,
			"error_note": note,
		}

	if _int(body.get("error")) != 0:
		return reply(click.CLICK_PREPARE_ERROR, "Payment error from Click")

	if not click.verify_prepare_sign(
		click_trans_id,
		_str(body.get("service_id")),
		merchant_trans_id,
		amount,
		_str(body.get("action")),
		_str(body.get("sign_time")),
		_str(body.get("sign_string")),
	):
		logger.warning("Click prepare with invalid sign for %s", merchant_trans_id)
		return reply(click.CLICK_SIGN_FAILED, "Invalid sign")

	payment = (
		db.query(Payment)
		.filter(Payment.id == merchant_trans_id, Payment.status == "PENDING")
		.first()
	)
	if payment is None:
		return reply(click.CLICK_ORDER_NOT_FOUND, "Order not found")

	try:
		paid = float(amount)
	except ValueError:
		paid = 0.0
	if abs(paid - payment.amount) > 0.01:
		return reply(click.CLICK_AMOUNT_MISMATCH, "Amount mismatch")

	return reply(click.CLICK_SUCCESS, "Success", prepare_id=1)


@router.post("/click/complete")
async def click_complete(request: Request, db: Session = Depends(get_db)):
	body = await _callback_body(request)
	click_trans_id = _str(body.get("click_trans_id"))
	merchant_trans_id = _str(body.get("merchant_trans_id"))

	def reply(error: int, note: str, confirm_id: int = 0) -> Dict[str, Any]:
		return {
			"click_trans_id": click_trans_id,
			"merchant_trans_id": merchant_trans_id,
			"merchant_confirm_id": confirm_id,
			"error": error,
			"error_note": note,
		}

	if _int(body.get("error")) != 0:
		return reply(click.CLICK_CANCELLED, "Payment cancelled")

	if not click.verify_complete_sign(
		click_trans_id,
		_str(body.get("service_id")),
		merchant_trans_id,
		_str(body.get("merchant_prepare_id")),
		_str(body.get("amount")),
		_str(body.get("action")),
		_str(body.get("sign_time")),
		_str(body.get("sign_string")),
	):
		logger.warning("Click complete with invalid sign for %s", merchant_trans_id)
		return reply(click.CLICK_SIGN_FAILED, "Invalid sign")

	payment = db.get(Payment, merchant_trans_id) if merchant_trans_id else None
	if payment is None:
		return reply(click.CLICK_ORDER_NOT_FOUND, "Order not found")
	if payment.status == "COMPLETED":
		return reply(click.CLICK_ALREADY_PAID, "Already confirmed", confirm_id=1)

	plan = get_plan(payment.plan_id)
	if plan is None:
		return reply(click.CLICK_INVALID_PLAN, "Invalid plan")

	activate_subscription(db, payment.user_id, plan)
	payment.status = "COMPLETED"
	payment.payment_provider_id = click_trans_id
	payment.paid_at = datetime.utcnow()
	db.commit()
	logger.info("Payment %s completed via Click (%s)", payment.id, plan["id"])

	return reply(click.CLICK_SUCCESS, "Success", confirm_id=1)
