from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..access_control import get_access_status, record_mock_usage, record_speaking_usage, record_writing_usage
from ..db import get_db
from ..models import Payment, User
from ..subscription import cancel_subscription, create_mock_purchase, create_pro_subscription, get_plan
from .auth import get_current_user

router = APIRouter(prefix="/access", tags=["access"])

logger = logging.getLogger(__name__)

PRO_PRICES = {"basic": "pro_basic", "premium": "pro_premium"}

_RECORDERS = {
	"mock": record_mock_usage,
	"writing": record_writing_usage,
	"speaking": record_speaking_usage,
}


class SubscribeRequest(BaseModel):
	priceLevel: Literal["basic", "premium"] = "basic"


class UsageRecordRequest(BaseModel):
	type: Literal["mock", "writing", "speaking"]


def _simulated_payment(user_id: str, amount: float, plan_id: str) -> Payment:
	return Payment(
		user_id=user_id,
		amount=amount,
		currency="UZS",
		status="COMPLETED",
		provider="simulated",
		plan_id=plan_id,
		paid_at=datetime.utcnow(),
	)


@router.get("/status")
async def access_status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return get_access_status(db, user.id)


@router.post("/purchase/mock")
async def purchase_mock(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	purchase = create_mock_purchase(db, user.id)
	db.add(_simulated_payment(user.id, get_plan("mock_exam")["amount"], "mock_exam"))
	db.commit()
	logger.info("Simulated mock purchase %s for user %s", purchase.id, user.id)
	return {
		"success": True,
		"message": "Mock exam purchased successfully",
		"purchase": {
			"id": purchase.id,
			"productType": purchase.product_type,
			"remainingUses": purchase.remaining_uses,
			"expiresAt": purchase.expires_at.isoformat(),
		},
	}


@router.post("/subscribe/pro")
async def subscribe_pro(
	req: Optional[SubscribeRequest] = Body(default=None),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	price_level = req.priceLevel if req is not None else "basic"
	amount = get_plan(PRO_PRICES[price_level])["amount"]
	sub = create_pro_subscription(db, user.id)
	db.add(_simulated_payment(user.id, amount, "pro_monthly"))
	db.commit()
	return {
		"success": True,
		"message": "Pro subscription activated",
		"subscription": {
			"id": sub.id,
			"planType": sub.plan_type,
			"startedAt": sub.started_at.isoformat(),
			"expiresAt": sub.expires_at.isoformat(),
			"status": sub.status,
		},
	}


@router.post("/usage/record")
async def usage_record(req: UsageRecordRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	_RECORDERS[req.type](db, user.id)
	return {"success": True, "status": get_access_status(db, user.id)}


@router.post("/cancel")
async def cancel(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	cancel_subscription(db, user.id)
	db.commit()
	logger.info("Subscription cancelled for user %s", user.id)
	return {"success": True, "message": "Subscription cancelled"}
