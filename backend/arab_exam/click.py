from __future__ import annotations
import hashlib
import hmac
from typing import Optional
from urllib.parse import urlencode

from .settings import settings

BASE_PAY_URL = "https://my.click.uz/services/pay"

# Merchant-side error codes returned in Click callback bodies
CLICK_SUCCESS = 0
CLICK_SIGN_FAILED = -1
CLICK_AMOUNT_MISMATCH = -2
CLICK_ALREADY_PAID = -4
CLICK_ORDER_NOT_FOUND = -5
CLICK_INVALID_PLAN = -6
CLICK_PREPARE_ERROR = -8
CLICK_CANCELLED = -9


def get_click_pay_url(
	amount: float,
	merchant_trans_id: str,
	return_url: Optional[str] = None,
	merchant_user_id: Optional[str] = None,
) -> str:
	params = {
		"service_id": settings.click_service_id,
		"merchant_id": settings.click_merchant_id,
		"amount": f"{amount:.2f}",
		"transaction_param": merchant_trans_id,
	}
	if return_url:
		params["return_url"] = return_url
	if merchant_user_id:
		params["merchant_user_id"] = merchant_user_id
	return f"{BASE_PAY_URL}?{urlencode(params)}"


def _md5(*parts: str) -> str:
	return hashlib.md5("".join(parts).encode("utf-8")).hexdigest()


def sign_prepare(click_trans_id: str, service_id: str, merchant_trans_id: str, amount: str, action: str, sign_time: str) -> str:
	return _md5(click_trans_id, service_id, settings.click_secret_key, merchant_trans_id, amount, action, sign_time)


def sign_complete(
	click_trans_id: str,
	service_id: str,
	merchant_trans_id: str,
	merchant_prepare_id: str,
	amount: str,
	action: str,
	sign_time: str,
) -> str:
	return _md5(
		click_trans_id,
		service_id,
		settings.click_secret_key,
		merchant_trans_id,
		merchant_prepare_id,
		amount,
		action,
		sign_time,
	)


def verify_prepare_sign(
	click_trans_id: str,
	service_id: str,
	merchant_trans_id: str,
	amount: str,
	action: str,
	sign_time: str,
	sign_string: str,
) -> bool:
	expected = sign_prepare(click_trans_id, service_id, merchant_trans_id, amount, action, sign_time)
	return hmac.compare_digest(expected, sign_string or "")


def verify_complete_sign(
	click_trans_id: str,
	service_id: str,
	merchant_trans_id: str,
	merchant_prepare_id: str,
	amount: str,
	action: str,
	sign_time: str,
	sign_string: str,
) -> bool:
	expected = sign_complete(click_trans_id, service_id, merchant_trans_id, merchant_prepare_id, amount, action, sign_time)
	return hmac.compare_digest(expected, sign_string or "")
