from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from .settings import settings

logger = logging.getLogger(__name__)

USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


class GoogleAuthError(Exception):
	pass


class GoogleUser(BaseModel):
	sub: str
	email: str
	name: str
	picture: Optional[str] = None


def _is_verified(payload: Dict[str, Any]) -> bool:
	return payload.get("email_verified") in (True, "true")


def _to_user(payload: Dict[str, Any]) -> GoogleUser:
	if not payload.get("sub") or not payload.get("email"):
		raise GoogleAuthError("Google response is missing sub or email")
	if not _is_verified(payload):
		raise GoogleAuthError("Google email is not verified")
	return GoogleUser(
		sub=str(payload["sub"]),
		email=str(payload["email"]),
		name=str(payload.get("name") or payload["email"]),
		picture=str(payload["picture"]) if payload.get("picture") else None,
	)


async def verify_google_token(token: str) -> GoogleUser:
	"""Resolve a Google access token (userinfo) or id token (tokeninfo) to a user.

	The id token path also checks that the audience is our client id.
	"""
	if not settings.google_client_id:
		raise GoogleAuthError("GOOGLE_CLIENT_ID is not configured")

	client = httpx.AsyncClient(timeout=10)
	try:
		try:
			r = await client.get(USERINFO_URL, headers={"Authorization": f"Bearer {token}"})
			if r.status_code == 200:
				return _to_user(r.json())
		except httpx.HTTPError as e:
			logger.warning("Google userinfo request failed: %s", e)

		r = await client.get(TOKENINFO_URL, params={"id_token": token})
		if r.status_code != 200:
			raise GoogleAuthError("Google token is invalid or expired")
		payload = r.json()
		if payload.get("aud") != settings.google_client_id:
			raise GoogleAuthError("Google token was issued for another application")
		return _to_user(payload)
	except httpx.HTTPError as e:
		raise GoogleAuthError(f"Google verification failed: {e}") from e
	finally:
		await client.aclose()
