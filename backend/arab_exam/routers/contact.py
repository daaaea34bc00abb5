import logging
from datetime import datetime
from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..settings import settings

router = APIRouter(prefix="/contact", tags=["contact"])

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class ContactRequest(BaseModel):
    fullName: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None


def format_message(full_name: str, phone: Optional[str], message: str, sent_at: Optional[datetime] = None) -> str:
    lines = ["*New message - Arab Exam*", "", f"*Name:* {full_name}"]
    if phone:
        lines.append(f"*Phone:* {phone}")
    lines.append(f"*Message:*\n{message}")
    lines.append("")
    lines.append((sent_at or datetime.utcnow()).strftime("%Y-%m-%d %H:%M UTC"))
    return "\n".join(lines)


async def send_telegram(text: str) -> None:
    url = f"{TELEGRAM_API_URL}/bot{settings.telegram_bot_token}/sendMessage"
    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.post(
            url,
            json={"chat_id": settings.telegram_chat_id, "text": text, "parse_mode": "Markdown"},
        )
        resp.raise_for_status()


@router.post("")
async def contact(req: ContactRequest):
    full_name = (req.fullName or "").strip()
    message = (req.message or "").strip()
    phone = (req.phone or "").strip() or None
    if not full_name:
        raise HTTPException(status_code=400, detail="Please enter your full name")
    if not message:
        raise HTTPException(status_code=400, detail="Please enter a message")
    if len(message) < 10:
        raise HTTPException(status_code=400, detail="Message must be at least 10 characters")

    text = format_message(full_name, phone, message)
    if settings.telegram_bot_token and settings.telegram_chat_id:
        try:
            await send_telegram(text)
        except httpx.HTTPError as e:
            logger.error("Telegram sendMessage failed: %s", e)
            raise HTTPException(status_code=500, detail="Could not send the message, please try again")
    else:
        logger.info("Contact message (Telegram not configured):\n%s", text.replace("*", ""))

    return {"ok": True, "message": "Your message was sent. We will get back to you soon."}
