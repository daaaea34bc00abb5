from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import User
from .auth import get_current_user, hash_password, serialize_user, verify_password

router = APIRouter(prefix="/profile", tags=["profile"])


class UpdateProfileRequest(BaseModel):
    fullName: Optional[str] = Field(default=None, min_length=1, max_length=100)
    languagePreference: Optional[Literal["uz", "ru", "ar"]] = None


class ChangePasswordRequest(BaseModel):
    currentPassword: str = Field(min_length=1)
    newPassword: str = Field(min_length=6)


@router.get("")
async def get_profile(user: User = Depends(get_current_user)):
    data = serialize_user(user)
    data["createdAt"] = user.created_at.isoformat() if user.created_at else None
    data["lastLogin"] = user.last_login.isoformat() if user.last_login else None
    return data


@router.put("")
async def update_profile(
    req: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changed = False
    if req.fullName:
        user.full_name = req.fullName.strip()
        changed = True
    if req.languagePreference:
        user.language_preference = req.languagePreference
        changed = True
    if not changed:
        raise HTTPException(status_code=400, detail="No changes submitted")
    db.commit()
    db.refresh(user)
    return {"message": "Profile updated", "user": serialize_user(user)}


@router.put("/password")
async def change_password(
    req: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(req.currentPassword, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = hash_password(req.newPassword)
    db.commit()
    return {"message": "Password changed"}
