from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..google_auth import GoogleAuthError, verify_google_token
from ..models import User, UserProgress
from ..subscription import effective_tier

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


class RegisterRequest(BaseModel):
	email: EmailStr
	password: str = Field(min_length=6)
	fullName: str = Field(min_length=1)
	languagePreference: Literal["uz", "ru", "ar"] = "uz"


class LoginRequest(BaseModel):
	email: EmailStr
	password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
	refreshToken: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
	email: EmailStr


class ResetPasswordRequest(BaseModel):
	token: str = Field(min_length=1)
	newPassword: str = Field(min_length=6)


class GoogleLoginRequest(BaseModel):
	idToken: str = Field(min_length=1)


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	if not hashed_password:
		return False
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def _encode(data: dict, secret: str, expires_delta: timedelta) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
	return jwt.encode(to_encode, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
	return _encode(
		{"sub": user.id, "email": user.email, "type": "access"},
		settings.jwt_secret_key,
		timedelta(minutes=settings.access_token_expire_minutes),
	)


def create_refresh_token(user: User) -> str:
	return _encode(
		{"sub": user.id, "type": "refresh"},
		settings.jwt_refresh_secret_key,
		timedelta(days=settings.refresh_token_expire_days),
	)


def create_reset_token(email: str) -> str:
	return _encode(
		{"email": email, "purpose": "reset"},
		settings.jwt_secret_key,
		timedelta(minutes=settings.reset_token_expire_minutes),
	)


def serialize_user(user: User) -> Dict[str, Any]:
	return {
		"id": user.id,
		"email": user.email,
		"fullName": user.full_name,
		"languagePreference": user.language_preference,
		"subscriptionTier": effective_tier(user.subscription_tier, user.subscription_expires_at),
		"subscriptionExpiresAt": user.subscription_expires_at.isoformat() if user.subscription_expires_at else None,
		"isAdmin": bool(user.is_admin),
		"avatarUrl": user.avatar_url,
	}


def _session_payload(user: User) -> Dict[str, Any]:
	return {
		"user": serialize_user(user),
		"accessToken": create_access_token(user),
		"refreshToken": create_refresh_token(user),
		"expiresIn": settings.access_token_expire_minutes * 60,
	}


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		user_id: Optional[str] = payload.get("sub")
		if user_id is None or payload.get("type") != "access":
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	user = db.get(User, user_id)
	if user is None:
		raise credentials_exception
	return user


def require_admin(user: User = Depends(get_current_user)) -> User:
	if not user.is_admin:
		raise HTTPException(status_code=403, detail="Admin access required")
	return user


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	email = req.email.strip().lower()
	existing = db.query(User).filter(User.email == email).first()
	if existing:
		raise HTTPException(status_code=409, detail="This email is already registered")
	user = User(
		email=email,
		password_hash=hash_password(req.password),
		full_name=req.fullName.strip(),
		language_preference=req.languagePreference,
		subscription_tier="FREE",
	)
	user.progress = UserProgress()
	db.add(user)
	db.commit()
	db.refresh(user)
	logger.info("Registered user %s", user.id)
	return _session_payload(user)


@router.post("/login")
async def login(req: LoginRequest, db: Session = Depends(get_db)):
	user = db.query(User).filter(User.email == req.email.strip().lower()).first()
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	if not user.password_hash:
		raise HTTPException(status_code=401, detail="This account was created with Google. Sign in with Google.")
	if not verify_password(req.password, user.password_hash):
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	user.last_login = datetime.utcnow()
	db.commit()
	return _session_payload(user)


@router.post("/refresh-token")
async def refresh_token(req: RefreshRequest, db: Session = Depends(get_db)):
	invalid = HTTPException(status_code=401, detail="Invalid or expired refresh token")
	try:
		payload = jwt.decode(req.refreshToken, settings.jwt_refresh_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise invalid
	if payload.get("type") != "refresh" or not payload.get("sub"):
		raise invalid
	user = db.get(User, payload["sub"])
	if not user:
		raise HTTPException(status_code=401, detail="User not found")
	return {"accessToken": create_access_token(user), "expiresIn": settings.access_token_expire_minutes * 60}


@router.post("/forgot-password")
async def forgot_password(req: ForgotPasswordRequest, db: Session = Depends(get_db)):
	message = "If this email is registered, a password reset link has been sent."
	user = db.query(User).filter(User.email == req.email.strip().lower()).first()
	if not user:
		return {"message": message}
	token = create_reset_token(user.email)
	reset_link = f"{settings.frontend_url}/reset-password?token={token}"
	if settings.is_production():
		# TODO: deliver reset_link by email once an SMTP provider is configured
		logger.info("Password reset requested for %s", user.id)
		return {"message": message}
	return {"message": "Email delivery is not configured. Development reset link:", "token": token, "resetLink": reset_link}


@router.post("/reset-password")
async def reset_password(req: ResetPasswordRequest, db: Session = Depends(get_db)):
	invalid = HTTPException(status_code=400, detail="Invalid or expired token")
	try:
		payload = jwt.decode(req.token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise invalid
	if payload.get("purpose") != "reset" or not payload.get("email"):
		raise invalid
	user = db.query(User).filter(User.email == payload["email"]).first()
	if not user:
		raise invalid
	user.password_hash = hash_password(req.newPassword)
	db.commit()
	return {"message": "Password updated. Sign in with the new password."}


@router.post("/social/google")
async def google_login(req: GoogleLoginRequest, db: Session = Depends(get_db)):
	try:
		google_user = await verify_google_token(req.idToken)
	except GoogleAuthError as e:
		raise HTTPException(status_code=401, detail=str(e))

	email = google_user.email.strip().lower()
	user = db.query(User).filter(User.google_id == google_user.sub).first()
	if user is None:
		user = db.query(User).filter(User.email == email).first()
		if user is not None:
			# Link the Google identity to the existing password account
			user.google_id = google_user.sub
			user.avatar_url = google_user.picture or user.avatar_url
		else:
			user = User(
				email=email,
				full_name=google_user.name,
				google_id=google_user.sub,
				avatar_url=google_user.picture,
				password_hash="",
				subscription_tier="FREE",
				language_preference="uz",
			)
			user.progress = UserProgress()
			db.add(user)
	user.last_login = datetime.utcnow()
	db.commit()
	db.refresh(user)
	return _session_payload(user)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
	return {"user": serialize_user(user)}
