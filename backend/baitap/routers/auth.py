from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from ..difficulty import difficulties_up_to
from ..identity import Learner
from ..settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])

# Tokens come from the platform's login service; tokenUrl only documents where
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	return datetime.now(timezone.utc) + delta


def create_access_token(learner: Learner, expires_delta: Optional[timedelta] = None) -> str:
	"""Mint a token carrying the learner claims this service trusts."""
	to_encode = {
		"sub": learner.username,
		"uid": learner.user_id,
		"level": learner.level,
		"grade": learner.grade_id,
		"exp": _resolve_expiry(expires_delta),
	}
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def get_current_learner(token: str = Depends(oauth2_scheme)) -> Learner:
	credentials_exception = HTTPException(
		status_code=401,
		detail="Could not validate credentials",
		headers={"WWW-Authenticate": "Bearer"},
	)
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	username: str | None = payload.get("sub")
	user_id = payload.get("uid")
	if username is None or user_id is None:
		raise credentials_exception
	try:
		return Learner(
			user_id=int(user_id),
			username=username,
			level=payload.get("level"),
			grade_id=payload.get("grade"),
		)
	except (TypeError, ValueError):
		raise credentials_exception


@router.get("/me")
async def me(learner: Learner = Depends(get_current_learner)):
	return {
		"userId": learner.user_id,
		"username": learner.username,
		"level": learner.level,
		"gradeId": learner.grade_id,
		"difficulty": learner.difficulty,
		"unlockedDifficulties": difficulties_up_to(learner.level),
	}
