from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from passlib.context import CryptContext

from app.config import settings
from app.errors import Unauthenticated

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "token"


@dataclass(frozen=True)
class TokenClaims:
  user_id: str
  email: str
  expires_at: datetime


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def session_max_age_seconds() -> int:
  return int(settings.session_ttl_days) * 24 * 60 * 60


def issue_session_token(*, user_id: str, email: str, now: datetime | None = None) -> str:
  issued = now or datetime.now(timezone.utc)
  claims = {
    "userId": user_id,
    "email": email,
    "iat": issued,
    "exp": issued + timedelta(days=int(settings.session_ttl_days)),
  }
  return jwt.encode(claims, settings.app_secret, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str) -> TokenClaims:
  try:
    payload = jwt.decode(token, settings.app_secret, algorithms=[settings.jwt_algorithm], options={"require": ["exp"]})
  except jwt.ExpiredSignatureError as exc:
    raise Unauthenticated("Session expired") from exc
  except jwt.PyJWTError as exc:
    raise Unauthenticated("Invalid token") from exc
  user_id = payload.get("userId")
  email = payload.get("email")
  if not isinstance(user_id, str) or not user_id or not isinstance(email, str):
    raise Unauthenticated("Invalid token")
  return TokenClaims(
    user_id=user_id,
    email=email,
    expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
  )
