from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.deps import client_ip, get_current_user, get_db
from app.errors import Unauthenticated, ValidationFailed
from app.models import ProjectMember, User
from app.rate_limit import limiter
from app.schemas import AuthOut, LoginIn, MeOut, RegisterIn, UserOut
from app.security import (
  SESSION_COOKIE_NAME,
  hash_password,
  issue_session_token,
  session_max_age_seconds,
  verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 6


def user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name, createdAt=u.created_at)


def normalize_email(value: str | None) -> str:
  return (value or "").strip().lower()


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail={"code": "rate_limited", "message": "Too many requests", "retryAfterSeconds": retry_after},
    headers={"Retry-After": str(retry_after)},
  )


def _set_session_cookie(response: Response, token: str) -> None:
  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=token,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    max_age=session_max_age_seconds(),
    domain=settings.cookie_domain,
    path="/",
  )


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, request: Request, db: AsyncSession = Depends(get_db)) -> AuthOut:
  _rate_limit_or_429(
    key=f"auth:register:ip:{client_ip(request)}",
    limit=int(settings.rate_limit_register_ip_per_minute),
    window_seconds=60,
  )
  email = normalize_email(payload.email)
  if email:
    _rate_limit_or_429(
      key=f"auth:register:email:{email}",
      limit=int(settings.rate_limit_register_email_per_minute),
      window_seconds=60,
    )
  name = (payload.name or "").strip()
  password = payload.password or ""
  if not email or not name or not password:
    raise ValidationFailed("All fields are required")
  if "@" not in email:
    raise ValidationFailed("Please provide a valid email")
  if len(password) < MIN_PASSWORD_LENGTH:
    raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

  existing = await db.execute(select(User.id).where(User.email == email))
  if existing.scalar_one_or_none():
    raise ValidationFailed("User already exists")

  u = User(email=email, name=name, password_hash=hash_password(password))
  db.add(u)
  try:
    await db.flush()
  except IntegrityError as exc:
    await db.rollback()
    raise ValidationFailed("User already exists") from exc

  # Invitations sent before this email registered become real memberships.
  linked = await db.execute(
    update(ProjectMember).where(ProjectMember.email == email, ProjectMember.user_id.is_(None)).values(user_id=u.id)
  )
  await db.commit()
  if linked.rowcount:
    logger.info("linked %d pending membership(s) to new user %s", linked.rowcount, u.id)
  return AuthOut(message="User created successfully", user=user_out(u))


@router.post("/login", response_model=AuthOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = client_ip(request)
  email = normalize_email(payload.email)
  _rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)
  if email:
    _rate_limit_or_429(key=f"auth:login:email:{email}", limit=int(settings.rate_limit_login_email_per_minute), window_seconds=60)

  if not email or not payload.password:
    raise ValidationFailed("Email and password are required")

  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    logger.info("failed login for %s from %s", email, ip)
    raise Unauthenticated("Invalid credentials")

  _set_session_cookie(response, issue_session_token(user_id=u.id, email=u.email))
  return AuthOut(message="Login successful", user=user_out(u))


@router.post("/logout")
async def logout(response: Response) -> dict:
  response.delete_cookie(
    key=SESSION_COOKIE_NAME,
    path="/",
    domain=settings.cookie_domain,
    secure=settings.cookie_secure,
    httponly=True,
    samesite="lax",
  )
  return {"message": "Logout successful"}


@router.get("/me", response_model=MeOut)
async def me(user: User = Depends(get_current_user)) -> MeOut:
  return MeOut(user=user_out(user))
