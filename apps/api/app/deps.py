from __future__ import annotations

from fastapi import Cookie, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.access import ensure_valid_id
from app.db import SessionLocal
from app.errors import Unauthenticated
from app.models import User
from app.security import SESSION_COOKIE_NAME, decode_session_token


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


# Identifier checks take no session, so they run before authentication.
async def valid_project_id(project_id: str) -> str:
  return ensure_valid_id(project_id, label="project")


async def valid_task_id(task_id: str) -> str:
  return ensure_valid_id(task_id, label="task")


async def get_current_user(
  db: AsyncSession = Depends(get_db),
  token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User:
  if not token:
    raise Unauthenticated("Not authenticated")
  claims = decode_session_token(token)

  res = await db.execute(select(User).where(User.id == claims.user_id))
  u = res.scalar_one_or_none()
  if not u:
    raise Unauthenticated("User not found")
  return u


def client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"
