from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.deps import get_current_user, get_db
from app.metrics import runtime_metrics
from app.models import User
from app.schemas import SystemStatusOut
from app.vectors.service import outbox_counts

router = APIRouter(prefix="/api/system/status", tags=["system"])


@router.get("", response_model=SystemStatusOut)
async def get_system_status(
  _actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> SystemStatusOut:
  return SystemStatusOut(
    version=settings.app_version,
    buildSha=settings.build_sha,
    uptimeSeconds=runtime_metrics.uptime_seconds(),
    requests=runtime_metrics.snapshot(),
    vectorSync=await outbox_counts(db),
  )
