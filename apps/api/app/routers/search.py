from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.access import require_project_role
from app.config import settings
from app.deps import get_current_user, get_db, valid_project_id
from app.errors import ValidationFailed
from app.models import User
from app.schemas import SearchOut
from app.vectors.search import search_project_tasks

router = APIRouter(prefix="/api/tasks/search", tags=["search"])


@router.get("/{project_id}", response_model=SearchOut)
async def search_tasks(
  project_id: str = Depends(valid_project_id),
  query: str | None = Query(default=None, max_length=2000),
  top_k: int | None = Query(default=None, alias="topK", ge=1, le=100),
  min_score: float | None = Query(default=None, alias="minScore", ge=-1.0, le=1.0),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> SearchOut:
  await require_project_role(db, project_id, user.id, "viewer")
  text = (query or "").strip()
  if not text:
    raise ValidationFailed("Query parameter is required")

  k = top_k or int(settings.search_top_k)
  floor = float(settings.search_min_score) if min_score is None else float(min_score)
  found = await search_project_tasks(project_id=project_id, query=text, top_k=k, min_score=floor)
  return SearchOut(
    query=text,
    projectId=project_id,
    results=found.hits,
    count=len(found.hits),
    totalFound=found.total_found,
    minScore=floor,
  )
