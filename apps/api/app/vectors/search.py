from __future__ import annotations

import logging
from dataclasses import dataclass

from app.ai.embeddings import embed_one
from app.errors import UpstreamFailure
from app.schemas import SearchHitOut, SearchTaskOut
from app.vectors.index import VectorIndexError, VectorMatch, get_vector_index

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
  hits: list[SearchHitOut]
  total_found: int


def _hit_out(m: VectorMatch) -> SearchHitOut:
  md = m.metadata
  return SearchHitOut(
    id=m.id,
    score=round(float(m.score), 6),
    task=SearchTaskOut(
      id=str(md.get("taskId") or m.id),
      title=str(md.get("title") or ""),
      description=str(md.get("description") or ""),
      category=str(md.get("category") or ""),
      priority=str(md.get("priority") or ""),
      status=str(md.get("status") or ""),
      taskStatus=str(md.get("taskStatus") or ""),
      assignee=str(md.get("assignee") or ""),
      projectId=md.get("projectId") or None,
      createdAt=md.get("createdAt") or None,
      updatedAt=md.get("updatedAt") or None,
    ),
  )


async def search_project_tasks(*, project_id: str, query: str, top_k: int, min_score: float) -> SearchResult:
  try:
    vector = await embed_one(query)
    matches = await get_vector_index().query(vector=vector, top_k=top_k, filter={"projectId": project_id})
  except VectorIndexError as exc:
    logger.warning("vector query failed for project %s: %s", project_id, exc.message)
    raise UpstreamFailure("Task search is unavailable") from exc
  except UpstreamFailure:
    logger.warning("query embedding failed for project %s", project_id)
    raise
  kept = [m for m in matches if m.score >= min_score]
  return SearchResult(hits=[_hit_out(m) for m in kept], total_found=len(matches))
