from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.ai.chat import (
  build_system_prompt,
  fallback_reply,
  is_task_query,
  parse_chat_reply,
  perform_rag_search,
  project_context_text,
  search_reply,
)
from app.ai.providers import get_ai_provider
from app.access import ensure_valid_id
from app.config import settings
from app.deps import get_current_user
from app.errors import InvalidIdentifier, Unauthenticated, UpstreamFailure
from app.models import User
from app.schemas import ChatIn, ChatOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ai"])

TROUBLE_MESSAGE = "I'm having trouble connecting right now. Please try again later."


def _reply(out: ChatOut, status_code: int = status.HTTP_200_OK) -> JSONResponse:
  return JSONResponse(status_code=status_code, content=out.model_dump(exclude_none=True))


async def _draft_tasks(payload: ChatIn, user: User) -> ChatOut:
  context_text = project_context_text(payload.projectContext)
  try:
    raw = await get_ai_provider().generate(
      prompt=payload.message,
      context={"kind": "task_draft", "projectId": payload.projectId, "userId": user.id},
      system=build_system_prompt(context_text),
      json_mode=True,
    )
  except UpstreamFailure as exc:
    logger.warning("chat completion failed, answering with fallback task: %s", exc)
    return fallback_reply(payload.message)
  return parse_chat_reply(raw)


@router.post("/ai-chat", response_model=ChatOut, response_model_exclude_none=True)
async def ai_chat(payload: ChatIn, request: Request, user: User = Depends(get_current_user)) -> JSONResponse:
  if not payload.projectId:
    return _reply(
      ChatOut(message="Project ID is required", tasks=[], error="missing_project_id"),
      status.HTTP_400_BAD_REQUEST,
    )
  try:
    project_id = ensure_valid_id(payload.projectId, label="project")
  except InvalidIdentifier as exc:
    return _reply(ChatOut(message=exc.message, tasks=[], error="invalid_project_id"), status.HTTP_400_BAD_REQUEST)

  try:
    if is_task_query(payload.message):
      try:
        found = await perform_rag_search(
          app=request.app,
          base_url=str(request.base_url),
          query=payload.message,
          project_id=project_id,
          cookie_header=request.headers.get("cookie"),
        )
      except Unauthenticated:
        return _reply(
          ChatOut(message="Your session has expired. Please sign in again.", tasks=[], error="unauthorized"),
          status.HTTP_401_UNAUTHORIZED,
        )
      if found is not None:
        return _reply(search_reply(found))
      logger.info("task search unavailable for project %s, drafting instead", project_id)
    return _reply(await _draft_tasks(payload, user))
  except Exception as exc:
    logger.exception("ai-chat failed for user %s", user.id)
    error = None if settings.is_production() else f"{type(exc).__name__}: {exc}"
    return _reply(ChatOut(message=TROUBLE_MESSAGE, tasks=[], error=error), status.HTTP_500_INTERNAL_SERVER_ERROR)
