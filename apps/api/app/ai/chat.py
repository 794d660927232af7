from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

import httpx
from pydantic import ValidationError

from app.config import settings
from app.errors import Unauthenticated
from app.schemas import ChatOut, ChatTaskSuggestion

logger = logging.getLogger(__name__)

QUERY_KEYWORDS: tuple[str, ...] = (
  "show",
  "find",
  "search",
  "get",
  "what",
  "which",
  "where",
  "when",
  "status of",
  "progress",
  "update on",
  "assigned to",
  "who is",
  "how many",
  "list",
  "display",
  "tell me about",
  "info about",
)

# String literals are matched first so their contents are left alone.
_STRING = r'"(?:\\.|[^"\\])*"'
_BARE_KEY_RE = re.compile(_STRING + r"|([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(_STRING + r"|,(\s*[}\]])")
_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def is_task_query(message: str) -> bool:
  text = (message or "").lower()
  return any(k in text for k in QUERY_KEYWORDS)


def _quote_bare_key(m: re.Match) -> str:
  if m.group(2) is None:
    return m.group(0)
  return f'{m.group(1)}"{m.group(2)}"{m.group(3)}'


def _drop_trailing_comma(m: re.Match) -> str:
  return m.group(0) if m.group(1) is None else m.group(1)


def lenient_json_loads(text: str) -> Any:
  """
  Parse model output as JSON, tolerating bare keys and trailing commas.

  Unparseable text comes back as a plain chat reply with no tasks.
  """
  try:
    return json.loads(text)
  except json.JSONDecodeError:
    pass
  fixed = _FENCE_RE.sub("", text)
  fixed = _BARE_KEY_RE.sub(_quote_bare_key, fixed)
  fixed = _TRAILING_COMMA_RE.sub(_drop_trailing_comma, fixed)
  try:
    return json.loads(fixed)
  except json.JSONDecodeError:
    return {"message": text, "tasks": []}


def project_context_text(value: Any) -> str:
  if value is None:
    return ""
  if isinstance(value, str):
    return value.strip()
  return json.dumps(value, default=str)


def build_system_prompt(project_context: str) -> str:
  return f"""You are an AI project management assistant. Help users create and manage tasks for their projects.

Current project context: {project_context or "none"}

IMPORTANT: Always respond with valid JSON only. No markdown, no extra text.

The user is requesting to create new tasks. Respond with:
{{
  "tasks": [
    {{
      "category": "string",
      "title": "string",
      "description": "string",
      "priority": "low" | "medium" | "high",
      "taskStatus": "string",
      "assignee": "string",
      "status": "todo"
    }}
  ],
  "message": "string"
}}

If the user is only asking a question or having a conversation, respond with:
{{"message": "Your response here", "tasks": []}}"""


def parse_chat_reply(raw: str) -> ChatOut:
  data = lenient_json_loads(raw)
  if not isinstance(data, dict):
    return ChatOut(message=raw, tasks=[])
  tasks: list[dict[str, Any]] = []
  items = data.get("tasks")
  for item in items if isinstance(items, list) else []:
    if not isinstance(item, dict):
      continue
    try:
      tasks.append(ChatTaskSuggestion.model_validate(item).model_dump())
    except ValidationError:
      logger.info("dropping malformed task suggestion: %s", str(item)[:200])
  message = str(data.get("message") or "").strip()
  if not message:
    message = "Here are the suggested tasks." if tasks else raw
  return ChatOut(message=message, tasks=tasks)


def fallback_reply(message: str) -> ChatOut:
  task = ChatTaskSuggestion(
    category="General",
    title="New Task",
    description=message,
    priority="medium",
    taskStatus="pending",
    assignee="unassigned",
    status="todo",
  )
  return ChatOut(message="I'll help you create that task.", tasks=[task.model_dump()])


def search_reply(found: dict[str, Any]) -> ChatOut:
  results = found.get("results") or []
  tasks = [hit["task"] for hit in results if isinstance(hit, dict) and hit.get("task")]
  if not tasks:
    return ChatOut(message="No matching tasks found.", tasks=[], foundTask=False)
  noun = "task" if len(tasks) == 1 else "tasks"
  return ChatOut(message=f"Found {len(tasks)} matching {noun}.", tasks=tasks, foundTask=True)


def _search_client(app: Any, base_url: str) -> httpx.AsyncClient:
  if settings.internal_api_base_url:
    return httpx.AsyncClient(base_url=settings.internal_api_base_url, timeout=settings.search_timeout_seconds)
  # The loopback keeps the caller's host so TrustedHostMiddleware accepts it.
  return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=base_url)


async def perform_rag_search(
  *,
  app: Any,
  base_url: str,
  query: str,
  project_id: str,
  cookie_header: str | None,
) -> dict[str, Any] | None:
  """
  Query the task search endpoint on behalf of the caller.

  Returns the search payload, an empty payload when the endpoint answers 404,
  or None when the search failed and the caller should draft tasks instead.
  Raises Unauthenticated when the forwarded session is rejected.
  """
  headers = {"Cookie": cookie_header or "", "Accept": "application/json"}
  try:
    async with _search_client(app, base_url) as client:
      r = await asyncio.wait_for(
        client.get(f"/api/tasks/search/{project_id}", params={"query": query}, headers=headers),
        timeout=settings.search_timeout_seconds,
      )
  except (httpx.HTTPError, asyncio.TimeoutError) as exc:
    logger.warning("task search request failed: %r", exc)
    return None

  if r.status_code == 404:
    return {"results": [], "count": 0}
  if r.status_code == 401:
    raise Unauthenticated("Authentication required")
  if r.status_code >= 400:
    logger.warning("task search answered %s for project %s", r.status_code, project_id)
    return None
  try:
    return r.json()
  except ValueError:
    logger.warning("task search returned a non-JSON body for project %s", project_id)
    return None
