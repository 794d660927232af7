from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from app.config import settings
from app.errors import UpstreamFailure


class AIProvider(Protocol):
  async def generate(
    self,
    *,
    prompt: str,
    context: dict[str, Any],
    system: str | None = None,
    json_mode: bool = False,
  ) -> str: ...


_ASSIGN_RE = re.compile(r"\bassign(?:ed)?\s+(?:it\s+)?to\s+([A-Za-z][\w.-]*)", re.IGNORECASE)
_LEAD_IN_RE = re.compile(
  r"^(?:please\s+)?(?:can you\s+)?(?:create|add|make|new)\s+(?:a\s+|an\s+)?(?:new\s+)?(?:tasks?|todo|ticket)?\s*(?:to|for|:)?\s*",
  re.IGNORECASE,
)
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")

CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
  ("Bug", ("bug", "fix", "error", "crash", "broken", "regression")),
  ("Design", ("design", "mockup", "ui", "ux", "wireframe", "logo")),
  ("Documentation", ("doc", "docs", "readme", "document", "guide")),
  ("Testing", ("test", "tests", "qa", "coverage")),
  ("Research", ("research", "investigate", "spike", "explore")),
  ("DevOps", ("deploy", "pipeline", "ci", "docker", "infra")),
)


def _guess_category(text: str) -> str:
  words = set(re.findall(r"[a-z]+", text.lower()))
  for name, keys in CATEGORY_KEYWORDS:
    if words.intersection(keys):
      return name
  return "General"


def _guess_priority(text: str) -> str:
  t = text.lower()
  if any(k in t for k in ("urgent", "asap", "critical", "blocker", "high priority")):
    return "high"
  if any(k in t for k in ("low priority", "someday", "nice to have", "when possible")):
    return "low"
  return "medium"


def _draft_title(line: str) -> str:
  s = _LIST_ITEM_RE.sub("", line).strip()
  s = _ASSIGN_RE.sub("", s).strip(" ,.;:")
  s = _LEAD_IN_RE.sub("", s).strip(" ,.;:")
  if not s:
    return "New Task"
  s = s[0].upper() + s[1:]
  return s[:120]


@dataclass
class LocalDeterministicProvider:
  async def generate(
    self,
    *,
    prompt: str,
    context: dict[str, Any],
    system: str | None = None,
    json_mode: bool = False,
  ) -> str:
    # Deterministic, offline-friendly behavior suitable for acceptance tests.
    kind = context.get("kind", "generic")
    if kind == "task_draft":
      lines = [ln for ln in (prompt or "").splitlines() if ln.strip()]
      items = [ln for ln in lines if _LIST_ITEM_RE.match(ln)] or [" ".join(lines)]
      tasks = []
      for item in items:
        m = _ASSIGN_RE.search(item) or _ASSIGN_RE.search(prompt or "")
        tasks.append(
          {
            "category": _guess_category(item),
            "title": _draft_title(item),
            "description": item.strip(),
            "priority": _guess_priority(item),
            "taskStatus": "pending",
            "assignee": m.group(1) if m else "unassigned",
            "status": "todo",
          }
        )
      noun = "task" if len(tasks) == 1 else "tasks"
      return json.dumps({"tasks": tasks, "message": f"I drafted {len(tasks)} {noun} for you."})
    return json.dumps({"echo": prompt, "context": context}, indent=2)


@dataclass
class OpenAICompatibleProvider:
  api_key: str
  base_url: str
  model: str
  timeout: float = 60

  async def generate(
    self,
    *,
    prompt: str,
    context: dict[str, Any],
    system: str | None = None,
    json_mode: bool = False,
  ) -> str:
    headers = {"Authorization": f"Bearer {self.api_key}"}
    body: dict[str, Any] = {
      "model": self.model,
      "messages": [
        {"role": "system", "content": system or "You are an AI project management assistant."},
        {"role": "user", "content": prompt},
      ],
      "temperature": 0.3,
      "max_tokens": 1000,
    }
    if json_mode:
      body["response_format"] = {"type": "json_object"}
    try:
      async with httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout) as client:
        # OpenAI-compatible chat completions API.
        r = await client.post("/chat/completions", json=body)
        r.raise_for_status()
        data = r.json()
    except (httpx.HTTPError, ValueError) as exc:
      raise UpstreamFailure(f"Chat completion failed: {exc}") from exc
    try:
      content = data["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as exc:
      raise UpstreamFailure("Chat completion returned an unexpected payload") from exc
    if not content.strip():
      raise UpstreamFailure("Empty response from chat completion")
    return content


def get_ai_provider() -> AIProvider:
  if settings.ai_provider.lower() == "openai":
    if not settings.openai_api_key:
      raise RuntimeError("AI_PROVIDER=openai requires OPENAI_API_KEY")
    return OpenAICompatibleProvider(
      api_key=settings.openai_api_key,
      base_url=settings.openai_base_url,
      model=settings.openai_chat_model,
      timeout=settings.openai_timeout_seconds,
    )
  return LocalDeterministicProvider()
