from __future__ import annotations

import asyncio

import httpx
import pytest
from httpx import AsyncClient

from app.ai import embeddings
from app.ai import chat as chat_mod
from app.ai.chat import is_task_query, lenient_json_loads, parse_chat_reply
from app.ai.embeddings import HashingEmbedder, get_embedder, reset_embedder
from app.config import settings
from app.errors import UpstreamFailure
from conftest import create_project, create_task, signup


def test_lenient_json_loads() -> None:
  assert lenient_json_loads('{"message": "hi", "tasks": []}') == {"message": "hi", "tasks": []}
  assert lenient_json_loads('{message: "hi", tasks: [{title: "A",},],}') == {"message": "hi", "tasks": [{"title": "A"}]}
  assert lenient_json_loads('```json\n{"message": "fenced", "tasks": []}\n```') == {"message": "fenced", "tasks": []}
  assert lenient_json_loads("sure, happy to help") == {"message": "sure, happy to help", "tasks": []}
  # Colons and commas inside strings are not keys or trailing commas.
  assert lenient_json_loads('{message: "Done, note: x",}') == {"message": "Done, note: x"}
  assert lenient_json_loads('{message: "a, ]", tasks: [],}') == {"message": "a, ]", "tasks": []}


def test_parse_chat_reply_drops_invalid_suggestions() -> None:
  raw = '{"message": "ok", "tasks": [{"title": "Ship it", "priority": "URGENT", "category": null}, {"title": ""}, "junk"]}'
  out = parse_chat_reply(raw)
  assert out.message == "ok"
  assert len(out.tasks) == 1
  assert out.tasks[0]["title"] == "Ship it"
  assert out.tasks[0]["priority"] == "medium"
  assert out.tasks[0]["category"] == "General"
  assert out.tasks[0]["status"] == "todo"


def test_query_classification() -> None:
  assert is_task_query("Show me the login tasks")
  assert is_task_query("who is working on billing?")
  assert not is_task_query("Create a task to write the release notes")
  assert not is_task_query("This is urgent: add onboarding docs")


@pytest.mark.anyio
async def test_chat_requires_project_id(client: AsyncClient) -> None:
  await signup(client, "owner@example.com")
  res = await client.post("/api/ai-chat", json={"message": "add a task"})
  assert res.status_code == 400
  assert res.json()["error"] == "missing_project_id"
  assert res.json()["tasks"] == []


@pytest.mark.anyio
async def test_chat_requires_session(client: AsyncClient) -> None:
  res = await client.post("/api/ai-chat", json={"message": "add a task", "projectId": "x"})
  assert res.status_code == 401


@pytest.mark.anyio
async def test_chat_drafts_tasks_for_non_queries(client: AsyncClient) -> None:
  await signup(client, "owner@example.com")
  project = await create_project(client)
  res = await client.post(
    "/api/ai-chat",
    json={
      "message": "Please add:\n- Write release notes for alice\n- Fix urgent crash on login",
      "projectId": project["id"],
      "projectContext": {"name": project["name"]},
    },
  )
  assert res.status_code == 200, res.text
  body = res.json()
  assert len(body["tasks"]) == 2
  assert {t["status"] for t in body["tasks"]} == {"todo"}
  assert body["tasks"][1]["priority"] == "high"
  assert "foundTask" not in body


@pytest.mark.anyio
async def test_chat_query_answers_from_search(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "search_min_score", -1.0)
  await signup(client, "owner@example.com")
  project = await create_project(client)
  task = await create_task(client, project["id"], title="Fix login bug", description="login page crashes")

  res = await client.post("/api/ai-chat", json={"message": "show the login bug", "projectId": project["id"]})
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["foundTask"] is True
  assert body["message"] == "Found 1 matching task."
  assert body["tasks"][0]["id"] == task["id"]


@pytest.mark.anyio
async def test_chat_query_with_no_hits(client: AsyncClient) -> None:
  await signup(client, "owner@example.com")
  project = await create_project(client)
  res = await client.post("/api/ai-chat", json={"message": "find anything about kubernetes", "projectId": project["id"]})
  assert res.status_code == 200, res.text
  assert res.json() == {"message": "No matching tasks found.", "tasks": [], "foundTask": False}


@pytest.mark.anyio
async def test_chat_query_on_unknown_project_is_empty_not_error(client: AsyncClient) -> None:
  await signup(client, "owner@example.com")
  res = await client.post(
    "/api/ai-chat",
    json={"message": "list my tasks", "projectId": "00000000-0000-4000-8000-000000000000"},
  )
  assert res.status_code == 200, res.text
  assert res.json()["foundTask"] is False


@pytest.mark.anyio
async def test_chat_search_failure_falls_back_to_drafting(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  async def _broken_search(**_kwargs):
    return None

  monkeypatch.setattr("app.routers.ai.perform_rag_search", _broken_search)
  await signup(client, "owner@example.com")
  project = await create_project(client)
  res = await client.post("/api/ai-chat", json={"message": "show progress on onboarding docs", "projectId": project["id"]})
  assert res.status_code == 200, res.text
  assert len(res.json()["tasks"]) == 1
  assert "foundTask" not in res.json()


@pytest.mark.anyio
async def test_chat_llm_failure_returns_fallback_task(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  class _DownProvider:
    async def generate(self, **_kwargs) -> str:
      raise UpstreamFailure("connection refused")

  monkeypatch.setattr("app.routers.ai.get_ai_provider", lambda: _DownProvider())
  await signup(client, "owner@example.com")
  project = await create_project(client)
  res = await client.post("/api/ai-chat", json={"message": "Plan the offsite", "projectId": project["id"]})
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["message"] == "I'll help you create that task."
  assert body["tasks"][0]["title"] == "New Task"
  assert body["tasks"][0]["description"] == "Plan the offsite"


@pytest.mark.anyio
async def test_chat_unexpected_error_is_500_with_message(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  def _explode():
    raise RuntimeError("provider misconfigured")

  monkeypatch.setattr("app.routers.ai.get_ai_provider", _explode)
  await signup(client, "owner@example.com")
  project = await create_project(client)
  res = await client.post("/api/ai-chat", json={"message": "Plan the offsite", "projectId": project["id"]})
  assert res.status_code == 500
  body = res.json()
  assert body["message"].startswith("I'm having trouble connecting right now")
  assert body["tasks"] == []
  assert "provider misconfigured" in body["error"]


def test_search_reply_pluralizes() -> None:
  hits = {"results": [{"task": {"id": "a"}}, {"task": {"id": "b"}}]}
  out = chat_mod.search_reply(hits)
  assert out.message == "Found 2 matching tasks."
  assert out.foundTask is True


@pytest.mark.anyio
async def test_chat_search_runs_against_the_served_host(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  assert "localhost" not in settings.trusted_host_list()
  monkeypatch.setattr(settings, "search_min_score", -1.0)
  await signup(client, "owner@example.com")
  project = await create_project(client)
  await create_task(client, project["id"], title="Fix login bug", description="login page crashes")

  res = await client.post("/api/ai-chat", json={"message": "show the login bug", "projectId": project["id"]})
  assert res.status_code == 200, res.text
  assert res.json()["foundTask"] is True


@pytest.mark.anyio
async def test_chat_rejects_project_id_that_is_not_an_id(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  forwarded: list[str] = []

  async def _recording_search(**kwargs):
    forwarded.append(kwargs["project_id"])
    return {"results": [], "count": 0}

  monkeypatch.setattr("app.routers.ai.perform_rag_search", _recording_search)
  await signup(client, "owner@example.com")
  for bad in ("../../auth/me", "abc?query=x"):
    res = await client.post("/api/ai-chat", json={"message": "show my profile", "projectId": bad})
    assert res.status_code == 400, res.text
    assert res.json()["error"] == "invalid_project_id"
    assert res.json()["tasks"] == []
  assert forwarded == []


@pytest.mark.anyio
async def test_chat_search_rejected_session_is_401(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  def _rejecting_client(app, base_url: str) -> httpx.AsyncClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"detail": "Authentication required"}))
    return httpx.AsyncClient(transport=transport, base_url=base_url)

  monkeypatch.setattr(chat_mod, "_search_client", _rejecting_client)
  await signup(client, "owner@example.com")
  project = await create_project(client)
  res = await client.post("/api/ai-chat", json={"message": "show the login bug", "projectId": project["id"]})
  assert res.status_code == 401, res.text
  body = res.json()
  assert body["error"] == "unauthorized"
  assert body["tasks"] == []
  assert "sign in" in body["message"]


@pytest.mark.anyio
async def test_concurrent_first_use_builds_one_embedder(monkeypatch: pytest.MonkeyPatch) -> None:
  built: list[HashingEmbedder] = []

  def _counting_build():
    e = HashingEmbedder(dimensions=8)
    built.append(e)
    return e

  reset_embedder()
  monkeypatch.setattr(embeddings, "_build_embedder", _counting_build)
  got = await asyncio.gather(*[get_embedder() for _ in range(10)])
  assert len(built) == 1
  assert all(e is built[0] for e in got)
  reset_embedder()
