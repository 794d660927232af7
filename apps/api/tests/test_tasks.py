from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import create_project, create_task, login, register, signup


async def _task_count(client: AsyncClient, project_id: str) -> int:
  res = await client.get(f"/api/projects/{project_id}")
  assert res.status_code == 200, res.text
  return res.json()["project"]["taskCount"]


@pytest.mark.anyio
async def test_create_then_delete_restores_task_count(client: AsyncClient) -> None:
  await signup(client, "owner@example.com")
  project = await create_project(client)
  pid = project["id"]
  assert await _task_count(client, pid) == 0

  task = await create_task(client, pid, priority="high", assignee="sam")
  assert task["projectId"] == pid
  assert task["priority"] == "high"
  assert task["status"] == "todo"
  assert await _task_count(client, pid) == 1

  res = await client.delete(f"/api/taskSave/{task['id']}")
  assert res.status_code == 200, res.text
  assert res.json()["message"] == "Task deleted successfully"
  assert await _task_count(client, pid) == 0


@pytest.mark.anyio
async def test_task_count_never_goes_negative(client: AsyncClient) -> None:
  from app.db import SessionLocal
  from app.models import Project

  await signup(client, "owner@example.com")
  project = await create_project(client)
  task = await create_task(client, project["id"])
  async with SessionLocal() as db:
    p = await db.get(Project, project["id"])
    p.task_count = 0
    await db.commit()

  assert (await client.delete(f"/api/taskSave/{task['id']}")).status_code == 200
  assert await _task_count(client, project["id"]) == 0


@pytest.mark.anyio
async def test_required_fields_and_enums(client: AsyncClient) -> None:
  await signup(client, "owner@example.com")
  project = await create_project(client)

  no_title = await client.post("/api/taskSave", json={"category": "Docs", "projectId": project["id"]})
  assert no_title.status_code == 422
  blank_category = await client.post("/api/taskSave", json={"title": "x", "category": "  ", "projectId": project["id"]})
  assert blank_category.status_code == 422
  bad_priority = await client.post(
    "/api/taskSave", json={"title": "x", "category": "Docs", "priority": "urgent", "projectId": project["id"]}
  )
  assert bad_priority.status_code == 422
  bad_project = await client.post("/api/taskSave", json={"title": "x", "category": "Docs", "projectId": "nope"})
  assert bad_project.status_code == 400
  assert bad_project.json()["detail"] == "Invalid project ID"


@pytest.mark.anyio
async def test_viewer_cannot_update_task(client: AsyncClient) -> None:
  await register(client, "viewer@example.com")
  await signup(client, "owner@example.com")
  project = await create_project(client)
  await client.post(f"/api/projects/{project['id']}/members", json={"email": "viewer@example.com", "role": "viewer"})
  task = await create_task(client, project["id"], title="Original")

  await login(client, "viewer@example.com")
  seen = await client.get(f"/api/taskSave/{task['id']}")
  assert seen.status_code == 200
  res = await client.put(f"/api/taskSave/{task['id']}", json={"title": "Hijacked"})
  assert res.status_code == 403
  assert (await client.delete(f"/api/taskSave/{task['id']}")).status_code == 403
  create = await client.post("/api/taskSave", json={"title": "x", "category": "Docs", "projectId": project["id"]})
  assert create.status_code == 403

  after = await client.get(f"/api/taskSave/{task['id']}")
  assert after.json()["task"]["title"] == "Original"


@pytest.mark.anyio
async def test_editor_updates_only_writable_fields(client: AsyncClient) -> None:
  await register(client, "editor@example.com")
  await signup(client, "owner@example.com")
  project = await create_project(client)
  await client.post(f"/api/projects/{project['id']}/members", json={"email": "editor@example.com", "role": "editor"})
  task = await create_task(client, project["id"], assignee="sam", taskStatus="waiting on design")

  await login(client, "editor@example.com")
  res = await client.put(
    f"/api/taskSave/{task['id']}",
    json={"status": "in-progress", "assignee": None, "projectId": "ignored", "title": "Renamed"},
  )
  assert res.status_code == 200, res.text
  updated = res.json()["task"]
  assert updated["status"] == "in-progress"
  assert updated["title"] == "Renamed"
  assert updated["assignee"] is None
  assert updated["taskStatus"] == "waiting on design"
  assert updated["projectId"] == project["id"]


@pytest.mark.anyio
async def test_list_tasks_scopes_to_accessible_projects_and_legacy(client: AsyncClient) -> None:
  await signup(client, "other@example.com")
  foreign = await create_project(client, "Foreign")
  await create_task(client, foreign["id"], title="Not mine")

  await signup(client, "me@example.com")
  mine = await create_project(client, "Mine")
  await create_task(client, mine["id"], title="Project task")
  await create_task(client, None, title="Personal task")

  res = await client.get("/api/taskSave")
  assert res.status_code == 200
  assert sorted(t["title"] for t in res.json()["tasks"]) == ["Personal task", "Project task"]

  filtered = await client.get("/api/taskSave", params={"projectId": mine["id"]})
  assert [t["title"] for t in filtered.json()["tasks"]] == ["Project task"]

  blocked = await client.get("/api/taskSave", params={"projectId": foreign["id"]})
  assert blocked.status_code == 404


@pytest.mark.anyio
async def test_tasks_alias_serves_same_routes(client: AsyncClient) -> None:
  await signup(client, "owner@example.com")
  project = await create_project(client)
  res = await client.post("/api/tasks", json={"title": "From chat", "category": "AI", "projectId": project["id"]})
  assert res.status_code == 201, res.text
  tid = res.json()["task"]["id"]
  assert (await client.get(f"/api/taskSave/{tid}")).json()["task"]["title"] == "From chat"
  assert (await client.get(f"/api/tasks/{tid}")).status_code == 200


@pytest.mark.anyio
async def test_invalid_task_id_and_unknown_task(client: AsyncClient) -> None:
  bad = await client.put("/api/taskSave/123", json={"title": "x"})
  assert bad.status_code == 400
  assert bad.json()["detail"] == "Invalid task ID"

  await signup(client, "owner@example.com")
  missing = await client.get("/api/taskSave/00000000-0000-4000-8000-000000000000")
  assert missing.status_code == 404
  assert missing.json()["detail"] == "Task not found"
