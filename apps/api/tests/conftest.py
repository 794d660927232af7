from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

# Settings are read at import time, so the test environment goes first.
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / 'trelloai_test.db'}")
os.environ.setdefault("APP_SECRET", "test-secret-not-for-production")
os.environ["AI_PROVIDER"] = "local"
os.environ["EMBEDDING_PROVIDER"] = "local"
os.environ["VECTOR_PROVIDER"] = "local"
os.environ.pop("REDIS_URL", None)
# A real domain, so nothing in the app may assume it is served as localhost.
os.environ["TRUSTED_HOSTS"] = "api.trelloai.test"

from app.ai.embeddings import reset_embedder
from app.config import settings
from app.db import SessionLocal, engine
from app.main import app
from app.models import Base, Project, ProjectMember, Task, User, VectorSyncJob
from app.rate_limit import limiter
from app.vectors.index import local_index


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  local_index.clear()
  reset_embedder()
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    await db.execute(delete(VectorSyncJob))
    await db.execute(delete(Task))
    await db.execute(delete(ProjectMember))
    await db.execute(delete(Project))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend: str) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. trelloai_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://api.trelloai.test") as c:
    yield c


async def register(client: AsyncClient, email: str, password: str = "password123", name: str | None = None) -> dict:
  res = await client.post("/api/auth/register", json={"email": email, "password": password, "name": name or email.split("@")[0]})
  assert res.status_code == 201, res.text
  return res.json()["user"]


async def login(client: AsyncClient, email: str, password: str = "password123") -> dict:
  res = await client.post("/api/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "token=" in cookie
  return res.json()["user"]


async def signup(client: AsyncClient, email: str, password: str = "password123") -> dict:
  """Register and log in; the client keeps the session cookie."""
  await register(client, email, password)
  return await login(client, email, password)


async def create_project(client: AsyncClient, name: str = "Launch", description: str = "") -> dict:
  res = await client.post("/api/projects", json={"name": name, "description": description})
  assert res.status_code == 201, res.text
  return res.json()["project"]


async def create_task(client: AsyncClient, project_id: str | None, **fields) -> dict:
  body = {"title": "Write release notes", "category": "Docs", **fields}
  if project_id:
    body["projectId"] = project_id
  res = await client.post("/api/taskSave", json=body)
  assert res.status_code == 201, res.text
  return res.json()["task"]
