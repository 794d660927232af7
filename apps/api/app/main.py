from __future__ import annotations

import asyncio
import logging
import traceback
from time import monotonic

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from app.config import settings
from app.db import SessionLocal
from app.errors import AppError
from app.metrics import runtime_metrics
from app.routers.ai import router as ai_router
from app.routers.auth import router as auth_router
from app.routers.projects import router as projects_router
from app.routers.search import router as search_router
from app.routers.system_status import router as system_status_router
from app.routers.tasks import router as tasks_router
from app.vectors.service import dispatch_pending_once

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
  title="TrelloAI API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(AppError)
async def _app_error_handler(_, exc: AppError) -> JSONResponse:
  content = {"detail": exc.message, "code": exc.code}
  if exc.details:
    content["details"] = exc.details
  return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.exception("unhandled error on %s %s", request.method, request.url.path)
  content: dict = {"detail": "Internal server error"}
  if not settings.is_production():
    content["error"] = f"{type(exc).__name__}: {exc}"
    content["traceback"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
  return JSONResponse(status_code=500, content=content)


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(projects_router)
# Search is registered ahead of the /api/tasks alias.
app.include_router(search_router)
app.include_router(tasks_router, prefix="/api/taskSave")
app.include_router(tasks_router, prefix="/api/tasks", include_in_schema=False)
app.include_router(ai_router)
app.include_router(system_status_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  response = await call_next(request)
  elapsed_ms = (monotonic() - start) * 1000.0
  runtime_metrics.observe_request(response.status_code, elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


_vector_sync_task: asyncio.Task | None = None


def _is_test_db() -> bool:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  return "test" in db_name


async def _vector_sync_loop() -> None:
  while True:
    await asyncio.sleep(max(1, int(settings.vector_sync_interval_seconds)))
    async with SessionLocal() as db:
      try:
        delivered = await dispatch_pending_once(db)
      except Exception:
        # The loop must outlive a bad batch; jobs stay pending for the next pass.
        logger.exception("vector sync pass failed")
        continue
    if delivered:
      logger.info("vector sync delivered %d job(s)", delivered)


@app.on_event("startup")
async def _startup() -> None:
  global _vector_sync_task
  if _is_test_db():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  if settings.vector_sync_enabled and _vector_sync_task is None:
    _vector_sync_task = asyncio.create_task(_vector_sync_loop())
  logger.info("TrelloAI API %s (%s) started in %s mode", settings.app_version, settings.build_sha, settings.environment)


@app.on_event("shutdown")
async def _shutdown() -> None:
  global _vector_sync_task
  if _vector_sync_task is not None:
    _vector_sync_task.cancel()
    _vector_sync_task = None
