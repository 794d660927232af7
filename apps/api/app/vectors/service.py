from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.ai.embeddings import embed_one, task_embedding_text
from app.config import settings
from app.db import SessionLocal
from app.models import Task, VectorSyncJob
from app.vectors.index import VectorRecord, get_vector_index

logger = logging.getLogger(__name__)

CLAIM_LEASE_SECONDS = 60
MAX_BACKOFF_SECONDS = 3600


def _iso(dt: datetime | None) -> str | None:
  return dt.isoformat() if dt else None


def task_fields(t: Task) -> dict[str, Any]:
  return {
    "title": t.title,
    "description": t.description,
    "category": t.category,
    "priority": t.priority,
    "status": t.status,
    "taskStatus": t.task_status,
    "assignee": t.assignee,
  }


def task_metadata(t: Task) -> dict[str, Any]:
  meta = {"taskId": t.id, "projectId": t.project_id, "legacyUserId": t.legacy_user_id}
  for k, v in task_fields(t).items():
    meta[k] = v or ""
  meta["createdAt"] = _iso(t.created_at)
  meta["updatedAt"] = _iso(t.updated_at)
  return meta


def backoff_seconds(attempts: int) -> int:
  return min(MAX_BACKOFF_SECONDS, 5 * (2 ** max(0, attempts - 1)))


def enqueue_upsert(db: AsyncSession, t: Task) -> VectorSyncJob:
  job = VectorSyncJob(task_id=t.id, project_id=t.project_id, op="upsert", status="pending")
  db.add(job)
  return job


def enqueue_delete(db: AsyncSession, *, task_id: str, project_id: str | None) -> VectorSyncJob:
  job = VectorSyncJob(task_id=task_id, project_id=project_id, op="delete", status="pending")
  db.add(job)
  return job


async def _apply(db: AsyncSession, job: VectorSyncJob) -> str:
  index = get_vector_index()
  if job.op == "delete":
    await index.delete([job.task_id])
    return "deleted"
  res = await db.execute(select(Task).where(Task.id == job.task_id))
  t = res.scalar_one_or_none()
  if t is None:
    # Deleted after the job was queued; its delete job clears the index.
    return "skipped"
  values = await embed_one(task_embedding_text(task_fields(t)))
  # The task may have been deleted while the embedding was computed.
  gone = await db.execute(select(Task.id).where(Task.id == job.task_id))
  if gone.scalar_one_or_none() is None:
    return "skipped"
  await index.upsert([VectorRecord(id=t.id, values=values, metadata=task_metadata(t))])
  return "upserted"


async def dispatch_pending_once(
  db: AsyncSession,
  *,
  now: datetime | None = None,
  limit: int = 50,
  job_ids: list[str] | None = None,
) -> int:
  """
  Deliver due index jobs.

  - Jobs are claimed by pushing next_attempt_at forward, so concurrent
    dispatchers never run the same attempt twice.
  - Failures back off exponentially; after vector_sync_max_attempts the job
    is marked dead and kept for inspection.
  """
  now = now or datetime.now(timezone.utc)
  # Jobs for one task run in creation order: a job waits while an older one for
  # the same task is still pending or leased.
  older = aliased(VectorSyncJob)
  blocked = exists().where(
    older.task_id == VectorSyncJob.task_id,
    older.status == "pending",
    or_(
      older.created_at < VectorSyncJob.created_at,
      and_(older.created_at == VectorSyncJob.created_at, older.id < VectorSyncJob.id),
    ),
  )
  q = select(VectorSyncJob).where(VectorSyncJob.status == "pending", VectorSyncJob.next_attempt_at <= now, ~blocked)
  if job_ids is not None:
    if not job_ids:
      return 0
    q = q.where(VectorSyncJob.id.in_(job_ids))
  res = await db.execute(q.order_by(VectorSyncJob.created_at.asc()).limit(int(limit)))
  jobs = res.scalars().all()

  done = 0
  max_attempts = max(1, int(settings.vector_sync_max_attempts))
  for job in jobs:
    seen = int(job.attempts)
    attempts = seen + 1
    claim = await db.execute(
      update(VectorSyncJob)
      .where(VectorSyncJob.id == job.id, VectorSyncJob.status == "pending", VectorSyncJob.attempts == seen)
      .values(attempts=attempts, next_attempt_at=now + timedelta(seconds=CLAIM_LEASE_SECONDS))
    )
    await db.commit()
    if claim.rowcount == 0:
      continue

    try:
      outcome = await _apply(db, job)
    except Exception as e:
      err = f"{type(e).__name__}: {e}"[:1000]
      if attempts >= max_attempts:
        await db.execute(update(VectorSyncJob).where(VectorSyncJob.id == job.id).values(status="dead", last_error=err))
        logger.error("vector %s for task %s is dead after %d attempts: %s", job.op, job.task_id, attempts, err)
      else:
        retry_at = now + timedelta(seconds=backoff_seconds(attempts))
        await db.execute(
          update(VectorSyncJob).where(VectorSyncJob.id == job.id).values(last_error=err, next_attempt_at=retry_at)
        )
        logger.warning("vector %s for task %s failed (attempt %d): %s", job.op, job.task_id, attempts, err)
      await db.commit()
      continue

    await db.execute(update(VectorSyncJob).where(VectorSyncJob.id == job.id).values(status="done", last_error=None))
    await db.commit()
    logger.debug("vector %s for task %s: %s", job.op, job.task_id, outcome)
    done += 1
  return done


async def dispatch_after_commit(job_ids: list[str]) -> None:
  """First delivery attempt, run once the request has been answered."""
  if not settings.vector_sync_enabled or not job_ids:
    return
  async with SessionLocal() as db:
    await dispatch_pending_once(db, job_ids=job_ids)


async def outbox_counts(db: AsyncSession) -> dict[str, int]:
  res = await db.execute(select(VectorSyncJob.status, func.count()).group_by(VectorSyncJob.status))
  counts = {"pending": 0, "done": 0, "dead": 0}
  for status_key, n in res.all():
    counts[str(status_key)] = int(n)
  return counts
