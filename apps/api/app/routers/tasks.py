from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.access import accessible_project_ids, ensure_valid_id, require_project_role, require_task_role
from app.deps import get_current_user, get_db, valid_task_id
from app.models import Project, Task, User
from app.schemas import TaskCreateIn, TaskEnvelope, TaskOut, TasksOut, TaskUpdateIn
from app.vectors.service import dispatch_after_commit, enqueue_delete, enqueue_upsert

# Mounted twice by app.main: at /api/taskSave and at /api/tasks.
router = APIRouter(tags=["tasks"])

# API field name -> column attribute.
_WRITABLE = {
  "title": "title",
  "description": "description",
  "category": "category",
  "priority": "priority",
  "status": "status",
  "taskStatus": "task_status",
  "assignee": "assignee",
}
_NULLABLE = {"task_status", "assignee"}


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    title=t.title,
    description=t.description or "",
    category=t.category,
    priority=t.priority,
    status=t.status,
    taskStatus=t.task_status,
    assignee=t.assignee,
    projectId=t.project_id,
    legacyUserId=t.legacy_user_id,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def _bump_task_count(db: AsyncSession, project_id: str | None, delta: int) -> None:
  if not project_id:
    return
  if delta >= 0:
    value = Project.task_count + delta
  else:
    value = case((Project.task_count + delta < 0, 0), else_=Project.task_count + delta)
  await db.execute(update(Project).where(Project.id == project_id).values(task_count=value))


@router.get("", response_model=TasksOut)
async def list_tasks(
  project_id: str | None = Query(default=None, alias="projectId"),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TasksOut:
  q = select(Task)
  if project_id:
    pid = ensure_valid_id(project_id, label="project")
    await require_project_role(db, pid, user.id, "viewer")
    q = q.where(Task.project_id == pid)
  else:
    q = q.where(
      or_(
        Task.project_id.in_(accessible_project_ids(user.id)),
        and_(Task.project_id.is_(None), Task.legacy_user_id == user.id),
      )
    )
  res = await db.execute(q.order_by(Task.created_at.desc()))
  return TasksOut(tasks=[task_out(t) for t in res.scalars().all()])


@router.post("", response_model=TaskEnvelope, status_code=status.HTTP_201_CREATED)
async def create_task(
  payload: TaskCreateIn,
  background_tasks: BackgroundTasks,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskEnvelope:
  project_id = None
  if payload.projectId:
    project_id = ensure_valid_id(payload.projectId, label="project")
    await require_project_role(db, project_id, user.id, "editor")

  t = Task(
    project_id=project_id,
    legacy_user_id=user.id,
    title=payload.title,
    description=payload.description,
    category=payload.category,
    priority=payload.priority,
    status=payload.status,
    task_status=payload.taskStatus,
    assignee=payload.assignee,
  )
  db.add(t)
  await db.flush()
  await _bump_task_count(db, project_id, 1)
  job = enqueue_upsert(db, t)
  await db.commit()

  background_tasks.add_task(dispatch_after_commit, [job.id])
  return TaskEnvelope(task=task_out(t))


@router.get("/{task_id}", response_model=TaskEnvelope)
async def get_task(
  task_id: str = Depends(valid_task_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskEnvelope:
  access = await require_task_role(db, task_id, user.id, "viewer")
  return TaskEnvelope(task=task_out(access.task))


@router.put("/{task_id}", response_model=TaskEnvelope)
async def update_task(
  payload: TaskUpdateIn,
  background_tasks: BackgroundTasks,
  task_id: str = Depends(valid_task_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskEnvelope:
  access = await require_task_role(db, task_id, user.id, "editor")
  t = access.task

  for field in payload.model_fields_set:
    attr = _WRITABLE.get(field)
    if attr is None:
      continue
    value = getattr(payload, field)
    if value is None and attr not in _NULLABLE:
      continue
    if isinstance(value, str) and attr in ("title", "category"):
      value = value.strip() or getattr(t, attr)
    setattr(t, attr, value)

  job = enqueue_upsert(db, t)
  await db.commit()
  await db.refresh(t)

  background_tasks.add_task(dispatch_after_commit, [job.id])
  return TaskEnvelope(task=task_out(t))


@router.delete("/{task_id}")
async def delete_task(
  background_tasks: BackgroundTasks,
  task_id: str = Depends(valid_task_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  access = await require_task_role(db, task_id, user.id, "editor")
  t = access.task
  project_id = t.project_id

  await db.delete(t)
  await _bump_task_count(db, project_id, -1)
  job = enqueue_delete(db, task_id=task_id, project_id=project_id)
  await db.commit()

  background_tasks.add_task(dispatch_after_commit, [job.id])
  return {"message": "Task deleted successfully"}
