from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import Forbidden, InvalidIdentifier, NotFound
from app.models import Project, ProjectMember, Task

# role order: viewer < editor < owner
ROLE_RANK: dict[str, int] = {"viewer": 1, "editor": 2, "owner": 3}
ROLES: tuple[str, ...] = ("owner", "editor", "viewer")


def role_satisfies(actual: str | None, required: str) -> bool:
  return ROLE_RANK.get(actual or "", 0) >= ROLE_RANK[required]


def ensure_valid_id(value: str, *, label: str) -> str:
  try:
    return str(uuid.UUID(str(value)))
  except (TypeError, ValueError, AttributeError) as exc:
    raise InvalidIdentifier(f"Invalid {label} ID") from exc


@dataclass
class ProjectAccess:
  has_access: bool
  project: Project | None
  user_role: str | None
  insufficient_role: bool = False


@dataclass
class TaskAccess:
  has_access: bool
  task: Task | None
  project: Project | None
  user_role: str | None
  insufficient_role: bool = False


def accessible_project_ids(user_id: str):
  """Subquery of project ids where the user is legacy owner or a linked member."""
  return select(Project.id).where(
    or_(
      Project.legacy_owner_id == user_id,
      Project.id.in_(select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)),
    )
  )


async def resolve_project_access(
  db: AsyncSession,
  project_id: str,
  user_id: str,
  required_role: str | None = None,
) -> ProjectAccess:
  member_match = exists().where(ProjectMember.project_id == Project.id, ProjectMember.user_id == user_id)
  res = await db.execute(
    select(Project).where(Project.id == project_id, or_(Project.legacy_owner_id == user_id, member_match))
  )
  project = res.scalar_one_or_none()
  if project is None:
    return ProjectAccess(has_access=False, project=None, user_role=None)

  mres = await db.execute(
    select(ProjectMember.role).where(ProjectMember.project_id == project.id, ProjectMember.user_id == user_id)
  )
  # legacy projects have no member row for the owner
  user_role = mres.scalars().first() or "owner"

  if required_role and not role_satisfies(user_role, required_role):
    return ProjectAccess(has_access=False, project=project, user_role=user_role, insufficient_role=True)
  return ProjectAccess(has_access=True, project=project, user_role=user_role)


async def resolve_task_access(
  db: AsyncSession,
  task_id: str,
  user_id: str,
  required_role: str | None = None,
) -> TaskAccess:
  res = await db.execute(select(Task).where(Task.id == task_id))
  task = res.scalar_one_or_none()
  if task is None:
    return TaskAccess(has_access=False, task=None, project=None, user_role=None)

  if not task.project_id:
    if task.legacy_user_id != user_id:
      return TaskAccess(has_access=False, task=task, project=None, user_role=None)
    return TaskAccess(has_access=True, task=task, project=None, user_role="owner")

  pa = await resolve_project_access(db, task.project_id, user_id, required_role)
  return TaskAccess(
    has_access=pa.has_access,
    task=task,
    project=pa.project,
    user_role=pa.user_role,
    insufficient_role=pa.insufficient_role,
  )


def _forbidden_message(required_role: str) -> str:
  if required_role == "owner":
    return "Only project owners can perform this action"
  if required_role == "editor":
    return "Insufficient permissions. Editor or Owner role required."
  return "Insufficient permissions"


async def require_project_role(db: AsyncSession, project_id: str, user_id: str, min_role: str) -> ProjectAccess:
  access = await resolve_project_access(db, project_id, user_id, min_role)
  if access.has_access:
    return access
  if access.insufficient_role:
    raise Forbidden(_forbidden_message(min_role))
  raise NotFound("Project not found")


async def require_task_role(db: AsyncSession, task_id: str, user_id: str, min_role: str) -> TaskAccess:
  access = await resolve_task_access(db, task_id, user_id, min_role)
  if access.has_access:
    return access
  if access.insufficient_role:
    raise Forbidden(_forbidden_message(min_role))
  raise NotFound("Task not found")
