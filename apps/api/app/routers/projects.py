from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.access import accessible_project_ids, require_project_role
from app.deps import get_current_user, get_db, valid_project_id
from app.errors import DuplicateMember, ValidationFailed
from app.models import Project, ProjectMember, Task, User
from app.routers.tasks import task_out
from app.schemas import (
  MemberAddIn,
  MemberAddOut,
  MemberOut,
  MemberUserOut,
  MembersOut,
  ProjectCreateIn,
  ProjectEnvelope,
  ProjectOut,
  ProjectsOut,
  ProjectUpdateIn,
  TasksOut,
)
from app.vectors.service import dispatch_after_commit, enqueue_delete

router = APIRouter(prefix="/api/projects", tags=["projects"])

DUPLICATE_MEMBER_MESSAGE = "This person is already a member of the project"


def member_out(m: ProjectMember, u: User | None) -> MemberOut:
  return MemberOut(
    id=m.id,
    userId=m.user_id,
    email=m.email,
    role=m.role,
    joinedAt=m.joined_at,
    pending=m.user_id is None,
    user=MemberUserOut(id=u.id, name=u.name, email=u.email) if u else None,
  )


async def _members_by_project(db: AsyncSession, project_ids: list[str]) -> dict[str, list[tuple[ProjectMember, User | None]]]:
  out: dict[str, list[tuple[ProjectMember, User | None]]] = {pid: [] for pid in project_ids}
  if not project_ids:
    return out
  res = await db.execute(
    select(ProjectMember, User)
    .outerjoin(User, User.id == ProjectMember.user_id)
    .where(ProjectMember.project_id.in_(project_ids))
    .order_by(ProjectMember.joined_at.asc())
  )
  for m, u in res.all():
    out[m.project_id].append((m, u))
  return out


def _role_for(p: Project, members: list[tuple[ProjectMember, User | None]], user_id: str) -> str | None:
  for m, _u in members:
    if m.user_id == user_id:
      return m.role
  return "owner" if p.legacy_owner_id == user_id else None


def project_out(p: Project, members: list[tuple[ProjectMember, User | None]], *, role: str | None) -> ProjectOut:
  return ProjectOut(
    id=p.id,
    name=p.name,
    description=p.description or "",
    legacyOwnerId=p.legacy_owner_id,
    members=[member_out(m, u) for m, u in members],
    taskCount=int(p.task_count or 0),
    role=role,
    createdAt=p.created_at,
    updatedAt=p.updated_at,
  )


async def _project_envelope(db: AsyncSession, p: Project, user_id: str) -> ProjectEnvelope:
  members = (await _members_by_project(db, [p.id]))[p.id]
  return ProjectEnvelope(project=project_out(p, members, role=_role_for(p, members, user_id)))


@router.get("", response_model=ProjectsOut)
async def list_projects(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectsOut:
  res = await db.execute(
    select(Project).where(Project.id.in_(accessible_project_ids(user.id))).order_by(Project.created_at.desc())
  )
  projects = res.scalars().all()
  members = await _members_by_project(db, [p.id for p in projects])
  return ProjectsOut(projects=[project_out(p, members[p.id], role=_role_for(p, members[p.id], user.id)) for p in projects])


@router.post("", response_model=ProjectEnvelope, status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectEnvelope:
  name = (payload.name or "").strip()
  if not name:
    raise ValidationFailed("Project name is required")

  p = Project(name=name, description=(payload.description or "").strip(), legacy_owner_id=user.id, task_count=0)
  db.add(p)
  await db.flush()
  # The creator is always the first member, as owner.
  db.add(ProjectMember(project_id=p.id, user_id=user.id, email=user.email, role="owner"))
  await db.commit()
  return await _project_envelope(db, p, user.id)


@router.get("/{project_id}", response_model=ProjectEnvelope)
async def get_project(
  project_id: str = Depends(valid_project_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ProjectEnvelope:
  access = await require_project_role(db, project_id, user.id, "viewer")
  return await _project_envelope(db, access.project, user.id)


@router.put("/{project_id}", response_model=ProjectEnvelope)
async def update_project(
  payload: ProjectUpdateIn,
  project_id: str = Depends(valid_project_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ProjectEnvelope:
  access = await require_project_role(db, project_id, user.id, "editor")
  p = access.project
  fields_set = payload.model_fields_set
  if "name" in fields_set and payload.name is not None:
    name = payload.name.strip()
    if not name:
      raise ValidationFailed("Project name is required")
    p.name = name
  if "description" in fields_set and payload.description is not None:
    p.description = payload.description.strip()
  await db.commit()
  await db.refresh(p)
  return await _project_envelope(db, p, user.id)


@router.delete("/{project_id}")
async def delete_project(
  background_tasks: BackgroundTasks,
  project_id: str = Depends(valid_project_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await require_project_role(db, project_id, user.id, "owner")

  res = await db.execute(select(Task.id).where(Task.project_id == project_id))
  jobs = [enqueue_delete(db, task_id=tid, project_id=project_id) for tid in res.scalars().all()]
  await db.execute(delete(Task).where(Task.project_id == project_id))
  await db.execute(delete(ProjectMember).where(ProjectMember.project_id == project_id))
  await db.execute(delete(Project).where(Project.id == project_id))
  await db.commit()

  background_tasks.add_task(dispatch_after_commit, [j.id for j in jobs])
  return {"message": "Project and associated tasks deleted successfully", "deletedTasks": len(jobs)}


@router.get("/{project_id}/tasks", response_model=TasksOut)
async def list_project_tasks(
  project_id: str = Depends(valid_project_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TasksOut:
  await require_project_role(db, project_id, user.id, "viewer")
  res = await db.execute(select(Task).where(Task.project_id == project_id).order_by(Task.created_at.desc()))
  return TasksOut(tasks=[task_out(t) for t in res.scalars().all()])


@router.get("/{project_id}/members", response_model=MembersOut)
async def list_members(
  project_id: str = Depends(valid_project_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MembersOut:
  await require_project_role(db, project_id, user.id, "viewer")
  members = (await _members_by_project(db, [project_id]))[project_id]
  return MembersOut(members=[member_out(m, u) for m, u in members])


@router.post("/{project_id}/members", response_model=MemberAddOut, status_code=status.HTTP_201_CREATED)
async def add_member(
  payload: MemberAddIn,
  project_id: str = Depends(valid_project_id),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MemberAddOut:
  await require_project_role(db, project_id, user.id, "editor")
  email = (payload.email or "").strip().lower()
  if not email:
    raise ValidationFailed("Email is required")

  existing = await db.execute(
    select(ProjectMember.id).where(ProjectMember.project_id == project_id, ProjectMember.email == email)
  )
  if existing.scalar_one_or_none():
    raise DuplicateMember(DUPLICATE_MEMBER_MESSAGE)

  ures = await db.execute(select(User).where(User.email == email))
  invitee = ures.scalar_one_or_none()
  m = ProjectMember(project_id=project_id, user_id=invitee.id if invitee else None, email=email, role=payload.role)
  db.add(m)
  try:
    await db.commit()
  except IntegrityError as exc:
    await db.rollback()
    raise DuplicateMember(DUPLICATE_MEMBER_MESSAGE) from exc
  return MemberAddOut(message="Member added successfully", member=member_out(m, invitee))
