from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import field_validator

Role = Literal["owner", "editor", "viewer"]
Priority = Literal["low", "medium", "high"]
Status = Literal["todo", "in-progress", "completed"]


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  createdAt: datetime | None = None


class RegisterIn(BaseModel):
  # Presence is checked by the handler so missing fields answer 400.
  email: str | None = None
  password: str | None = None
  name: str | None = None


class LoginIn(BaseModel):
  email: str | None = None
  password: str | None = None


class AuthOut(BaseModel):
  message: str
  user: UserOut


class MeOut(BaseModel):
  user: UserOut


class MemberUserOut(BaseModel):
  id: str
  name: str
  email: str


class MemberOut(BaseModel):
  id: str
  userId: str | None = None
  email: str
  role: Role
  joinedAt: datetime
  pending: bool = False
  user: MemberUserOut | None = None


class MemberAddIn(BaseModel):
  email: str | None = Field(default=None, max_length=320)
  role: Role = "editor"


class MemberAddOut(BaseModel):
  message: str
  member: MemberOut


class MembersOut(BaseModel):
  members: list[MemberOut]


class ProjectCreateIn(BaseModel):
  name: str | None = Field(default=None, max_length=200)
  description: str | None = Field(default=None, max_length=5000)


class ProjectUpdateIn(BaseModel):
  name: str | None = Field(default=None, max_length=200)
  description: str | None = Field(default=None, max_length=5000)


class ProjectOut(BaseModel):
  id: str
  name: str
  description: str = ""
  legacyOwnerId: str | None = None
  members: list[MemberOut] = Field(default_factory=list)
  taskCount: int = 0
  role: Role | None = None
  createdAt: datetime
  updatedAt: datetime


class ProjectEnvelope(BaseModel):
  project: ProjectOut


class ProjectsOut(BaseModel):
  projects: list[ProjectOut]


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=300)
  description: str = Field(default="", max_length=10000)
  category: str = Field(min_length=1, max_length=120)
  priority: Priority = "medium"
  status: Status = "todo"
  taskStatus: str | None = Field(default=None, max_length=200)
  assignee: str | None = Field(default=None, max_length=200)
  projectId: str | None = None

  @field_validator("title", "category")
  @classmethod
  def _strip_required(cls, v: str) -> str:
    s = v.strip()
    if not s:
      raise ValueError("must not be blank")
    return s


class TaskUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=300)
  description: str | None = Field(default=None, max_length=10000)
  category: str | None = Field(default=None, min_length=1, max_length=120)
  priority: Priority | None = None
  status: Status | None = None
  taskStatus: str | None = Field(default=None, max_length=200)
  assignee: str | None = Field(default=None, max_length=200)


class TaskOut(BaseModel):
  id: str
  title: str
  description: str = ""
  category: str
  priority: Priority
  status: Status
  taskStatus: str | None = None
  assignee: str | None = None
  projectId: str | None = None
  legacyUserId: str | None = None
  createdAt: datetime
  updatedAt: datetime


class TaskEnvelope(BaseModel):
  task: TaskOut


class TasksOut(BaseModel):
  tasks: list[TaskOut]


class SearchTaskOut(BaseModel):
  id: str
  title: str = ""
  description: str = ""
  category: str = ""
  priority: str = ""
  status: str = ""
  taskStatus: str = ""
  assignee: str = ""
  projectId: str | None = None
  createdAt: str | None = None
  updatedAt: str | None = None


class SearchHitOut(BaseModel):
  id: str
  score: float
  task: SearchTaskOut


class SearchOut(BaseModel):
  success: bool = True
  query: str
  projectId: str
  results: list[SearchHitOut]
  count: int
  totalFound: int
  minScore: float


class ChatIn(BaseModel):
  message: str = Field(default="", max_length=4000)
  projectContext: Any = None
  projectId: str | None = None


class ChatTaskSuggestion(BaseModel):
  category: str = "General"
  title: str = Field(min_length=1, max_length=300)
  description: str = ""
  priority: Priority = "medium"
  taskStatus: str = ""
  assignee: str = ""
  status: Status = "todo"

  @field_validator("priority", mode="before")
  @classmethod
  def _normalize_priority(cls, v: object) -> object:
    s = str(v or "").strip().lower()
    return s if s in ("low", "medium", "high") else "medium"

  @field_validator("status", mode="before")
  @classmethod
  def _normalize_status(cls, v: object) -> object:
    s = str(v or "").strip().lower().replace("_", "-").replace(" ", "-")
    return s if s in ("todo", "in-progress", "completed") else "todo"

  @field_validator("category", mode="before")
  @classmethod
  def _default_category(cls, v: object) -> object:
    return str(v).strip() if v is not None and str(v).strip() else "General"

  @field_validator("description", "taskStatus", "assignee", mode="before")
  @classmethod
  def _coerce_text(cls, v: object) -> object:
    return "" if v is None else str(v)


class ChatOut(BaseModel):
  message: str
  tasks: list[dict[str, Any]] = Field(default_factory=list)
  foundTask: bool | None = None
  error: str | None = None


class SystemStatusOut(BaseModel):
  version: str
  buildSha: str
  uptimeSeconds: int
  requests: dict[str, float]
  vectorSync: dict[str, int]
