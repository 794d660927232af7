from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Project(Base):
  __tablename__ = "projects"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  # Single-owner field from before multi-member projects; still honoured on access.
  legacy_owner_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
  task_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ProjectMember(Base):
  __tablename__ = "project_members"
  __table_args__ = (UniqueConstraint("project_id", "email", name="ux_project_members_project_email"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
  # Null until the invited email registers.
  user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
  email: Mapped[str] = mapped_column(String, nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="editor")
  joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  project_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("projects.id"), nullable=True, index=True)
  legacy_user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  category: Mapped[str] = mapped_column(String, nullable=False)
  priority: Mapped[str] = mapped_column(String, nullable=False, default="medium")
  status: Mapped[str] = mapped_column(String, nullable=False, default="todo")
  task_status: Mapped[str | None] = mapped_column(String, nullable=True)
  assignee: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class VectorSyncJob(Base):
  __tablename__ = "vector_sync_jobs"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
  project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  op: Mapped[str] = mapped_column(String, nullable=False)  # upsert | delete
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending", index=True)  # pending | done | dead
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  next_attempt_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
