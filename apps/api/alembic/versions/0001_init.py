"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "projects",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False, server_default=""),
    sa.Column("legacy_owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("task_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_projects_legacy_owner_id", "projects", ["legacy_owner_id"], unique=False)

  op.create_table(
    "project_members",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="editor"),
    sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("project_id", "email", name="ux_project_members_project_email"),
  )
  op.create_index("ix_project_members_project_id", "project_members", ["project_id"], unique=False)
  op.create_index("ix_project_members_user_id", "project_members", ["user_id"], unique=False)
  op.create_index("ix_project_members_email", "project_members", ["email"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=True),
    sa.Column("legacy_user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False, server_default=""),
    sa.Column("category", sa.String(), nullable=False),
    sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
    sa.Column("status", sa.String(), nullable=False, server_default="todo"),
    sa.Column("task_status", sa.String(), nullable=True),
    sa.Column("assignee", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_project_id", "tasks", ["project_id"], unique=False)
  op.create_index("ix_tasks_legacy_user_id", "tasks", ["legacy_user_id"], unique=False)

  op.create_table(
    "vector_sync_jobs",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), nullable=False),
    sa.Column("project_id", sa.String(36), nullable=True),
    sa.Column("op", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="pending"),
    sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("last_error", sa.Text(), nullable=True),
    sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_vector_sync_jobs_task_id", "vector_sync_jobs", ["task_id"], unique=False)
  op.create_index("ix_vector_sync_jobs_status", "vector_sync_jobs", ["status"], unique=False)


def downgrade() -> None:
  op.drop_index("ix_vector_sync_jobs_status", table_name="vector_sync_jobs")
  op.drop_index("ix_vector_sync_jobs_task_id", table_name="vector_sync_jobs")
  op.drop_table("vector_sync_jobs")
  op.drop_index("ix_tasks_legacy_user_id", table_name="tasks")
  op.drop_index("ix_tasks_project_id", table_name="tasks")
  op.drop_table("tasks")
  op.drop_index("ix_project_members_email", table_name="project_members")
  op.drop_index("ix_project_members_user_id", table_name="project_members")
  op.drop_index("ix_project_members_project_id", table_name="project_members")
  op.drop_table("project_members")
  op.drop_index("ix_projects_legacy_owner_id", table_name="projects")
  op.drop_table("projects")
  op.drop_index("ix_users_email", table_name="users")
  op.drop_table("users")
