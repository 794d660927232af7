"""backfill owner memberships for legacy-owned projects

Revision ID: 0002_backfill_legacy_members
Revises: 0001_init
Create Date: 2026-10-19
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from alembic import op
import sqlalchemy as sa


revision = "0002_backfill_legacy_members"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
  conn = op.get_bind()
  rows = conn.execute(
    sa.text(
      """
      select p.id as project_id, u.id as user_id, u.email as email
      from projects p
      join users u on u.id = p.legacy_owner_id
      where not exists (
        select 1 from project_members m
        where m.project_id = p.id and (m.user_id = u.id or m.email = u.email)
      )
      """
    )
  ).mappings().all()
  now = datetime.now(timezone.utc)
  for row in rows:
    conn.execute(
      sa.text(
        "insert into project_members (id, project_id, user_id, email, role, joined_at) "
        "values (:id, :project_id, :user_id, :email, 'owner', :joined_at)"
      ),
      {
        "id": str(uuid.uuid4()),
        "project_id": row["project_id"],
        "user_id": row["user_id"],
        "email": row["email"],
        "joined_at": now,
      },
    )


def downgrade() -> None:
  # Backfilled rows are indistinguishable from real owner memberships.
  pass
