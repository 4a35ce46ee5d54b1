"""tasks: nullable project_id for standalone tasks

Revision ID: 0002_tasks_nullable_project
Revises: 0001_init
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_tasks_nullable_project"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.execute(
    "UPDATE tasks SET "
    "description = COALESCE(description, ''), "
    "column_status = COALESCE(column_status, 'todo'), "
    "priority = COALESCE(priority, 'p2')"
  )
  # SQLite cannot drop NOT NULL in place; batch mode rebuilds the table.
  with op.batch_alter_table("tasks", recreate="auto") as batch:
    batch.alter_column("project_id", existing_type=sa.Integer(), nullable=True)


def downgrade() -> None:
  op.execute("DELETE FROM tasks WHERE project_id IS NULL")
  with op.batch_alter_table("tasks", recreate="auto") as batch:
    batch.alter_column("project_id", existing_type=sa.Integer(), nullable=False)
