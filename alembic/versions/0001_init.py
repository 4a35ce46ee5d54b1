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
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="user"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_username", "users", ["username"], unique=True)
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "settings",
    sa.Column("id", sa.Integer(), primary_key=True),
    sa.Column("site_name", sa.String(), nullable=False, server_default="GeminiFlow"),
    sa.Column("allow_registration", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("default_role", sa.String(), nullable=False, server_default="user"),
    sa.Column("default_model", sa.String(), nullable=False, server_default=""),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )

  op.create_table(
    "ai_channels",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("base_url", sa.String(), nullable=False, server_default=""),
    sa.Column("api_key_encrypted", sa.Text(), nullable=False),
    sa.Column("models", sa.JSON(), nullable=False),
    sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )

  # legacy projects carried both user_id and owner_id
  op.create_table(
    "projects",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("user_id", sa.Integer(), nullable=True),
    sa.Column("owner_id", sa.Integer(), nullable=True),
    sa.Column("title", sa.String(), nullable=True),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )

  op.create_table(
    "tasks",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("project_id", sa.Integer(), nullable=False),
    sa.Column("user_id", sa.Integer(), nullable=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("column_status", sa.String(), nullable=True, server_default="todo"),
    sa.Column("due_date", sa.Date(), nullable=True),
    sa.Column("priority", sa.String(), nullable=True, server_default="p2"),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("subtasks", sa.JSON(), nullable=True),
    sa.Column("tags", sa.JSON(), nullable=True),
    sa.Column("chat_history", sa.JSON(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_project_id", "tasks", ["project_id"], unique=False)


def downgrade() -> None:
  op.drop_index("ix_tasks_project_id", table_name="tasks")
  op.drop_table("tasks")
  op.drop_table("projects")
  op.drop_table("ai_channels")
  op.drop_table("settings")
  op.drop_index("ix_users_email", table_name="users")
  op.drop_index("ix_users_username", table_name="users")
  op.drop_table("users")
