"""full schema: single project owner, project metadata, attachments, audit

Revision ID: 0003_full_schema
Revises: 0002_tasks_nullable_project
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0003_full_schema"
down_revision = "0002_tasks_nullable_project"
branch_labels = None
depends_on = None

DEFAULT_FILE_TYPES = ".pdf,.doc,.docx,.xls,.xlsx,.png,.jpg,.jpeg,.gif,.zip"


def upgrade() -> None:
  # projects: fold user_id into owner_id
  op.execute(
    "UPDATE projects SET "
    "owner_id = COALESCE(owner_id, user_id, (SELECT MIN(id) FROM users)), "
    "title = COALESCE(title, 'Untitled'), "
    "description = COALESCE(description, '')"
  )
  op.execute("DELETE FROM projects WHERE owner_id IS NULL")
  with op.batch_alter_table("projects", recreate="auto") as batch:
    batch.drop_column("user_id")
    batch.alter_column("owner_id", existing_type=sa.Integer(), nullable=False)
    batch.alter_column("title", existing_type=sa.String(), nullable=False)
    batch.alter_column("description", existing_type=sa.Text(), nullable=False)
    batch.add_column(sa.Column("status", sa.String(), nullable=False, server_default="active"))
    batch.add_column(sa.Column("assignees", sa.JSON(), nullable=False, server_default="[]"))
    batch.add_column(sa.Column("start_date", sa.Date(), nullable=True))
    batch.add_column(sa.Column("end_date", sa.Date(), nullable=True))
    batch.add_column(sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.false()))
    batch.add_column(sa.Column("color", sa.String(), nullable=True))
    batch.add_column(sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()))
    batch.create_foreign_key("fk_projects_owner_id_users", "users", ["owner_id"], ["id"])
  op.create_index("ix_projects_owner_id", "projects", ["owner_id"], unique=False)

  # tasks: user_id becomes owner_id, orphans inherit the project owner
  op.execute(
    "UPDATE tasks SET "
    "user_id = COALESCE(user_id, (SELECT owner_id FROM projects WHERE projects.id = tasks.project_id), (SELECT MIN(id) FROM users)), "
    "subtasks = COALESCE(subtasks, '[]'), "
    "tags = COALESCE(tags, '[]'), "
    "chat_history = COALESCE(chat_history, '[]')"
  )
  op.execute("DELETE FROM tasks WHERE user_id IS NULL")
  op.execute("UPDATE tasks SET project_id = NULL WHERE project_id IS NOT NULL AND project_id NOT IN (SELECT id FROM projects)")
  with op.batch_alter_table("tasks", recreate="auto") as batch:
    batch.alter_column("user_id", new_column_name="owner_id", existing_type=sa.Integer(), nullable=False)
    batch.alter_column("description", existing_type=sa.Text(), nullable=False, server_default="")
    batch.alter_column("column_status", existing_type=sa.String(), nullable=False)
    batch.alter_column("priority", existing_type=sa.String(), nullable=False)
    batch.alter_column("subtasks", existing_type=sa.JSON(), nullable=False)
    batch.alter_column("tags", existing_type=sa.JSON(), nullable=False)
    batch.alter_column("chat_history", existing_type=sa.JSON(), nullable=False)
    batch.add_column(sa.Column("start_date", sa.Date(), nullable=True))
    batch.add_column(sa.Column("assignees", sa.JSON(), nullable=False, server_default="[]"))
    batch.create_foreign_key("fk_tasks_project_id_projects", "projects", ["project_id"], ["id"])
  # the renamed column only exists once the first rebuild has run
  with op.batch_alter_table("tasks", recreate="auto") as batch:
    batch.create_foreign_key("fk_tasks_owner_id_users", "users", ["owner_id"], ["id"])
  op.create_index("ix_tasks_owner_id", "tasks", ["owner_id"], unique=False)
  op.create_index("ix_tasks_due_date", "tasks", ["due_date"], unique=False)

  with op.batch_alter_table("settings", recreate="auto") as batch:
    batch.add_column(sa.Column("allowed_file_types", sa.Text(), nullable=False, server_default=DEFAULT_FILE_TYPES))
    batch.add_column(sa.Column("max_file_size", sa.Integer(), nullable=False, server_default="10"))

  op.create_table(
    "attachments",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("filename", sa.String(), nullable=False),
    sa.Column("original_name", sa.String(), nullable=False),
    sa.Column("mime_type", sa.String(), nullable=False),
    sa.Column("size", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_attachments_task_id", "attachments", ["task_id"], unique=False)

  op.create_table(
    "audit_events",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("actor_id", sa.Integer(), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"], unique=False)


def downgrade() -> None:
  op.drop_index("ix_audit_events_actor_id", table_name="audit_events")
  op.drop_table("audit_events")
  op.drop_index("ix_attachments_task_id", table_name="attachments")
  op.drop_table("attachments")

  with op.batch_alter_table("settings", recreate="auto") as batch:
    batch.drop_column("max_file_size")
    batch.drop_column("allowed_file_types")

  op.drop_index("ix_tasks_due_date", table_name="tasks")
  op.drop_index("ix_tasks_owner_id", table_name="tasks")
  with op.batch_alter_table("tasks", recreate="auto") as batch:
    batch.drop_constraint("fk_tasks_owner_id_users", type_="foreignkey")
    batch.drop_constraint("fk_tasks_project_id_projects", type_="foreignkey")
    batch.drop_column("assignees")
    batch.drop_column("start_date")
    batch.alter_column("owner_id", new_column_name="user_id", existing_type=sa.Integer(), nullable=True)

  op.drop_index("ix_projects_owner_id", table_name="projects")
  with op.batch_alter_table("projects", recreate="auto") as batch:
    batch.drop_constraint("fk_projects_owner_id_users", type_="foreignkey")
    batch.drop_column("archived")
    batch.drop_column("color")
    batch.drop_column("pinned")
    batch.drop_column("end_date")
    batch.drop_column("start_date")
    batch.drop_column("assignees")
    batch.drop_column("status")
    batch.alter_column("owner_id", existing_type=sa.Integer(), nullable=True)
    batch.add_column(sa.Column("user_id", sa.Integer(), nullable=True))
  op.execute("UPDATE projects SET user_id = owner_id")
