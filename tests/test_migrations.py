from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text

ROOT = Path(__file__).resolve().parents[1]


def _alembic_config(db_path: Path) -> Config:
  cfg = Config()
  cfg.set_main_option("script_location", str(ROOT / "alembic"))
  cfg.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
  return cfg


def _seed_legacy_rows(db_path: Path) -> None:
  engine = create_engine(f"sqlite:///{db_path}")
  with engine.begin() as conn:
    conn.execute(
      text(
        "INSERT INTO users (id, username, email, password_hash, role, created_at) "
        "VALUES (1, 'alice', 'alice@example.com', 'x', 'admin', '2024-01-01 00:00:00')"
      )
    )
    conn.execute(
      text("INSERT INTO projects (id, user_id, owner_id, title, description, created_at) VALUES (7, 1, NULL, 'Legacy', NULL, '2024-01-02 00:00:00')")
    )
    conn.execute(text("INSERT INTO tasks (id, project_id, user_id, title, created_at) VALUES (1, 7, NULL, 'Kept', '2024-01-03 00:00:00')"))
    conn.execute(text("INSERT INTO tasks (id, project_id, user_id, title, created_at) VALUES (2, 99, 1, 'Lost project', '2024-01-03 00:00:00')"))
  engine.dispose()


def _owner_fks(engine, table: str) -> list[dict]:
  return [fk for fk in inspect(engine).get_foreign_keys(table) if fk["constrained_columns"] == ["owner_id"]]


def test_legacy_schema_upgrades_to_head_and_back(tmp_path: Path) -> None:
  db_path = tmp_path / "migrate_test.db"
  cfg = _alembic_config(db_path)

  command.upgrade(cfg, "0001_init")
  _seed_legacy_rows(db_path)
  command.upgrade(cfg, "head")

  engine = create_engine(f"sqlite:///{db_path}")
  try:
    task_cols = {c["name"] for c in inspect(engine).get_columns("tasks")}
    assert {"owner_id", "assignees", "start_date"} <= task_cols
    assert "user_id" not in task_cols
    assert "user_id" not in {c["name"] for c in inspect(engine).get_columns("projects")}
    assert [fk["referred_table"] for fk in _owner_fks(engine, "tasks")] == ["users"]
    assert [fk["referred_table"] for fk in _owner_fks(engine, "projects")] == ["users"]
    assert {"attachments", "audit_events"} <= set(inspect(engine).get_table_names())

    with engine.connect() as conn:
      assert conn.execute(text("SELECT owner_id, description FROM projects WHERE id = 7")).one() == (1, "")
      rows = conn.execute(text("SELECT id, project_id, owner_id, description FROM tasks ORDER BY id")).all()
    assert [tuple(r) for r in rows] == [(1, 7, 1, ""), (2, None, 1, "")]
  finally:
    engine.dispose()

  command.downgrade(cfg, "0002_tasks_nullable_project")

  engine = create_engine(f"sqlite:///{db_path}")
  try:
    task_cols = {c["name"] for c in inspect(engine).get_columns("tasks")}
    assert "user_id" in task_cols
    assert "owner_id" not in task_cols
    assert "attachments" not in inspect(engine).get_table_names()
    with engine.connect() as conn:
      assert conn.execute(text("SELECT user_id FROM projects WHERE id = 7")).scalar_one() == 1
      assert conn.execute(text("SELECT user_id FROM tasks WHERE id = 1")).scalar_one() == 1
  finally:
    engine.dispose()
