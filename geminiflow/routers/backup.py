from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.audit import write_audit
from geminiflow.deps import get_current_user, get_db
from geminiflow.models import Project, Task, User
from geminiflow.schemas import COLUMNS, QUADRANTS, BackupImportCounts, BackupImportIn, BackupImportOut, _parse_date, _parse_dt_utc
from geminiflow.serializers import project_out, task_out
from geminiflow.storage import remove_uploads
from geminiflow.task_rules import delete_tasks

router = APIRouter(prefix="/backup", tags=["backup"])

BACKUP_VERSION = "1.0"
PROJECT_STATUSES = ("pending", "active", "completed")


class BackupFormatError(ValueError):
  pass


def _list_field(value: Any) -> list[Any]:
  """Lists arrive either as arrays or as JSON encoded strings."""
  if value is None or value == "":
    return []
  if isinstance(value, str):
    try:
      value = json.loads(value)
    except json.JSONDecodeError as exc:
      raise BackupFormatError("List field is not valid JSON") from exc
  if not isinstance(value, list):
    raise BackupFormatError("List field must be an array")
  return value


def _str_list(value: Any) -> list[str]:
  return [str(x).strip() for x in _list_field(value) if str(x).strip()]


def _date_field(value: Any) -> date | None:
  try:
    return _parse_date(value)
  except ValueError as exc:
    raise BackupFormatError(f"Invalid date: {value!r}") from exc


def _bool_field(value: Any) -> bool:
  if isinstance(value, str):
    return value.strip().lower() in ("1", "true", "yes")
  return bool(value)


def _parse_project(raw: Any) -> dict[str, Any]:
  if not isinstance(raw, dict):
    raise BackupFormatError("Project entries must be objects")
  title = str(raw.get("title") or "").strip()
  if not title:
    raise BackupFormatError("Project title is required")
  st = raw.get("status")
  return {
    "old_id": raw.get("id"),
    "title": title,
    "description": str(raw.get("description") or ""),
    "status": st if st in PROJECT_STATUSES else "active",
    "assignees": _str_list(raw.get("assignees")),
    "start_date": _date_field(raw.get("startDate")),
    "end_date": _date_field(raw.get("endDate")),
    "pinned": _bool_field(raw.get("pinned")),
    "color": raw.get("color") or None,
    "archived": _bool_field(raw.get("archived")),
  }


def _parse_task(raw: Any) -> dict[str, Any]:
  if not isinstance(raw, dict):
    raise BackupFormatError("Task entries must be objects")
  title = str(raw.get("title") or "").strip()
  if not title:
    raise BackupFormatError("Task title is required")
  column = raw.get("column") if raw.get("column") in COLUMNS else "todo"
  try:
    completed_at = _parse_dt_utc(raw.get("completedAt"))
  except ValueError as exc:
    raise BackupFormatError("Invalid completedAt") from exc
  if column != "done":
    completed_at = None
  elif completed_at is None:
    completed_at = datetime.now(timezone.utc)
  subtasks = []
  for s in _list_field(raw.get("subtasks")):
    if isinstance(s, dict) and str(s.get("text") or "").strip():
      subtasks.append({"text": str(s["text"]), "done": bool(s.get("done"))})
  chat = []
  for m in _list_field(raw.get("chatHistory")):
    if isinstance(m, dict) and m.get("sender") in ("user", "ai"):
      chat.append({"sender": m["sender"], "text": str(m.get("text") or "")})
  return {
    "old_project_id": raw.get("projectId"),
    "title": title,
    "description": str(raw.get("description") or ""),
    "column": column,
    "start_date": _date_field(raw.get("startDate")),
    "due_date": _date_field(raw.get("dueDate")),
    "priority": raw.get("priority") if raw.get("priority") in QUADRANTS else "p2",
    "completed_at": completed_at,
    "subtasks": subtasks,
    "tags": _str_list(raw.get("tags")),
    "chat_history": chat,
    "assignees": _str_list(raw.get("assignees")),
  }


@router.get("/export")
async def export_backup(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  pres = await db.execute(select(Project).where(Project.owner_id == user.id).order_by(Project.id.asc()))
  tres = await db.execute(select(Task).where(Task.owner_id == user.id).order_by(Task.id.asc()))
  return {
    "version": BACKUP_VERSION,
    "exportedAt": datetime.now(timezone.utc).isoformat(),
    "user": {"username": user.username, "email": user.email},
    "data": {
      "projects": [project_out(p).model_dump(mode="json", exclude={"ownerId", "stats"}) for p in pres.scalars().all()],
      "tasks": [task_out(t).model_dump(mode="json", exclude={"ownerId"}) for t in tres.scalars().all()],
    },
  }


@router.post("/import", response_model=BackupImportOut)
async def import_backup(payload: BackupImportIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BackupImportOut:
  data = payload.data
  if not isinstance(data, dict) or not isinstance(data.get("projects"), list) or not isinstance(data.get("tasks"), list):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid backup: data.projects and data.tasks are required")
  if payload.mode not in ("merge", "replace"):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="mode must be merge or replace")
  try:
    projects = [_parse_project(p) for p in data["projects"]]
    tasks = [_parse_task(t) for t in data["tasks"]]
  except BackupFormatError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid backup: {exc}")

  # Everything below is flushed but only committed once at the end.
  orphaned: list[str] = []
  if payload.mode == "replace":
    await delete_tasks(db, Task.owner_id == user.id, files=orphaned)
    owned_projects = select(Project.id).where(Project.owner_id == user.id)
    await delete_tasks(db, Task.project_id.in_(owned_projects), files=orphaned)
    await db.execute(delete(Project).where(Project.owner_id == user.id))

  id_map: dict[str, int] = {}
  for item in projects:
    old_id = item.pop("old_id")
    p = Project(owner_id=user.id, **item)
    db.add(p)
    await db.flush()
    if old_id is not None:
      id_map[str(old_id)] = p.id

  for item in tasks:
    old_project_id = item.pop("old_project_id")
    project_id = id_map.get(str(old_project_id)) if old_project_id is not None else None
    db.add(Task(owner_id=user.id, project_id=project_id, **item))

  await write_audit(
    db,
    event_type="backup.imported",
    entity_type="Backup",
    entity_id=None,
    actor_id=user.id,
    payload={"mode": payload.mode, "projects": len(projects), "tasks": len(tasks)},
  )
  await db.commit()
  remove_uploads(orphaned)
  return BackupImportOut(
    message=f"Imported {len(projects)} projects and {len(tasks)} tasks",
    imported=BackupImportCounts(projects=len(projects), tasks=len(tasks)),
  )
