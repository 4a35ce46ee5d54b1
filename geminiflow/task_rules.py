from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.models import Attachment, Project, Task
from geminiflow.schemas import ProjectStatsOut, TaskWriteIn


def _now() -> datetime:
  return datetime.now(timezone.utc)


def apply_completion(t: Task, *, previous_column: str | None, requested: datetime | None = None, now: datetime | None = None) -> None:
  """
  Keep completed_at consistent with the column.

  Entering done always stamps the current time and leaving done clears it.
  An explicit client value is honoured only for a task that was already in
  done and stays there.
  """
  if t.column != "done":
    t.completed_at = None
    return
  if previous_column != "done":
    t.completed_at = now or _now()
  elif requested is not None:
    t.completed_at = requested
  elif t.completed_at is None:
    t.completed_at = now or _now()


async def owned_project_or_404(db: AsyncSession, *, project_id: int, owner_id: int) -> Project:
  res = await db.execute(select(Project).where(Project.id == project_id, Project.owner_id == owner_id))
  p = res.scalar_one_or_none()
  if not p:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
  return p


async def owned_task_or_404(db: AsyncSession, *, task_id: int, owner_id: int) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id, Task.owner_id == owner_id))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  return t


async def apply_task_write(db: AsyncSession, t: Task, payload: TaskWriteIn, *, owner_id: int) -> None:
  fields = payload.model_fields_set
  previous_column = t.column if t.id is not None else None

  if "projectId" in fields:
    if payload.projectId is not None:
      await owned_project_or_404(db, project_id=payload.projectId, owner_id=owner_id)
    t.project_id = payload.projectId
  if "title" in fields:
    title = (payload.title or "").strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
    t.title = title
  if "description" in fields:
    t.description = payload.description or ""
  if "column" in fields and payload.column is not None:
    t.column = payload.column
  if "startDate" in fields:
    t.start_date = payload.startDate
  if "dueDate" in fields:
    t.due_date = payload.dueDate
  if "priority" in fields and payload.priority is not None:
    t.priority = payload.priority
  if "subtasks" in fields:
    t.subtasks = [s.model_dump() for s in (payload.subtasks or [])]
  if "tags" in fields:
    t.tags = [x.strip() for x in (payload.tags or []) if x.strip()]
  if "chatHistory" in fields:
    t.chat_history = [m.model_dump() for m in (payload.chatHistory or [])]
  if "assignees" in fields:
    t.assignees = [x.strip() for x in (payload.assignees or []) if x.strip()]

  requested = payload.completedAt if "completedAt" in fields else None
  apply_completion(t, previous_column=previous_column, requested=requested)


async def delete_tasks(db: AsyncSession, *where: Any, files: list[str]) -> int:
  """
  Delete matching tasks together with their attachment rows.

  Stored names of the removed attachments are appended to files so the
  caller can unlink them once the transaction has committed.
  """
  res = await db.execute(select(Task.id).where(*where))
  task_ids = [row[0] for row in res.all()]
  if not task_ids:
    return 0
  ares = await db.execute(select(Attachment).where(Attachment.task_id.in_(task_ids)))
  files.extend(a.filename for a in ares.scalars().all())
  await db.execute(delete(Attachment).where(Attachment.task_id.in_(task_ids)))
  await db.execute(delete(Task).where(Task.id.in_(task_ids)))
  return len(task_ids)


async def project_stats(db: AsyncSession, project_ids: list[int]) -> dict[int, ProjectStatsOut]:
  if not project_ids:
    return {}
  res = await db.execute(
    select(
      Task.project_id,
      func.count(Task.id),
      func.sum(case((Task.column == "done", 1), else_=0)),
    )
    .where(Task.project_id.in_(project_ids))
    .group_by(Task.project_id)
  )
  out = {pid: ProjectStatsOut() for pid in project_ids}
  for pid, total, done in res.all():
    out[pid] = ProjectStatsOut(total=int(total or 0), done=int(done or 0))
  return out
