from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.audit import write_audit
from geminiflow.deps import get_current_user, get_db
from geminiflow.models import Task, User
from geminiflow.schemas import MessageOut, TaskOut, TaskWriteIn, _parse_date
from geminiflow.serializers import task_out
from geminiflow.storage import remove_uploads
from geminiflow.task_rules import apply_task_write, delete_tasks, owned_project_or_404, owned_task_or_404

router = APIRouter(prefix="/tasks", tags=["tasks"])

Scope = Literal["all", "project", "standalone"]


def _newest_first(q):
  return q.order_by(Task.created_at.desc(), Task.id.desc())


@router.get("", response_model=list[TaskOut])
async def list_tasks(
  projectId: int | None = Query(default=None),
  scope: Scope = Query(default="all"),
  dueDate: str | None = Query(default=None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  q = select(Task).where(Task.owner_id == user.id)
  if projectId is not None:
    q = q.where(Task.project_id == projectId)
  elif scope == "project":
    q = q.where(Task.project_id.is_not(None))
  elif scope == "standalone":
    q = q.where(Task.project_id.is_(None))
  if dueDate:
    try:
      due: date = _parse_date(dueDate)
    except ValueError:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="dueDate must be YYYY-MM-DD")
    q = q.where(Task.due_date == due)
  res = await db.execute(_newest_first(q))
  return [task_out(t) for t in res.scalars().all()]


@router.get("/project/{project_id}", response_model=list[TaskOut])
async def list_project_tasks(project_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  await owned_project_or_404(db, project_id=project_id, owner_id=user.id)
  res = await db.execute(_newest_first(select(Task).where(Task.project_id == project_id, Task.owner_id == user.id)))
  return [task_out(t) for t in res.scalars().all()]


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  return task_out(await owned_task_or_404(db, task_id=task_id, owner_id=user.id))


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(payload: TaskWriteIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  if not (payload.title or "").strip():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
  t = Task(
    owner_id=user.id,
    title="",
    description="",
    column="todo",
    priority="p2",
    subtasks=[],
    tags=[],
    chat_history=[],
    assignees=[],
  )
  await apply_task_write(db, t, payload, owner_id=user.id)
  db.add(t)
  await db.commit()
  await db.refresh(t)
  return task_out(t)


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(task_id: int, payload: TaskWriteIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await owned_task_or_404(db, task_id=task_id, owner_id=user.id)
  await apply_task_write(db, t, payload, owner_id=user.id)
  await db.commit()
  await db.refresh(t)
  return task_out(t)


@router.delete("/{task_id}", response_model=MessageOut)
async def delete_task(task_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MessageOut:
  t = await owned_task_or_404(db, task_id=task_id, owner_id=user.id)
  title = t.title
  orphaned: list[str] = []
  await delete_tasks(db, Task.id == t.id, files=orphaned)
  await write_audit(db, event_type="task.deleted", entity_type="Task", entity_id=task_id, actor_id=user.id, payload={"title": title})
  await db.commit()
  remove_uploads(orphaned)
  return MessageOut(message="Task deleted")
