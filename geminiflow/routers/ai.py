from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.ai import service
from geminiflow.audit import write_audit
from geminiflow.deps import get_current_user, get_db
from geminiflow.models import Project, Task, User
from geminiflow.routers.views import tasks_for_day
from geminiflow.schemas import (
  AIChatIn,
  AIChatOut,
  AIDailyReportIn,
  AIDailyReportOut,
  AIExpandOut,
  AIProjectGenerateIn,
  AIProjectGenerateOut,
)
from geminiflow.serializers import project_out, task_out
from geminiflow.task_rules import owned_task_or_404, project_stats

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/chat", response_model=AIChatOut)
async def chat(payload: AIChatIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> AIChatOut:
  message = payload.message.strip()
  if not message:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")
  t = await owned_task_or_404(db, task_id=payload.taskId, owner_id=user.id)
  history = list(t.chat_history or [])
  resolved = await service.resolve_default_model(db)
  reply, mock = await service.chat_reply(resolved, task=t, history=history, message=message)
  # reassign so the JSON column is flagged dirty
  t.chat_history = history + [{"sender": "user", "text": message}, {"sender": "ai", "text": reply}]
  await db.commit()
  await db.refresh(t)
  return AIChatOut(reply=reply, chatHistory=task_out(t).chatHistory, mock=mock)


@router.post("/tasks/{task_id}/expand", response_model=AIExpandOut)
async def expand_task(task_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> AIExpandOut:
  t = await owned_task_or_404(db, task_id=task_id, owner_id=user.id)
  resolved = await service.resolve_default_model(db)
  expansion, mock = await service.expand_task(resolved, task=t)

  if expansion.description:
    t.description = expansion.description
  t.subtasks = list(t.subtasks or []) + [{"text": s, "done": False} for s in expansion.subtasks]
  tags = list(t.tags or [])
  for tag in expansion.tags:
    if tag not in tags:
      tags.append(tag)
  t.tags = tags
  await db.commit()
  await db.refresh(t)
  return AIExpandOut(task=task_out(t), mock=mock)


@router.post("/projects/generate", response_model=AIProjectGenerateOut, status_code=status.HTTP_201_CREATED)
async def generate_project(
  payload: AIProjectGenerateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> AIProjectGenerateOut:
  title = payload.title.strip()
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
  resolved = await service.resolve_default_model(db)
  plan, mock = await service.plan_project(resolved, title=title, goal=(payload.goal or "").strip())

  p = Project(
    owner_id=user.id,
    title=title,
    description=plan.description,
    status="active",
    assignees=[],
    start_date=date.today(),
    pinned=False,
    archived=False,
  )
  db.add(p)
  await db.flush()
  tasks: list[Task] = []
  for item in plan.tasks:
    t = Task(
      project_id=p.id,
      owner_id=user.id,
      title=item.title,
      description="",
      column=item.column,
      priority="p2",
      subtasks=[],
      tags=item.tags,
      chat_history=[],
      assignees=[],
    )
    db.add(t)
    tasks.append(t)
  await write_audit(
    db,
    event_type="ai.project_generated",
    entity_type="Project",
    entity_id=p.id,
    actor_id=user.id,
    payload={"title": title, "tasks": len(tasks), "mock": mock},
  )
  await db.commit()
  await db.refresh(p)
  for t in tasks:
    await db.refresh(t)
  stats = await project_stats(db, [p.id])
  return AIProjectGenerateOut(project=project_out(p, stats[p.id]), tasks=[task_out(t) for t in tasks], mock=mock)


@router.post("/daily-report", response_model=AIDailyReportOut)
async def daily_report(payload: AIDailyReportIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> AIDailyReportOut:
  day = payload.date or date.today()
  tasks = await tasks_for_day(db, owner_id=user.id, day=day)
  resolved = await service.resolve_default_model(db)
  report, mock = await service.daily_report(resolved, day=day, tasks=tasks)
  await db.commit()
  return AIDailyReportOut(report=report, date=day, mock=mock)
