from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.deps import get_current_user, get_db
from geminiflow.models import Task, User
from geminiflow.routers.tasks import Scope
from geminiflow.schemas import COLUMNS, QUADRANTS, BoardViewOut, CalendarTaskOut, CalendarViewOut, DailyViewOut, _parse_date
from geminiflow.serializers import project_out, task_out
from geminiflow.task_rules import owned_project_or_404, project_stats

router = APIRouter(prefix="/views", tags=["views"])


def _scoped(q, scope: str):
  if scope == "project":
    return q.where(Task.project_id.is_not(None))
  if scope == "standalone":
    return q.where(Task.project_id.is_(None))
  return q


def _day_bounds(day: date) -> tuple[datetime, datetime]:
  start = datetime.combine(day, time.min, tzinfo=timezone.utc)
  return start, start + timedelta(days=1)


async def tasks_for_day(db: AsyncSession, *, owner_id: int, day: date, scope: str = "all") -> list[Task]:
  """Tasks due on the day plus tasks completed during it (UTC)."""
  start, end = _day_bounds(day)
  q = select(Task).where(
    Task.owner_id == owner_id,
    or_(Task.due_date == day, and_(Task.completed_at >= start, Task.completed_at < end)),
  )
  res = await db.execute(_scoped(q, scope).order_by(Task.created_at.desc(), Task.id.desc()))
  return list(res.scalars().all())


@router.get("/board/{project_id}", response_model=BoardViewOut)
async def board_view(project_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardViewOut:
  p = await owned_project_or_404(db, project_id=project_id, owner_id=user.id)
  res = await db.execute(
    select(Task).where(Task.project_id == p.id, Task.owner_id == user.id).order_by(Task.created_at.desc(), Task.id.desc())
  )
  columns: dict[str, list] = {c: [] for c in COLUMNS}
  for t in res.scalars().all():
    columns.setdefault(t.column, []).append(task_out(t))
  stats = await project_stats(db, [p.id])
  return BoardViewOut(project=project_out(p, stats[p.id]), columns=columns)


@router.get("/daily", response_model=DailyViewOut)
async def daily_view(
  date_: str | None = Query(default=None, alias="date"),
  scope: Scope = Query(default="all"),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> DailyViewOut:
  try:
    day = _parse_date(date_) or date.today()
  except ValueError:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date must be YYYY-MM-DD")
  quadrants: dict[str, list] = {q: [] for q in QUADRANTS}
  for t in await tasks_for_day(db, owner_id=user.id, day=day, scope=scope):
    quadrants.setdefault(t.priority, []).append(task_out(t))
  return DailyViewOut(date=day, scope=scope, quadrants=quadrants)


@router.get("/calendar", response_model=CalendarViewOut)
async def calendar_view(
  year: int | None = Query(default=None, ge=1970, le=9999),
  month: int | None = Query(default=None, ge=1, le=12),
  scope: Scope = Query(default="all"),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CalendarViewOut:
  today = date.today()
  y = year or today.year
  m = month or today.month
  first = date(y, m, 1)
  last = date(y, m, calendar.monthrange(y, m)[1])

  q = select(Task).where(Task.owner_id == user.id, Task.due_date >= first, Task.due_date <= last)
  res = await db.execute(_scoped(q, scope).order_by(Task.due_date.asc(), Task.created_at.desc(), Task.id.desc()))
  days: dict[str, list[CalendarTaskOut]] = {}
  for t in res.scalars().all():
    overdue = t.column != "done" and t.due_date < today
    days.setdefault(t.due_date.isoformat(), []).append(CalendarTaskOut(**task_out(t).model_dump(), overdue=overdue))
  return CalendarViewOut(year=y, month=m, days=days)
