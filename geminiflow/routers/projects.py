from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.audit import write_audit
from geminiflow.deps import get_current_user, get_db
from geminiflow.models import Project, Task, User
from geminiflow.schemas import MessageOut, ProjectCreateIn, ProjectOut, ProjectUpdateIn, ProjectUpdateOut
from geminiflow.serializers import project_out
from geminiflow.storage import remove_uploads
from geminiflow.task_rules import delete_tasks, owned_project_or_404, project_stats

router = APIRouter(prefix="/projects", tags=["projects"])


def _clean_list(values: list[str] | None) -> list[str]:
  return [v.strip() for v in (values or []) if v and v.strip()]


@router.get("", response_model=list[ProjectOut])
async def list_projects(
  archived: bool | None = Query(default=None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[ProjectOut]:
  q = select(Project).where(Project.owner_id == user.id)
  if archived is not None:
    q = q.where(Project.archived.is_(archived))
  res = await db.execute(q.order_by(Project.created_at.desc(), Project.id.desc()))
  projects = res.scalars().all()
  stats = await project_stats(db, [p.id for p in projects])
  return [project_out(p, stats.get(p.id)) for p in projects]


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectOut:
  title = (payload.title or "").strip()
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
  p = Project(
    owner_id=user.id,
    title=title,
    description=payload.description or "",
    status=payload.status or "active",
    assignees=_clean_list(payload.assignees),
    start_date=payload.startDate or date.today(),
    end_date=payload.endDate,
    pinned=bool(payload.pinned),
    color=payload.color,
    archived=False,
  )
  db.add(p)
  await db.commit()
  await db.refresh(p)
  return project_out(p, (await project_stats(db, [p.id]))[p.id])


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectOut:
  p = await owned_project_or_404(db, project_id=project_id, owner_id=user.id)
  return project_out(p, (await project_stats(db, [p.id]))[p.id])


@router.put("/{project_id}", response_model=ProjectUpdateOut)
async def update_project(
  project_id: int,
  payload: ProjectUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ProjectUpdateOut:
  p = await owned_project_or_404(db, project_id=project_id, owner_id=user.id)
  fields = payload.model_fields_set
  if "title" in fields:
    title = (payload.title or "").strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
    p.title = title
  if "description" in fields:
    p.description = payload.description or ""
  if "status" in fields and payload.status is not None:
    p.status = payload.status
  if "assignees" in fields:
    p.assignees = _clean_list(payload.assignees)
  if "startDate" in fields:
    p.start_date = payload.startDate
  if "endDate" in fields:
    p.end_date = payload.endDate
  if "pinned" in fields and payload.pinned is not None:
    p.pinned = payload.pinned
  if "color" in fields:
    p.color = payload.color
  if "archived" in fields and payload.archived is not None:
    p.archived = payload.archived
  await db.commit()
  await db.refresh(p)
  return ProjectUpdateOut(message="Project updated", project=project_out(p, (await project_stats(db, [p.id]))[p.id]))


@router.delete("/{project_id}", response_model=MessageOut)
async def delete_project(project_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MessageOut:
  p = await owned_project_or_404(db, project_id=project_id, owner_id=user.id)
  orphaned: list[str] = []
  removed = await delete_tasks(db, Task.project_id == p.id, files=orphaned)
  await db.delete(p)
  await write_audit(
    db,
    event_type="project.deleted",
    entity_type="Project",
    entity_id=project_id,
    actor_id=user.id,
    payload={"title": p.title, "tasksRemoved": removed},
  )
  await db.commit()
  remove_uploads(orphaned)
  return MessageOut(message="Project deleted")
