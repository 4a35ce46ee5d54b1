from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from geminiflow.models import Attachment, AuditEvent, Project, Task, User
from geminiflow.schemas import AttachmentOut, AuditOut, ChatMessage, ProjectOut, ProjectStatsOut, SubtaskItem, TaskOut, UserOut


def _utc(dt: datetime | None) -> datetime | None:
  # SQLite hands back naive values for timezone-aware columns
  if dt is not None and dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt


def user_out(u: User) -> UserOut:
  return UserOut(id=u.id, username=u.username, email=u.email, role=u.role, createdAt=_utc(u.created_at))


def project_out(p: Project, stats: ProjectStatsOut | None = None) -> ProjectOut:
  return ProjectOut(
    id=p.id,
    ownerId=p.owner_id,
    title=p.title,
    description=p.description or "",
    status=p.status,
    assignees=list(p.assignees or []),
    startDate=p.start_date,
    endDate=p.end_date,
    pinned=bool(p.pinned),
    color=p.color,
    archived=bool(p.archived),
    createdAt=_utc(p.created_at),
    stats=stats,
  )


def _subtasks(raw: list[Any] | None) -> list[SubtaskItem]:
  out: list[SubtaskItem] = []
  for item in raw or []:
    if isinstance(item, dict) and str(item.get("text") or "").strip():
      out.append(SubtaskItem(text=str(item["text"]), done=bool(item.get("done"))))
  return out


def _chat(raw: list[Any] | None) -> list[ChatMessage]:
  out: list[ChatMessage] = []
  for item in raw or []:
    if isinstance(item, dict) and item.get("sender") in ("user", "ai"):
      out.append(ChatMessage(sender=item["sender"], text=str(item.get("text") or "")))
  return out


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    projectId=t.project_id,
    ownerId=t.owner_id,
    title=t.title,
    description=t.description or "",
    column=t.column,
    startDate=t.start_date,
    dueDate=t.due_date,
    priority=t.priority,
    completedAt=_utc(t.completed_at),
    subtasks=_subtasks(t.subtasks),
    tags=[str(x) for x in (t.tags or [])],
    chatHistory=_chat(t.chat_history),
    assignees=[str(x) for x in (t.assignees or [])],
    createdAt=_utc(t.created_at),
  )


def attachment_out(a: Attachment) -> AttachmentOut:
  return AttachmentOut(
    id=a.id,
    taskId=a.task_id,
    ownerId=a.owner_id,
    filename=a.filename,
    originalName=a.original_name,
    mimeType=a.mime_type,
    size=a.size,
    createdAt=_utc(a.created_at),
  )


def audit_out(e: AuditEvent) -> AuditOut:
  return AuditOut(
    id=e.id,
    actorId=e.actor_id,
    eventType=e.event_type,
    entityType=e.entity_type,
    entityId=e.entity_id,
    payload=e.payload or {},
    createdAt=_utc(e.created_at),
  )
