from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  username: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default="user")  # admin | user
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Project(Base):
  __tablename__ = "projects"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False, default="")
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  status: Mapped[str] = mapped_column(String, nullable=False, default="active")  # pending | active | completed
  assignees: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  color: Mapped[str | None] = mapped_column(String, nullable=True)
  archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  project_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("projects.id"), nullable=True, index=True)
  owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  column: Mapped[str] = mapped_column("column_status", String, nullable=False, default="todo")
  start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
  priority: Mapped[str] = mapped_column(String, nullable=False, default="p2")
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  subtasks: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
  tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  chat_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
  assignees: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AIChannel(Base):
  __tablename__ = "ai_channels"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False)  # gemini | openai | openai-compatible
  base_url: Mapped[str] = mapped_column(String, nullable=False, default="")
  api_key_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
  models: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
  enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class SiteSettings(Base):
  __tablename__ = "settings"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
  site_name: Mapped[str] = mapped_column(String, nullable=False, default="GeminiFlow")
  allow_registration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  default_role: Mapped[str] = mapped_column(String, nullable=False, default="user")
  default_model: Mapped[str] = mapped_column(String, nullable=False, default="")
  allowed_file_types: Mapped[str] = mapped_column(
    Text, nullable=False, default=".pdf,.doc,.docx,.xls,.xlsx,.png,.jpg,.jpeg,.gif,.zip"
  )
  max_file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=10)  # MB
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Attachment(Base):
  __tablename__ = "attachments"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  task_id: Mapped[int] = mapped_column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
  owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
  filename: Mapped[str] = mapped_column(String, nullable=False)
  original_name: Mapped[str] = mapped_column(String, nullable=False)
  mime_type: Mapped[str] = mapped_column(String, nullable=False)
  size: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
