from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")

Role = Literal["admin", "user"]
ProjectStatus = Literal["pending", "active", "completed"]
Column = Literal["backlog", "todo", "in-progress", "done"]
Quadrant = Literal["p1", "p2", "p3", "p4"]
ChannelType = Literal["gemini", "openai", "openai-compatible"]

_Date = date

COLUMNS: tuple[str, ...] = ("backlog", "todo", "in-progress", "done")
QUADRANTS: tuple[str, ...] = ("p1", "p2", "p3", "p4")


def _parse_date(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    return value.date()
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    m = _DATE_PREFIX_RE.match(s)
    if not m:
      raise ValueError("date must be YYYY-MM-DD")
    return date.fromisoformat(m.group(1))
  return value


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


class MessageOut(BaseModel):
  message: str


# --- users / auth ---


class UserOut(BaseModel):
  id: int
  username: str
  email: str
  role: Role
  createdAt: datetime | None = None


class RegisterIn(BaseModel):
  username: str | None = None
  password: str | None = None
  email: str | None = None


class LoginIn(BaseModel):
  username: str | None = None
  password: str | None = None


class AuthOut(BaseModel):
  user: UserOut
  token: str
  message: str | None = None


class HasUsersOut(BaseModel):
  hasUsers: bool


class UserCreateIn(BaseModel):
  username: str | None = None
  password: str | None = None
  email: str | None = None
  role: str | None = None


class UserCreateOut(BaseModel):
  message: str
  user: UserOut


class UserUpdateIn(BaseModel):
  username: str | None = None
  email: str | None = None
  password: str | None = None
  role: str | None = None


class UserRoleIn(BaseModel):
  role: str | None = None


class ProfileUpdateIn(BaseModel):
  username: str | None = None
  email: str | None = None
  currentPassword: str | None = None
  newPassword: str | None = None


# --- projects ---


class ProjectStatsOut(BaseModel):
  total: int = 0
  done: int = 0


class ProjectOut(BaseModel):
  id: int
  ownerId: int
  title: str
  description: str = ""
  status: ProjectStatus = "active"
  assignees: list[str] = Field(default_factory=list)
  startDate: date | None = None
  endDate: date | None = None
  pinned: bool = False
  color: str | None = None
  archived: bool = False
  createdAt: datetime | None = None
  stats: ProjectStatsOut | None = None


class ProjectCreateIn(BaseModel):
  title: str | None = None
  description: str | None = None
  status: ProjectStatus | None = None
  assignees: list[str] | None = None
  startDate: date | None = None
  endDate: date | None = None
  pinned: bool | None = None
  color: str | None = None

  @field_validator("startDate", "endDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_date(v)


class ProjectUpdateIn(ProjectCreateIn):
  archived: bool | None = None


class ProjectUpdateOut(BaseModel):
  message: str
  project: ProjectOut


# --- tasks ---


class SubtaskItem(BaseModel):
  text: str
  done: bool = False


class ChatMessage(BaseModel):
  sender: Literal["user", "ai"]
  text: str


class TaskOut(BaseModel):
  id: int
  projectId: int | None = None
  ownerId: int
  title: str
  description: str = ""
  column: Column = "todo"
  startDate: date | None = None
  dueDate: date | None = None
  priority: Quadrant = "p2"
  completedAt: datetime | None = None
  subtasks: list[SubtaskItem] = Field(default_factory=list)
  tags: list[str] = Field(default_factory=list)
  chatHistory: list[ChatMessage] = Field(default_factory=list)
  assignees: list[str] = Field(default_factory=list)
  createdAt: datetime | None = None


class TaskWriteIn(BaseModel):
  projectId: int | None = None
  title: str | None = None
  description: str | None = None
  column: Column | None = None
  startDate: date | None = None
  dueDate: date | None = None
  priority: Quadrant | None = None
  completedAt: datetime | None = None
  subtasks: list[SubtaskItem] | None = None
  tags: list[str] | None = None
  chatHistory: list[ChatMessage] | None = None
  assignees: list[str] | None = None

  @field_validator("startDate", "dueDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_date(v)

  @field_validator("completedAt", mode="before")
  @classmethod
  def _completed_at(cls, v: object) -> object:
    return _parse_dt_utc(v)


# --- views ---


class BoardViewOut(BaseModel):
  project: ProjectOut
  columns: dict[str, list[TaskOut]]


class DailyViewOut(BaseModel):
  date: _Date
  scope: str
  quadrants: dict[str, list[TaskOut]]


class CalendarTaskOut(TaskOut):
  overdue: bool = False


class CalendarViewOut(BaseModel):
  year: int
  month: int
  days: dict[str, list[CalendarTaskOut]]


# --- settings ---


class PublicSettingsOut(BaseModel):
  siteName: str
  allowRegistration: bool = True


class SettingsOut(BaseModel):
  siteName: str
  allowRegistration: bool
  defaultRole: Role
  defaultModel: str = ""
  allowedFileTypes: str
  maxFileSize: int


class SettingsUpdateIn(BaseModel):
  siteName: str | None = None
  allowRegistration: bool | None = None
  defaultRole: str | None = None
  defaultModel: str | None = None
  allowedFileTypes: str | None = None
  maxFileSize: int | None = None


# --- channels ---


class ModelRef(BaseModel):
  id: str
  name: str


class ChannelOut(BaseModel):
  id: int
  name: str
  type: str
  base_url: str = ""
  api_key: str = ""
  models: list[ModelRef] = Field(default_factory=list)
  enabled: bool = True
  created_at: datetime | None = None


class ChannelCreateIn(BaseModel):
  name: str | None = None
  type: ChannelType | None = None
  base_url: str | None = None
  api_key: str | None = None


class ChannelCreateOut(BaseModel):
  id: int
  message: str


class ChannelUpdateIn(BaseModel):
  name: str | None = None
  type: ChannelType | None = None
  base_url: str | None = None
  api_key: str | None = None
  models: list[ModelRef] | None = None
  enabled: bool | None = None


class FetchModelsOut(BaseModel):
  models: list[ModelRef]
  message: str


class ModelChoiceOut(BaseModel):
  channelId: int
  channelName: str
  channelType: str
  modelId: str
  modelName: str
  fullId: str


class DefaultModelOut(BaseModel):
  configured: bool
  channelId: int | None = None
  channelName: str | None = None
  type: str | None = None
  model: str | None = None


# --- ai ---


class AIChatIn(BaseModel):
  taskId: int
  message: str = Field(min_length=1, max_length=8000)


class AIChatOut(BaseModel):
  reply: str
  chatHistory: list[ChatMessage]
  mock: bool = False


class AIExpandOut(BaseModel):
  task: TaskOut
  mock: bool = False


class AIProjectGenerateIn(BaseModel):
  title: str = Field(min_length=1, max_length=200)
  goal: str | None = Field(default=None, max_length=4000)


class AIProjectGenerateOut(BaseModel):
  project: ProjectOut
  tasks: list[TaskOut]
  mock: bool = False


class AIDailyReportIn(BaseModel):
  date: _Date | None = None

  @field_validator("date", mode="before")
  @classmethod
  def _date(cls, v: object) -> object:
    return _parse_date(v)


class AIDailyReportOut(BaseModel):
  report: str
  date: _Date
  mock: bool = False


# --- attachments ---


class AttachmentOut(BaseModel):
  id: int
  taskId: int
  ownerId: int
  filename: str
  originalName: str
  mimeType: str
  size: int
  createdAt: datetime | None = None


# --- backup ---


class BackupImportIn(BaseModel):
  data: dict[str, Any] | None = None
  mode: str = "merge"


class BackupImportCounts(BaseModel):
  projects: int
  tasks: int


class BackupImportOut(BaseModel):
  message: str
  imported: BackupImportCounts


# --- audit ---


class AuditOut(BaseModel):
  id: int
  actorId: int | None = None
  eventType: str
  entityType: str
  entityId: str | None = None
  payload: dict[str, Any] = Field(default_factory=dict)
  createdAt: datetime


# --- system ---


class SystemStatusOut(BaseModel):
  generatedAt: datetime
  version: str
  buildSha: str
  database: str
  databaseOk: bool
  rateLimitBackend: Literal["redis", "memory"]
  counts: dict[str, int] = Field(default_factory=dict)
  runtime: dict[str, Any] = Field(default_factory=dict)
