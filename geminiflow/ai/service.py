from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.ai.providers import AIProvider, AIProviderError, PromptMessage, build_provider
from geminiflow.deps import load_site_settings
from geminiflow.models import AIChannel, Task
from geminiflow.security import decrypt_channel_secret

logger = logging.getLogger("geminiflow.ai")

SYSTEM_INSTRUCTION = (
  "You are a project-management assistant embedded in a kanban application. "
  "Help the user break work down, clarify requirements and suggest concrete next steps. "
  "Keep answers concise, practical and professional."
)

CHAT_UNCONFIGURED_REPLY = "AI is not configured. Ask an administrator to choose a default model."
CHAT_FAILURE_REPLY = "Sorry, I ran into a problem while thinking about that. Please try again."
CHAT_CONTEXT_ACK = "Understood. I'm ready to help with this task."

PLAN_COLUMNS = ("backlog", "todo", "in-progress")
QUADRANT_LABELS = {
  "p1": "Important & urgent (do now)",
  "p2": "Important, not urgent (schedule)",
  "p3": "Urgent, not important (delegate)",
  "p4": "Neither (later)",
}

TASK_EXPANSION_SCHEMA: dict[str, Any] = {
  "type": "OBJECT",
  "properties": {
    "description": {"type": "STRING"},
    "subtasks": {"type": "ARRAY", "items": {"type": "STRING"}},
    "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
  },
  "required": ["description", "subtasks", "tags"],
}

PROJECT_PLAN_SCHEMA: dict[str, Any] = {
  "type": "OBJECT",
  "properties": {
    "description": {"type": "STRING"},
    "tasks": {
      "type": "ARRAY",
      "items": {
        "type": "OBJECT",
        "properties": {
          "title": {"type": "STRING"},
          "column": {"type": "STRING"},
          "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        },
      },
    },
  },
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class ResolvedModel:
  channel_id: int
  channel_name: str
  channel_type: str
  model: str
  provider: AIProvider


@dataclass
class TaskExpansion:
  description: str
  subtasks: list[str]
  tags: list[str]


@dataclass
class PlannedTask:
  title: str
  column: str = "todo"
  tags: list[str] = field(default_factory=list)


@dataclass
class ProjectPlan:
  description: str
  tasks: list[PlannedTask]


def parse_model_ref(value: str | None) -> tuple[int, str] | None:
  """Split a "channelId:modelId" reference; the model id may itself contain colons."""
  raw = (value or "").strip()
  if ":" not in raw:
    return None
  channel_part, model_id = raw.split(":", 1)
  if not channel_part.strip().isdigit() or not model_id.strip():
    return None
  return int(channel_part), model_id.strip()


async def resolve_default_model(db: AsyncSession) -> ResolvedModel | None:
  s = await load_site_settings(db)
  ref = parse_model_ref(s.default_model)
  if ref is None:
    return None
  channel_id, model_id = ref
  res = await db.execute(select(AIChannel).where(AIChannel.id == channel_id, AIChannel.enabled.is_(True)))
  ch = res.scalar_one_or_none()
  if ch is None:
    return None
  provider = build_provider(
    channel_type=ch.type,
    api_key=decrypt_channel_secret(ch.api_key_encrypted),
    base_url=ch.base_url or "",
    model=model_id,
  )
  return ResolvedModel(channel_id=ch.id, channel_name=ch.name, channel_type=ch.type, model=model_id, provider=provider)


def parse_json_object(text: str) -> dict[str, Any]:
  cleaned = _FENCE_RE.sub("", (text or "").strip())
  try:
    data = json.loads(cleaned)
  except json.JSONDecodeError as exc:
    raise AIProviderError("Model did not return valid JSON") from exc
  if not isinstance(data, dict):
    raise AIProviderError("Model JSON is not an object")
  return data


def _str_list(value: Any) -> list[str]:
  if not isinstance(value, list):
    return []
  return [str(x).strip() for x in value if str(x).strip()]


async def _complete(
  resolved: ResolvedModel,
  messages: list[PromptMessage],
  *,
  json_schema: dict[str, Any] | None = None,
) -> str:
  text = await resolved.provider.complete(messages, system=SYSTEM_INSTRUCTION, json_schema=json_schema)
  if not (text or "").strip():
    raise AIProviderError("Model returned an empty response")
  return text


def _task_context(task: Task) -> str:
  due = task.due_date.isoformat() if task.due_date else "not set"
  return (
    f'Current task: title "{task.title}". Description: "{task.description or ""}". '
    f'Due date: "{due}". Priority quadrant: "{task.priority}".'
  )


async def chat_reply(resolved: ResolvedModel | None, *, task: Task, history: list[dict[str, Any]], message: str) -> tuple[str, bool]:
  """Returns (reply, mock)."""
  if resolved is None:
    return CHAT_UNCONFIGURED_REPLY, True
  messages = [
    PromptMessage(role="user", content=_task_context(task)),
    PromptMessage(role="assistant", content=CHAT_CONTEXT_ACK),
  ]
  for msg in history:
    messages.append(PromptMessage(role="user" if msg.get("sender") == "user" else "assistant", content=str(msg.get("text") or "")))
  messages.append(PromptMessage(role="user", content=message))
  try:
    return await _complete(resolved, messages), False
  except AIProviderError as exc:
    logger.warning("chat via channel %s (%s) failed: %s", resolved.channel_id, resolved.model, exc)
    return CHAT_FAILURE_REPLY, True


def mock_task_expansion() -> TaskExpansion:
  return TaskExpansion(
    description="Placeholder AI response. Configure a default AI model in the admin panel.",
    subtasks=["Placeholder subtask 1", "Placeholder subtask 2", "Configure an AI model"],
    tags=["placeholder", "demo"],
  )


async def expand_task(resolved: ResolvedModel | None, *, task: Task) -> tuple[TaskExpansion, bool]:
  if resolved is None:
    return mock_task_expansion(), True
  due = task.due_date.isoformat() if task.due_date else "not set"
  prompt = (
    f'I have a task titled "{task.title}" due "{due}".\n'
    "Write a professional, actionable description (at most 2 sentences).\n"
    "Generate 3-5 concrete subtasks (checklist items).\n"
    "Generate 2-3 short related tags.\n"
    "Return JSON with keys: description, subtasks (array of strings), tags (array of strings)."
  )
  try:
    data = parse_json_object(await _complete(resolved, [PromptMessage(role="user", content=prompt)], json_schema=TASK_EXPANSION_SCHEMA))
  except AIProviderError as exc:
    logger.warning("task expansion via channel %s (%s) failed: %s", resolved.channel_id, resolved.model, exc)
    return mock_task_expansion(), True
  return (
    TaskExpansion(
      description=str(data.get("description") or "").strip(),
      subtasks=_str_list(data.get("subtasks")),
      tags=_str_list(data.get("tags")),
    ),
    False,
  )


def mock_project_plan(*, failed: bool = False) -> ProjectPlan:
  if failed:
    return ProjectPlan(
      description="AI generation failed; using a default project outline.",
      tasks=[
        PlannedTask(title="Plan the work", column="todo", tags=["planning"]),
        PlannedTask(title="Start execution", column="backlog", tags=["execution"]),
      ],
    )
  return ProjectPlan(
    description="Placeholder project plan generated without an AI model.",
    tasks=[
      PlannedTask(title="Requirements research and analysis", column="todo", tags=["planning", "important"]),
      PlannedTask(title="Draft the execution timeline", column="todo", tags=["management"]),
      PlannedTask(title="Budget and resource approval", column="backlog", tags=["finance"]),
      PlannedTask(title="Project kickoff meeting", column="in-progress", tags=["meeting"]),
    ],
  )


async def plan_project(resolved: ResolvedModel | None, *, title: str, goal: str) -> tuple[ProjectPlan, bool]:
  if resolved is None:
    return mock_project_plan(), True
  prompt = (
    f'I want to create a new project titled "{title}".\n'
    f'Goal / extra context: "{goal}".\n'
    "Write a short project description.\n"
    "Generate 4-6 initial kanban tasks with a title, a suggested column (backlog, todo, in-progress) and tags.\n"
    "Return JSON: { description: string, tasks: [{ title, column, tags: [] }] }"
  )
  try:
    data = parse_json_object(await _complete(resolved, [PromptMessage(role="user", content=prompt)], json_schema=PROJECT_PLAN_SCHEMA))
  except AIProviderError as exc:
    logger.warning("project plan via channel %s (%s) failed: %s", resolved.channel_id, resolved.model, exc)
    return mock_project_plan(failed=True), True

  tasks: list[PlannedTask] = []
  for item in data.get("tasks") or []:
    if not isinstance(item, dict):
      continue
    t_title = str(item.get("title") or "").strip()
    if not t_title:
      continue
    column = str(item.get("column") or "todo").strip().lower()
    tasks.append(PlannedTask(title=t_title[:200], column=column if column in PLAN_COLUMNS else "todo", tags=_str_list(item.get("tags"))))
  return ProjectPlan(description=str(data.get("description") or "").strip(), tasks=tasks[:6]), False


def daily_report_prompt(day: date, tasks: list[Task]) -> str:
  lines = [f"Write a short end-of-day report for {day.isoformat()} based on my Eisenhower-matrix tasks.", ""]
  for quadrant, label in QUADRANT_LABELS.items():
    lines.append(f"[{quadrant.upper()}: {label}]")
    items = [t for t in tasks if t.priority == quadrant]
    if not items:
      lines.append("- none")
    for t in items:
      state = "done" if t.column == "done" else "in progress"
      lines.append(f"- [{state}] {t.title}")
    lines.append("")
  lines.append(
    "Assess whether my time allocation was reasonable (ideally more attention on P2) and give brief suggestions."
  )
  return "\n".join(lines)


def mock_daily_report(day: date, tasks: list[Task]) -> str:
  done = sum(1 for t in tasks if t.column == "done")
  return (
    f"[Placeholder daily report] {day.isoformat()}\n\n"
    f"Tasks tracked today: {len(tasks)}, completed: {done}.\n"
    "1. Finished important and urgent work.\n"
    "2. Moved planned work forward.\n\n"
    "(AI is not configured; ask an administrator to choose a default model.)"
  )


async def daily_report(resolved: ResolvedModel | None, *, day: date, tasks: list[Task]) -> tuple[str, bool]:
  if resolved is None:
    return mock_daily_report(day, tasks), True
  try:
    return await _complete(resolved, [PromptMessage(role="user", content=daily_report_prompt(day, tasks))]), False
  except AIProviderError as exc:
    logger.warning("daily report via channel %s (%s) failed: %s", resolved.channel_id, resolved.model, exc)
    return mock_daily_report(day, tasks), True
