from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from geminiflow.config import settings


class AIProviderError(RuntimeError):
  pass


@dataclass
class PromptMessage:
  role: str  # user | assistant
  content: str


class AIProvider(Protocol):
  model: str

  async def complete(
    self,
    messages: list[PromptMessage],
    *,
    system: str,
    json_schema: dict[str, Any] | None = None,
  ) -> str: ...


def _raise_for_payload_error(data: Any) -> None:
  if isinstance(data, dict) and data.get("error"):
    err = data["error"]
    message = err.get("message") if isinstance(err, dict) else str(err)
    raise AIProviderError(message or "Provider returned an error")


async def _request_json(method: str, url: str, **kwargs: Any) -> Any:
  try:
    async with httpx.AsyncClient(timeout=settings.ai_timeout_seconds) as client:
      r = await client.request(method, url, **kwargs)
  except httpx.HTTPError as exc:
    raise AIProviderError(f"Provider request failed: {exc}") from exc
  try:
    data = r.json()
  except ValueError as exc:
    raise AIProviderError(f"Provider returned non-JSON response (HTTP {r.status_code})") from exc
  _raise_for_payload_error(data)
  if r.status_code >= 400:
    raise AIProviderError(f"Provider returned HTTP {r.status_code}")
  return data


@dataclass
class GeminiProvider:
  api_key: str
  model: str
  base_url: str = ""

  def _root(self) -> str:
    return (self.base_url or settings.gemini_base_url).rstrip("/")

  async def complete(
    self,
    messages: list[PromptMessage],
    *,
    system: str,
    json_schema: dict[str, Any] | None = None,
  ) -> str:
    body: dict[str, Any] = {
      "contents": [
        {"role": "model" if m.role == "assistant" else m.role, "parts": [{"text": m.content}]} for m in messages
      ],
      "systemInstruction": {"parts": [{"text": system}]},
    }
    if json_schema is not None:
      body["generationConfig"] = {"responseMimeType": "application/json", "responseSchema": json_schema}
    data = await _request_json(
      "POST",
      f"{self._root()}/models/{self.model}:generateContent",
      params={"key": self.api_key},
      json=body,
    )
    try:
      return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
      raise AIProviderError("Gemini response has no candidate text") from exc


@dataclass
class OpenAICompatibleProvider:
  api_key: str
  model: str
  base_url: str = ""

  def _root(self) -> str:
    return (self.base_url or settings.openai_base_url).rstrip("/")

  async def complete(
    self,
    messages: list[PromptMessage],
    *,
    system: str,
    json_schema: dict[str, Any] | None = None,
  ) -> str:
    body: dict[str, Any] = {
      "model": self.model,
      "messages": [{"role": "system", "content": system}] + [{"role": m.role, "content": m.content} for m in messages],
    }
    if json_schema is not None:
      body["response_format"] = {"type": "json_object"}
    data = await _request_json(
      "POST",
      f"{self._root()}/chat/completions",
      headers={"Authorization": f"Bearer {self.api_key}"},
      json=body,
    )
    try:
      return data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
      raise AIProviderError("Chat completion response has no message content") from exc


def build_provider(*, channel_type: str, api_key: str, base_url: str, model: str) -> AIProvider:
  if channel_type == "gemini":
    return GeminiProvider(api_key=api_key, model=model, base_url=base_url)
  return OpenAICompatibleProvider(api_key=api_key, model=model, base_url=base_url)


async def list_models(*, channel_type: str, api_key: str, base_url: str) -> list[dict[str, str]]:
  """
  Ask the provider which models the key can use.

  Returns a list of {"id", "name"} dicts; Gemini ids drop the "models/" prefix.
  """
  if channel_type == "gemini":
    root = (base_url or settings.gemini_base_url).rstrip("/")
    data = await _request_json("GET", f"{root}/models", params={"key": api_key})
    out: list[dict[str, str]] = []
    for m in data.get("models") or []:
      raw = str(m.get("name") or "")
      if not raw:
        continue
      out.append({"id": raw.replace("models/", "", 1), "name": str(m.get("displayName") or raw)})
    return out
  if channel_type in ("openai", "openai-compatible"):
    root = (base_url or settings.openai_base_url).rstrip("/")
    data = await _request_json("GET", f"{root}/models", headers={"Authorization": f"Bearer {api_key}"})
    return [{"id": str(m["id"]), "name": str(m["id"])} for m in (data.get("data") or []) if m.get("id")]
  raise AIProviderError(f"Unsupported channel type: {channel_type}")
