from __future__ import annotations

import logging
import os
import secrets
import time
from pathlib import Path

from geminiflow.config import settings

logger = logging.getLogger("geminiflow.storage")


def upload_root() -> Path:
  root = Path(settings.upload_dir)
  root.mkdir(parents=True, exist_ok=True)
  return root


def normalize_file_types(raw: str | None) -> str:
  """Lowercase, dot-prefixed, de-duplicated comma list (".PDF, png" -> ".pdf,.png")."""
  out: list[str] = []
  for part in (raw or "").split(","):
    ext = part.strip().lower()
    if not ext:
      continue
    if not ext.startswith("."):
      ext = f".{ext}"
    if ext not in out:
      out.append(ext)
  return ",".join(out)


def allowed_extensions(raw: str | None) -> set[str]:
  return set(normalize_file_types(raw).split(",")) - {""}


def file_extension(name: str) -> str:
  return os.path.splitext(name or "")[1].lower()


def decode_original_filename(name: str) -> str:
  # multipart filenames often arrive as UTF-8 bytes read as Latin-1
  try:
    return name.encode("latin-1").decode("utf-8")
  except (UnicodeEncodeError, UnicodeDecodeError):
    return name


def storage_name(original_name: str) -> str:
  return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{file_extension(original_name)}"


def stored_path(filename: str) -> Path:
  # stored names are server generated; strip any directory part anyway
  return upload_root() / Path(filename).name


def write_upload(data: bytes, original_name: str) -> str:
  name = storage_name(original_name)
  stored_path(name).write_bytes(data)
  return name


def remove_upload(filename: str) -> None:
  path = stored_path(filename)
  try:
    path.unlink()
  except FileNotFoundError:
    pass
  except OSError as exc:
    logger.warning("could not remove upload %s: %s", path, exc)


def remove_uploads(filenames: list[str]) -> None:
  """Unlink stored files; call only after the rows referencing them are committed away."""
  for name in filenames:
    remove_upload(name)
