from __future__ import annotations

import logging

from geminiflow.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging() -> None:
  global _configured
  if _configured:
    return
  level = getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO)
  logging.basicConfig(level=level, format=LOG_FORMAT)
  logging.getLogger("geminiflow").setLevel(level)
  _configured = True
