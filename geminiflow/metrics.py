from __future__ import annotations

import math
from collections import deque
from datetime import datetime, timezone
from threading import Lock
from time import monotonic
from typing import NamedTuple

WINDOW_SECONDS = 3600


class _Hit(NamedTuple):
  at: float  # monotonic seconds
  status: int
  ms: float


def _percentile(values: list[float], pct: float) -> float:
  if not values:
    return 0.0
  ordered = sorted(values)
  rank = max(0, math.ceil(pct * len(ordered)) - 1)
  return ordered[rank]


class RequestMetrics:
  """In-process request counters over a sliding one-hour window."""

  def __init__(self, window_seconds: int = WINDOW_SECONDS) -> None:
    self.window_seconds = window_seconds
    self.started_at = datetime.now(timezone.utc)
    self._boot = monotonic()
    self._hits: deque[_Hit] = deque()
    self._lock = Lock()

  def record(self, status: int, ms: float) -> None:
    now = monotonic()
    with self._lock:
      self._hits.append(_Hit(now, status, ms))
      self._expire(now)

  def _expire(self, now: float) -> None:
    horizon = now - self.window_seconds
    while self._hits and self._hits[0].at < horizon:
      self._hits.popleft()

  def snapshot(self) -> dict:
    now = monotonic()
    with self._lock:
      self._expire(now)
      hits = tuple(self._hits)
    return {
      "startedAt": self.started_at.isoformat(),
      "uptimeSeconds": int(now - self._boot),
      "requestsLastHour": len(hits),
      "errorsLastHour": sum(1 for h in hits if h.status >= 500),
      "rateLimitedLastHour": sum(1 for h in hits if h.status == 429),
      "p95LatencyMs": round(_percentile([h.ms for h in hits], 0.95), 1),
    }


runtime_metrics = RequestMetrics()
