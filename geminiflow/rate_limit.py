from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

import redis

from geminiflow.config import settings

logger = logging.getLogger("geminiflow.rate_limit")

SWEEP_INTERVAL_SECONDS = 30.0


@dataclass
class _Bucket:
  reset_at: float
  count: int


class RateLimiter:
  """
  Fixed-window rate limiter.

  Counts live in Redis when REDIS_URL is configured, otherwise in process
  memory (single worker only).
  """

  def __init__(self) -> None:
    self._lock = Lock()
    self._buckets: dict[str, _Bucket] = {}
    self._next_sweep = 0.0
    self._redis: redis.Redis | None = None
    if settings.redis_url:
      self._redis = redis.Redis.from_url(settings.redis_url, decode_responses=True)

  @property
  def backend(self) -> str:
    return "redis" if self._redis is not None else "memory"

  def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    """
    if self._redis is not None:
      try:
        return self._hit_redis(key, limit=limit, window_seconds=window_seconds)
      except redis.RedisError as exc:
        logger.warning("redis rate limiter unavailable, using in-memory buckets: %s", exc)

    now = time.time()
    with self._lock:
      if now >= self._next_sweep:
        self._sweep_locked(now)
      b = self._buckets.get(key)
      if b is None or now >= b.reset_at:
        self._buckets[key] = _Bucket(reset_at=now + window_seconds, count=1)
        return True, 0
      if b.count >= limit:
        retry = max(1, int(b.reset_at - now))
        return False, retry
      b.count += 1
      return True, 0

  def _sweep_locked(self, now: float) -> None:
    for k in [k for k, b in self._buckets.items() if now >= b.reset_at]:
      del self._buckets[k]
    self._next_sweep = now + SWEEP_INTERVAL_SECONDS

  def _hit_redis(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    rk = f"rl:{key}"
    pipe = self._redis.pipeline()
    pipe.incr(rk, 1)
    pipe.ttl(rk)
    count, ttl = pipe.execute()
    if int(count) == 1:
      self._redis.expire(rk, int(window_seconds))
      ttl = int(window_seconds)
    retry = max(1, int(ttl)) if int(ttl) > 0 else int(window_seconds)
    if int(count) > int(limit):
      return False, retry
    return True, 0

  def reset_prefix(self, prefix: str) -> None:
    with self._lock:
      for k in list(self._buckets.keys()):
        if k.startswith(prefix):
          del self._buckets[k]


limiter = RateLimiter()
