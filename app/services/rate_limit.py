from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Protocol

import redis

from app.core.config import settings

_LOG = logging.getLogger("app.rate_limit")

SWEEP_INTERVAL_SECONDS = 1.0


@dataclass(frozen=True)
class LimitDecision:
    allowed: bool
    hits: int
    retry_after: int


class RateLimiter(Protocol):
    def hit(self, key: str, *, limit: int, window_seconds: int) -> LimitDecision:
        ...


def _window(window_seconds: int) -> int:
    return max(int(window_seconds), 1)


class MemoryRateLimiter:
    """Fixed-window counters kept in process.

    Expired windows are swept on ``hit`` so the table only holds clients seen
    within the current window.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._next_sweep = 0.0
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def hit(self, key: str, *, limit: int, window_seconds: int) -> LimitDecision:
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            hits, ends_at = self._windows.get(key, (0, now))
            if ends_at <= now:
                hits, ends_at = 0, now + _window(window_seconds)
            hits += 1
            self._windows[key] = (hits, ends_at)
        return LimitDecision(allowed=hits <= limit, hits=hits, retry_after=max(0, math.ceil(ends_at - now)))

    def _sweep(self, now: float) -> None:
        for key in [key for key, (_, ends_at) in self._windows.items() if ends_at <= now]:
            del self._windows[key]
        self._next_sweep = now + SWEEP_INTERVAL_SECONDS


class RedisRateLimiter:
    def __init__(self, client: redis.Redis):
        self.client = client

    def hit(self, key: str, *, limit: int, window_seconds: int) -> LimitDecision:
        window = _window(window_seconds)
        # one round trip; the key only gets its expiry when the window opens
        with self.client.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, ex=window, nx=True)
            pipe.incr(key)
            pipe.ttl(key)
            _, hits, ttl = pipe.execute()
        ttl = int(ttl)
        return LimitDecision(allowed=int(hits) <= limit, hits=int(hits), retry_after=ttl if ttl >= 0 else window)


_cached_limiter: RateLimiter | None = None


def _build_limiter() -> RateLimiter:
    url = str(settings.REDIS_URL or "").strip()
    if not url:
        return MemoryRateLimiter()
    try:
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=0.4, socket_connect_timeout=0.4)
        client.ping()
    except (redis.RedisError, ValueError):
        _LOG.warning("Redis limiter unavailable at %s; counting requests in memory", url)
        return MemoryRateLimiter()
    return RedisRateLimiter(client)


def get_rate_limiter() -> RateLimiter:
    global _cached_limiter
    if _cached_limiter is None:
        _cached_limiter = _build_limiter()
    return _cached_limiter


def reset_rate_limiter_for_tests() -> None:
    global _cached_limiter
    _cached_limiter = None


def client_ip(request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        forwarded = str(request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return request.client.host if request.client else "unknown"
